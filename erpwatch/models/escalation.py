"""
Escalation rule and escalation record models.

Rules are operator configuration: up to three time-gated tiers, each with
its own recipients. Escalation records are an append-only audit trail of
every tier that was triggered for an alert.

Models:
    EscalationTier: One tier of a rule (level, minutes, recipients)
    AlertEscalationRule: Named escalation policy
    AlertEscalation: One escalation attempt
    DeliveryResult: Outcome of sending through one channel
"""

import re
from datetime import datetime, timezone
from typing import Any, List, NamedTuple, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from erpwatch.models.alerts import Alert, AlertSeverity


DEFAULT_FIRST_ESCALATION_MINUTES = 15

_RECIPIENT_SPLIT = re.compile(r"[,;]")


def parse_recipients(value: Any) -> List[str]:
    """
    Normalize a recipient list.

    Accepts a comma/semicolon separated string or a list of strings and
    returns trimmed, non-empty entries in their original order.

    Example:
        >>> parse_recipients("ops@example.com; dba@example.com,")
        ['ops@example.com', 'dba@example.com']
    """
    if value is None:
        return []
    if isinstance(value, str):
        parts = _RECIPIENT_SPLIT.split(value)
    else:
        parts = [str(item) for item in value]
    return [p.strip() for p in parts if p and p.strip()]


class EscalationTier(NamedTuple):
    """A single escalation tier."""

    level: int
    minutes: int
    recipients: List[str]


class AlertEscalationRule(BaseModel):
    """
    Escalation policy for unacknowledged alerts.

    Attributes:
        rule_id: Store-assigned identifier (None until persisted).
        name: Rule name.
        description: Rule description.
        alert_type: Alert type filter, None for all types.
        min_severity: Minimum severity the rule applies to.
        first_escalation_minutes: Minutes before tier 1 fires.
        first_escalation_recipients: Tier 1 recipients.
        second_escalation_minutes: Minutes before tier 2 fires.
        second_escalation_recipients: Tier 2 recipients.
        final_escalation_minutes: Minutes before tier 3 fires.
        final_escalation_recipients: Tier 3 recipients.
        escalate_via_email: Send through the email channel.
        escalate_via_chat: Send through the chat channel.
        enabled: Whether the rule is active.
        created_by: Who created the rule.
        created_at: When the rule was created.
        updated_at: When the rule was last updated.

    Example:
        >>> rule = AlertEscalationRule(
        ...     name="Critical on-call",
        ...     min_severity=AlertSeverity.CRITICAL,
        ...     first_escalation_minutes=15,
        ...     first_escalation_recipients="oncall@example.com",
        ... )
        >>> [tier.level for tier in rule.tiers()]
        [1]
    """

    model_config = {"extra": "forbid"}

    rule_id: Optional[int] = Field(
        default=None,
        description="Store-assigned identifier",
    )
    name: str = Field(
        ...,
        description="Rule name",
        min_length=1,
        max_length=200,
    )
    description: str = Field(
        default="",
        description="Rule description",
    )
    alert_type: Optional[str] = Field(
        default=None,
        description="Alert type filter (None = all types)",
    )
    min_severity: AlertSeverity = Field(
        default=AlertSeverity.WARNING,
        description="Minimum severity the rule applies to",
    )
    first_escalation_minutes: int = Field(
        default=DEFAULT_FIRST_ESCALATION_MINUTES,
        description="Minutes since alert creation before tier 1",
        ge=0,
    )
    first_escalation_recipients: List[str] = Field(
        ...,
        description="Tier 1 recipients",
    )
    second_escalation_minutes: Optional[int] = Field(
        default=None,
        description="Minutes since alert creation before tier 2",
        ge=0,
    )
    second_escalation_recipients: List[str] = Field(
        default_factory=list,
        description="Tier 2 recipients",
    )
    final_escalation_minutes: Optional[int] = Field(
        default=None,
        description="Minutes since alert creation before tier 3",
        ge=0,
    )
    final_escalation_recipients: List[str] = Field(
        default_factory=list,
        description="Tier 3 recipients",
    )
    escalate_via_email: bool = Field(
        default=True,
        description="Send escalations by email",
    )
    escalate_via_chat: bool = Field(
        default=True,
        description="Send escalations to the chat channel",
    )
    enabled: bool = Field(
        default=True,
        description="Whether this rule is active",
    )
    created_by: str = Field(
        default="",
        description="Who created the rule",
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the rule was created",
    )
    updated_at: Optional[datetime] = Field(
        default=None,
        description="When the rule was last updated",
    )

    @field_validator(
        "first_escalation_recipients",
        "second_escalation_recipients",
        "final_escalation_recipients",
        mode="before",
    )
    @classmethod
    def split_recipients(cls, v: Any) -> List[str]:
        """Accept comma/semicolon separated recipient strings."""
        return parse_recipients(v)

    @field_validator("alert_type", mode="before")
    @classmethod
    def blank_type_means_all(cls, v: Any) -> Any:
        """Treat an empty alert type filter as 'all types'."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def validate_tiers(self) -> "AlertEscalationRule":
        """Validate tier ordering and recipients."""
        if not self.first_escalation_recipients:
            raise ValueError("first escalation tier requires at least one recipient")

        if self.second_escalation_minutes is None and self.second_escalation_recipients:
            raise ValueError("second escalation recipients require second_escalation_minutes")
        if self.final_escalation_minutes is None and self.final_escalation_recipients:
            raise ValueError("final escalation recipients require final_escalation_minutes")

        if self.second_escalation_minutes is not None:
            if not self.second_escalation_recipients:
                raise ValueError("second escalation tier requires at least one recipient")
            if self.second_escalation_minutes < self.first_escalation_minutes:
                raise ValueError("second escalation must not fire before the first")

        if self.final_escalation_minutes is not None:
            if self.second_escalation_minutes is None:
                raise ValueError("final escalation requires a second escalation tier")
            if not self.final_escalation_recipients:
                raise ValueError("final escalation tier requires at least one recipient")
            if self.final_escalation_minutes < self.second_escalation_minutes:
                raise ValueError("final escalation must not fire before the second")

        return self

    def tiers(self) -> List[EscalationTier]:
        """
        Return configured tiers in ascending order.

        Returns:
            List[EscalationTier]: Tiers with level 1, 2, 3 as configured.
        """
        tiers = [
            EscalationTier(1, self.first_escalation_minutes, self.first_escalation_recipients)
        ]
        if self.second_escalation_minutes is not None:
            tiers.append(
                EscalationTier(2, self.second_escalation_minutes, self.second_escalation_recipients)
            )
        if self.final_escalation_minutes is not None:
            tiers.append(
                EscalationTier(3, self.final_escalation_minutes, self.final_escalation_recipients)
            )
        return tiers

    def applies_to(self, alert: Alert) -> bool:
        """Check the rule's type filter and minimum severity against an alert."""
        if self.alert_type is not None and self.alert_type != alert.alert_type:
            return False
        return alert.severity.at_least(self.min_severity)


class AlertEscalation(BaseModel):
    """
    One escalation attempt. Records are append-only.

    Attributes:
        escalation_id: Unique record identifier.
        alert_id: Escalated alert.
        rule_id: Rule that triggered the escalation.
        level: Tier level (1, 2 or 3).
        recipients: Recipients notified.
        escalated_at: When the escalation was triggered.
        minutes_since_alert: Whole minutes between alert creation and escalation.
        sent_via_email: Whether the email channel succeeded.
        sent_via_chat: Whether the chat channel succeeded.
        error_message: Channel errors, if any.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    escalation_id: str = Field(
        default_factory=lambda: str(uuid4()),
        description="Unique record identifier",
    )
    alert_id: str = Field(..., description="Escalated alert")
    rule_id: int = Field(..., description="Rule that triggered the escalation")
    level: int = Field(..., description="Tier level", ge=1, le=3)
    recipients: List[str] = Field(
        default_factory=list,
        description="Recipients notified",
    )
    escalated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the escalation was triggered",
    )
    minutes_since_alert: int = Field(
        ...,
        description="Whole minutes since alert creation",
        ge=0,
    )
    sent_via_email: bool = Field(default=False, description="Email channel succeeded")
    sent_via_chat: bool = Field(default=False, description="Chat channel succeeded")
    error_message: Optional[str] = Field(
        default=None,
        description="Channel errors, if any",
    )


class DeliveryResult(BaseModel):
    """
    Outcome of sending one notification through one channel.

    Attributes:
        channel: Channel name (e.g., "email", "chat").
        success: Whether the channel accepted the message.
        error: Error text on failure.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    channel: str
    success: bool
    error: Optional[str] = None

    @classmethod
    def ok(cls, channel: str) -> "DeliveryResult":
        """Successful delivery."""
        return cls(channel=channel, success=True)

    @classmethod
    def failed(cls, channel: str, error: str) -> "DeliveryResult":
        """Failed delivery with an error message."""
        return cls(channel=channel, success=False, error=error)
