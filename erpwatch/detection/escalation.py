"""
Escalation engine for unacknowledged alerts.

This module provides the EscalationEngine class which walks the enabled
escalation rules, finds Active alerts each rule applies to, and notifies
every tier whose time threshold has passed. Each tier fires at most once
per (alert, rule) pair. A tier is claimed in the store before it is sent,
so overlapping cycles never notify the same tier twice.

Key Features:
    - Up to three tiers per rule, fired in ascending order
    - Catch-up: all tiers due in a cycle fire in that cycle
    - Acknowledged or resolved alerts are never escalated
    - Channel failures are recorded on the escalation row, never raised

Example:
    >>> engine = EscalationEngine(store, dispatcher)
    >>> escalations = await engine.check_and_escalate()
    >>> for escalation in escalations:
    ...     print(escalation.alert_id, escalation.level)
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import List, Optional

import structlog

from erpwatch.detection.dispatcher import CHANNEL_CHAT, CHANNEL_EMAIL, ChannelDispatcher
from erpwatch.interfaces.alert_store import AlertStore, NotFoundError
from erpwatch.models.alerts import Alert
from erpwatch.models.escalation import (
    AlertEscalation,
    AlertEscalationRule,
    DeliveryResult,
    EscalationTier,
)

logger = structlog.get_logger(__name__)

# Error text on a claimed record until its delivery outcome is written
DELIVERY_PENDING = "delivery pending"


def build_escalation_message(
    alert: Alert,
    rule: AlertEscalationRule,
    level: int,
    minutes_since_alert: int,
) -> str:
    """
    Build the escalation message body.

    Example:
        >>> print(build_escalation_message(alert, rule, 1, 20).splitlines()[0])
        ALERT ESCALATION (Level 1)
    """
    return (
        f"ALERT ESCALATION (Level {level})\n\n"
        f"Alert: {alert.alert_id}\n"
        f"Type: {alert.alert_type}\n"
        f"Severity: {alert.severity.value}\n"
        f"Message: {alert.message}\n"
        f"Created: {alert.created_at:%Y-%m-%d %H:%M:%S} UTC\n"
        f"Minutes Since Alert: {minutes_since_alert}\n"
        f"Escalation Rule: {rule.name}"
    )


def build_escalation_subject(alert: Alert, level: int) -> str:
    """Build the escalation message subject."""
    return f"[{alert.severity.value}] Alert Escalation (Level {level}): {alert.alert_type}"


class EscalationEngine:
    """
    Escalates unacknowledged alerts through rule tiers.

    Attributes:
        store: AlertStore for rules, alerts and escalation records.
        dispatcher: ChannelDispatcher used for delivery.
    """

    def __init__(self, store: AlertStore, dispatcher: ChannelDispatcher) -> None:
        self.store = store
        self.dispatcher = dispatcher

        logger.info(
            "escalation_engine_initialized",
            channels=dispatcher.channel_names,
        )

    async def check_and_escalate(
        self,
        now: Optional[datetime] = None,
        shutdown_event: Optional[asyncio.Event] = None,
    ) -> List[AlertEscalation]:
        """
        Run one escalation cycle.

        Args:
            now: Current time (defaults to now).
            shutdown_event: Stops the cycle between rules and alerts when set.

        Returns:
            List[AlertEscalation]: Escalation records appended this cycle.

        Raises:
            Exception: Store errors propagate to the caller.
        """
        current = now or datetime.now(timezone.utc)
        start = time.monotonic()
        escalations: List[AlertEscalation] = []

        rules = await self.store.list_rules(enabled=True)
        if not rules:
            logger.warning("escalation_no_rules")
            return escalations

        for rule in rules:
            if self._stopping(shutdown_event):
                break
            if rule.rule_id is None:
                continue

            alerts = await self.store.get_escalation_candidates(
                rule.alert_type, rule.min_severity
            )
            for alert in sorted(alerts, key=lambda a: (a.created_at, a.alert_id)):
                if self._stopping(shutdown_event):
                    break
                if not alert.is_active or not rule.applies_to(alert):
                    continue
                escalations.extend(await self._escalate_alert(alert, rule, current))

        logger.info(
            "escalation_check_completed",
            rules=len(rules),
            escalations=len(escalations),
            elapsed_ms=round((time.monotonic() - start) * 1000, 2),
        )
        return escalations

    async def _escalate_alert(
        self,
        alert: Alert,
        rule: AlertEscalationRule,
        now: datetime,
    ) -> List[AlertEscalation]:
        """Fire every due, unclaimed tier of a rule for one alert."""
        fired: List[AlertEscalation] = []
        age = alert.age_minutes(now)
        if age < 0:
            return fired

        for tier in rule.tiers():
            if tier.minutes > age:
                break
            escalation = await self._fire_tier(alert, rule, tier, int(age), now)
            if escalation is not None:
                fired.append(escalation)
        return fired

    async def _fire_tier(
        self,
        alert: Alert,
        rule: AlertEscalationRule,
        tier: EscalationTier,
        minutes_since_alert: int,
        now: datetime,
    ) -> Optional[AlertEscalation]:
        """
        Claim a tier, notify its recipients and record the outcome.

        The record is inserted before sending so that overlapping cycles
        notify each tier once; a tier already claimed returns None.
        """
        claim = AlertEscalation(
            alert_id=alert.alert_id,
            rule_id=rule.rule_id,
            level=tier.level,
            recipients=list(tier.recipients),
            escalated_at=now,
            minutes_since_alert=minutes_since_alert,
            error_message=DELIVERY_PENDING,
        )
        if not await self.store.claim_escalation(claim):
            logger.debug(
                "escalation_tier_already_claimed",
                alert_id=alert.alert_id,
                rule_id=rule.rule_id,
                level=tier.level,
            )
            return None

        subject = build_escalation_subject(alert, tier.level)
        body = build_escalation_message(alert, rule, tier.level, minutes_since_alert)

        results: List[DeliveryResult] = []
        if rule.escalate_via_email:
            results.append(
                await self.dispatcher.send(CHANNEL_EMAIL, tier.recipients, subject, body)
            )
        if rule.escalate_via_chat:
            results.append(
                await self.dispatcher.send(CHANNEL_CHAT, tier.recipients, subject, body)
            )

        errors = [f"{r.channel}: {r.error}" for r in results if not r.success]
        escalation = claim.model_copy(
            update={
                "sent_via_email": any(r.success for r in results if r.channel == CHANNEL_EMAIL),
                "sent_via_chat": any(r.success for r in results if r.channel == CHANNEL_CHAT),
                "error_message": "; ".join(errors) if errors else None,
            }
        )
        await self.store.record_escalation_outcome(escalation)

        log = logger.warning if errors else logger.info
        log(
            "alert_escalated",
            alert_id=alert.alert_id,
            rule_id=rule.rule_id,
            level=tier.level,
            minutes_since_alert=minutes_since_alert,
            sent_via_email=escalation.sent_via_email,
            sent_via_chat=escalation.sent_via_chat,
            error=escalation.error_message,
        )
        return escalation

    @staticmethod
    def _stopping(shutdown_event: Optional[asyncio.Event]) -> bool:
        if shutdown_event is not None and shutdown_event.is_set():
            logger.info("escalation_run_interrupted")
            return True
        return False

    # =========================================================================
    # RULES AND HISTORY
    # =========================================================================

    async def list_rules(self, enabled: Optional[bool] = None) -> List[AlertEscalationRule]:
        """List escalation rules, optionally filtered by enabled flag."""
        return await self.store.list_rules(enabled=enabled)

    async def get_rule(self, rule_id: int) -> AlertEscalationRule:
        """
        Get a rule by identifier.

        Raises:
            NotFoundError: If the rule does not exist.
        """
        rule = await self.store.get_rule(rule_id)
        if rule is None:
            raise NotFoundError("escalation rule", rule_id)
        return rule

    async def create_rule(self, rule: AlertEscalationRule) -> AlertEscalationRule:
        """Create a rule; the store assigns its identifier."""
        created = await self.store.create_rule(
            rule.model_copy(update={"rule_id": None, "created_at": datetime.now(timezone.utc)})
        )
        logger.info("escalation_rule_created", rule_id=created.rule_id, name=created.name)
        return created

    async def update_rule(
        self,
        rule_id: int,
        rule: AlertEscalationRule,
    ) -> AlertEscalationRule:
        """
        Replace a rule.

        Raises:
            NotFoundError: If the rule does not exist.
        """
        existing = await self.get_rule(rule_id)
        updated = rule.model_copy(
            update={
                "rule_id": rule_id,
                "created_at": existing.created_at,
                "created_by": rule.created_by or existing.created_by,
                "updated_at": datetime.now(timezone.utc),
            }
        )
        if not await self.store.update_rule(updated):
            raise NotFoundError("escalation rule", rule_id)
        logger.info("escalation_rule_updated", rule_id=rule_id)
        return updated

    async def delete_rule(self, rule_id: int) -> None:
        """
        Delete a rule.

        Raises:
            NotFoundError: If the rule does not exist.
        """
        if not await self.store.delete_rule(rule_id):
            raise NotFoundError("escalation rule", rule_id)
        logger.info("escalation_rule_deleted", rule_id=rule_id)

    async def get_escalations_for_alert(self, alert_id: str) -> List[AlertEscalation]:
        """
        Get the escalation history of an alert.

        Raises:
            NotFoundError: If the alert does not exist.
        """
        if await self.store.get_alert(alert_id) is None:
            raise NotFoundError("alert", alert_id)
        return await self.store.list_escalations_for_alert(alert_id)
