"""
Escalation API endpoints.

Provides:
    GET    /api/escalation/rules                - Rules, optionally by enabled flag
    GET    /api/escalation/rules/{rule_id}      - One rule
    POST   /api/escalation/rules                - Create a rule
    PUT    /api/escalation/rules/{rule_id}      - Replace a rule
    DELETE /api/escalation/rules/{rule_id}      - Delete a rule
    GET    /api/escalation/alerts/{alert_id}    - Escalation history of an alert
    POST   /api/escalation/check                - Run one escalation cycle now
"""

from typing import List, Optional, Union

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import BaseModel, Field, ValidationError

from erpwatch.models.alerts import AlertSeverity
from erpwatch.models.escalation import AlertEscalation, AlertEscalationRule
from erpwatch.services.components import EngineComponents
from services.api.dependencies import get_components

logger = structlog.get_logger(__name__)

router = APIRouter()


class EscalationRuleRequest(BaseModel):
    """
    Request body for creating or replacing an escalation rule.

    Recipients may be given as a list or as a comma/semicolon separated
    string.
    """

    name: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    alert_type: Optional[str] = None
    min_severity: AlertSeverity = AlertSeverity.WARNING
    first_escalation_minutes: int = Field(15, ge=0)
    first_escalation_recipients: Union[str, List[str]]
    second_escalation_minutes: Optional[int] = Field(None, ge=0)
    second_escalation_recipients: Union[str, List[str]] = Field(default_factory=list)
    final_escalation_minutes: Optional[int] = Field(None, ge=0)
    final_escalation_recipients: Union[str, List[str]] = Field(default_factory=list)
    escalate_via_email: bool = True
    escalate_via_chat: bool = True
    enabled: bool = True
    created_by: str = ""

    model_config = {
        "json_schema_extra": {
            "example": {
                "name": "Critical on-call",
                "min_severity": "Critical",
                "first_escalation_minutes": 15,
                "first_escalation_recipients": "oncall@example.com",
                "second_escalation_minutes": 30,
                "second_escalation_recipients": ["lead@example.com"],
            }
        }
    }

    def to_rule(self) -> AlertEscalationRule:
        """
        Build the domain rule, answering 422 when tiers are inconsistent.

        Raises:
            HTTPException: 422 with the validation errors.
        """
        try:
            return AlertEscalationRule(**self.model_dump())
        except ValidationError as e:
            raise HTTPException(status_code=422, detail=_validation_detail(e))


def _validation_detail(error: ValidationError) -> List[dict]:
    return [
        {"loc": list(item.get("loc", ())), "msg": item.get("msg", "")}
        for item in error.errors()
    ]


class RulesResponse(BaseModel):
    rules: List[AlertEscalationRule]
    count: int


class EscalationsResponse(BaseModel):
    escalations: List[AlertEscalation]
    count: int


@router.get(
    "/escalation/rules",
    response_model=RulesResponse,
    summary="List escalation rules",
)
async def list_rules(
    enabled: Optional[bool] = Query(None, description="Filter by enabled flag"),
    components: EngineComponents = Depends(get_components),
) -> RulesResponse:
    rules = await components.escalation.list_rules(enabled=enabled)
    return RulesResponse(rules=rules, count=len(rules))


@router.get(
    "/escalation/rules/{rule_id}",
    response_model=AlertEscalationRule,
    summary="Get an escalation rule",
)
async def get_rule(
    rule_id: int,
    components: EngineComponents = Depends(get_components),
) -> AlertEscalationRule:
    return await components.escalation.get_rule(rule_id)


@router.post(
    "/escalation/rules",
    response_model=AlertEscalationRule,
    status_code=201,
    summary="Create an escalation rule",
)
async def create_rule(
    request: EscalationRuleRequest,
    components: EngineComponents = Depends(get_components),
) -> AlertEscalationRule:
    return await components.escalation.create_rule(request.to_rule())


@router.put(
    "/escalation/rules/{rule_id}",
    response_model=AlertEscalationRule,
    summary="Replace an escalation rule",
)
async def update_rule(
    rule_id: int,
    request: EscalationRuleRequest,
    components: EngineComponents = Depends(get_components),
) -> AlertEscalationRule:
    return await components.escalation.update_rule(rule_id, request.to_rule())


@router.delete(
    "/escalation/rules/{rule_id}",
    status_code=204,
    summary="Delete an escalation rule",
)
async def delete_rule(
    rule_id: int,
    components: EngineComponents = Depends(get_components),
) -> Response:
    await components.escalation.delete_rule(rule_id)
    return Response(status_code=204)


@router.get(
    "/escalation/alerts/{alert_id}",
    response_model=EscalationsResponse,
    summary="Get the escalation history of an alert",
)
async def get_alert_escalations(
    alert_id: str,
    components: EngineComponents = Depends(get_components),
) -> EscalationsResponse:
    escalations = await components.escalation.get_escalations_for_alert(alert_id)
    return EscalationsResponse(escalations=escalations, count=len(escalations))


@router.post(
    "/escalation/check",
    response_model=EscalationsResponse,
    summary="Run an escalation cycle",
    description="Checks unacknowledged alerts against enabled rules and fires due tiers.",
)
async def run_escalation_check(
    components: EngineComponents = Depends(get_components),
) -> EscalationsResponse:
    escalations = await components.escalation.check_and_escalate()
    logger.info("api_escalation_check", escalations=len(escalations))
    return EscalationsResponse(escalations=escalations, count=len(escalations))
