from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from automation_engine.models.enums import AlertSeverity, ComparisonOperator
from automation_engine.services.conditions import parse_operator

ALERT_FIELDS = ("alert_title", "alert_message", "alert_severity")
ACTUATOR_FIELDS = ("target_deployment_id", "actuator_command", "actuator_parameters")
ACTION_FIELDS = ALERT_FIELDS + ACTUATOR_FIELDS


class AlertAction(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    action_type: Literal["CREATE_ALERT"] = "CREATE_ALERT"
    alert_title: str = Field(..., min_length=1, max_length=200)
    alert_message: str = Field(..., min_length=1)
    alert_severity: AlertSeverity


class ActuatorAction(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    action_type: Literal["TRIGGER_ACTUATOR"] = "TRIGGER_ACTUATOR"
    target_deployment_id: int
    actuator_command: str = Field(..., min_length=1, max_length=100)
    actuator_parameters: dict[str, Any] = Field(default_factory=dict)


RuleAction = Annotated[Union[AlertAction, ActuatorAction], Field(discriminator="action_type")]


def lift_action_fields(data: dict[str, Any]) -> dict[str, Any]:
    """Move flat ``action_type``/payload keys into a nested ``action`` object.

    The REST payloads carry the action fields next to the rule fields. Keys
    whose value is None are dropped so that the unused variant never leaks in.
    """
    lifted = dict(data)
    action = {}
    for key in ("action_type",) + ACTION_FIELDS:
        if key in lifted:
            value = lifted.pop(key)
            if value is not None:
                action[key] = value
    lifted["action"] = action
    return lifted


class RuleBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    sensor_deployment_id: int
    operator: ComparisonOperator
    threshold_value: float = Field(..., allow_inf_nan=False)
    cooldown_minutes: int = Field(default=0, ge=0)
    is_active: bool = True

    @field_validator("operator", mode="before")
    @classmethod
    def _normalize_operator(cls, value: Any) -> ComparisonOperator:
        return parse_operator(value)


class RuleCreate(RuleBase):
    model_config = ConfigDict(extra="forbid")

    action: RuleAction

    @model_validator(mode="before")
    @classmethod
    def _accept_flat_action(cls, data: Any) -> Any:
        if isinstance(data, dict) and "action" not in data:
            return lift_action_fields(data)
        return data

    def to_columns(self) -> dict[str, Any]:
        """Flatten into ORM column values; the unused variant's columns are set to None."""
        columns = self.model_dump(exclude={"action"})
        columns.update({field: None for field in ACTION_FIELDS})
        columns.update(self.action.model_dump())
        columns["operator"] = self.operator.value
        if isinstance(self.action, AlertAction):
            columns["alert_severity"] = self.action.alert_severity.value
        return columns


class RuleUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    sensor_deployment_id: int | None = None
    operator: ComparisonOperator | None = None
    threshold_value: float | None = Field(default=None, allow_inf_nan=False)
    cooldown_minutes: int | None = Field(default=None, ge=0)
    is_active: bool | None = None
    action_type: Literal["CREATE_ALERT", "TRIGGER_ACTUATOR"] | None = None
    alert_title: str | None = None
    alert_message: str | None = None
    alert_severity: AlertSeverity | None = None
    target_deployment_id: int | None = None
    actuator_command: str | None = None
    actuator_parameters: dict[str, Any] | None = None

    @field_validator("operator", mode="before")
    @classmethod
    def _normalize_operator(cls, value: Any) -> ComparisonOperator | None:
        if value is None:
            return None
        return parse_operator(value)


class RuleActivate(BaseModel):
    is_active: bool


class RuleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str | None
    sensor_deployment_id: int
    operator: str
    threshold_value: float
    action_type: str
    alert_title: str | None
    alert_message: str | None
    alert_severity: str | None
    target_deployment_id: int | None
    actuator_command: str | None
    actuator_parameters: dict[str, Any] | None
    cooldown_minutes: int
    is_active: bool
    last_triggered: datetime | None
    trigger_count: int
    success_count: int
    failure_count: int
    created_at: datetime
    updated_at: datetime


class RuleListResponse(BaseModel):
    items: list[RuleOut]
    count: int
