from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ExecutionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    rule_id: int
    triggered_at: datetime
    sensor_value: float
    threshold_value: float
    operator: str
    triggered: bool
    action_executed: bool
    status: str
    result: dict[str, Any] | None
    error: str | None
    duration_ms: float | None
    manual: bool


class ExecutionListResponse(BaseModel):
    items: list[ExecutionOut]
    count: int


class EvaluateRequest(BaseModel):
    sensor_value: float | None = Field(default=None, allow_inf_nan=False)


class EvaluationOut(BaseModel):
    rule_id: int
    outcome: str
    reason: str | None = None
    execution: ExecutionOut | None = None


class CycleSummaryOut(BaseModel):
    started_at: datetime
    finished_at: datetime | None
    evaluated: int
    triggered: int
    fired: int
    skipped_cooldown: int
    failed: int
    unavailable: int
    errors: int
