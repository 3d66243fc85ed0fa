from automation_engine.schemas.execution import (
    CycleSummaryOut,
    EvaluateRequest,
    EvaluationOut,
    ExecutionListResponse,
    ExecutionOut,
)
from automation_engine.schemas.rule import (
    ActuatorAction,
    AlertAction,
    RuleActivate,
    RuleCreate,
    RuleListResponse,
    RuleOut,
    RuleUpdate,
)

__all__ = [
    "ActuatorAction",
    "AlertAction",
    "CycleSummaryOut",
    "EvaluateRequest",
    "EvaluationOut",
    "ExecutionListResponse",
    "ExecutionOut",
    "RuleActivate",
    "RuleCreate",
    "RuleListResponse",
    "RuleOut",
    "RuleUpdate",
]
