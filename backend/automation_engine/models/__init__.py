from automation_engine.models.automation_execution import AutomationExecution
from automation_engine.models.automation_rule import AutomationRule
from automation_engine.models.enums import ActionType, AlertSeverity, ComparisonOperator, ExecutionStatus

__all__ = [
    "ActionType",
    "AlertSeverity",
    "AutomationExecution",
    "AutomationRule",
    "ComparisonOperator",
    "ExecutionStatus",
]
