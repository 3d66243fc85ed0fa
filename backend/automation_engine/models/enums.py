from enum import Enum


class ComparisonOperator(str, Enum):
    GT = "GT"
    LT = "LT"
    GTE = "GTE"
    LTE = "LTE"
    EQ = "EQ"
    NE = "NE"


class ActionType(str, Enum):
    CREATE_ALERT = "CREATE_ALERT"
    TRIGGER_ACTUATOR = "TRIGGER_ACTUATOR"


class AlertSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ExecutionStatus(str, Enum):
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    SKIPPED_COOLDOWN = "SKIPPED_COOLDOWN"
