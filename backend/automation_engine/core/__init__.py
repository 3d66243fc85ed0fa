from automation_engine.core.config import Settings, settings
from automation_engine.core.database import Base, SessionLocal, engine, get_db
from automation_engine.core.exceptions import (
    AutomationError,
    DispatchFailure,
    NotFoundError,
    ReadingUnavailable,
    RuleValidationError,
    StoreUnavailable,
)

__all__ = [
    "AutomationError",
    "Base",
    "DispatchFailure",
    "NotFoundError",
    "ReadingUnavailable",
    "RuleValidationError",
    "SessionLocal",
    "Settings",
    "StoreUnavailable",
    "engine",
    "get_db",
    "settings",
]
