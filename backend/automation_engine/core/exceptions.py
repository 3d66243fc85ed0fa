"""Error taxonomy for rule management and evaluation."""


class AutomationError(Exception):
    """Base class for all automation engine errors."""


class RuleValidationError(AutomationError, ValueError):
    """A rule definition is malformed (bad operator, missing action fields, negative cooldown)."""


class NotFoundError(AutomationError):
    def __init__(self, entity: str, entity_id: object) -> None:
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class ReadingUnavailable(AutomationError):
    """The reading source has no usable current value for a deployment."""

    def __init__(self, deployment_id: int, reason: str = "no current reading") -> None:
        super().__init__(f"deployment {deployment_id}: {reason}")
        self.deployment_id = deployment_id
        self.reason = reason


class DispatchFailure(AutomationError):
    """An alert or actuator submission failed."""


class StoreUnavailable(AutomationError):
    """The rule store could not be reached; the whole cycle is aborted."""
