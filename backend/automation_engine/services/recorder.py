import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from automation_engine.crud import execution_crud, rule_crud
from automation_engine.models.automation_execution import AutomationExecution
from automation_engine.models.automation_rule import AutomationRule
from automation_engine.models.enums import ExecutionStatus
from automation_engine.services.cooldown import ensure_utc

logger = logging.getLogger(__name__)


class ExecutionRecorder:
    """Writes the execution log entry first, then the rule's derived counters.

    The log row is the audit source of truth. When the counter update fails the
    inconsistency is logged with the execution id and the rule can be repaired
    with ``rule_crud.reconcile_counters``.
    """

    def record(
        self,
        db: Session,
        rule: AutomationRule,
        *,
        evaluated_at: datetime,
        sensor_value: float,
        triggered: bool,
        action_executed: bool,
        status: ExecutionStatus,
        result: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
        duration_ms: Optional[float] = None,
        manual: bool = False,
    ) -> AutomationExecution:
        if result is not None and error is not None:
            raise ValueError("an execution carries either a result or an error, not both")

        execution = execution_crud.create(
            db,
            {
                "rule_id": rule.id,
                "triggered_at": ensure_utc(evaluated_at),
                "sensor_value": sensor_value,
                "threshold_value": rule.threshold_value,
                "operator": rule.operator,
                "triggered": triggered,
                "action_executed": action_executed,
                "status": status.value,
                "result": result,
                "error": error,
                "duration_ms": duration_ms if action_executed else None,
                "manual": manual,
            },
        )

        if action_executed:
            try:
                rule_crud.record_trigger_outcome(
                    db, rule.id, evaluated_at, success=status == ExecutionStatus.COMPLETED
                )
            except Exception:
                db.rollback()
                logger.error(
                    "Execution %s for rule %s was logged but the rule counters were not updated; "
                    "reconcile the rule from its execution log",
                    execution.id,
                    rule.id,
                )
                raise

        return execution


execution_recorder = ExecutionRecorder()
