import logging
import math
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Optional

from sqlalchemy.orm import Session, sessionmaker

from automation_engine.core.exceptions import ReadingUnavailable, RuleValidationError
from automation_engine.crud import rule_crud
from automation_engine.models.automation_execution import AutomationExecution
from automation_engine.models.automation_rule import AutomationRule
from automation_engine.models.enums import ExecutionStatus
from automation_engine.services.collaborators import ReadingSource
from automation_engine.services.conditions import evaluate
from automation_engine.services.cooldown import CooldownState, cooldown_state, ensure_utc, rearm_at, utc_now
from automation_engine.services.dispatcher import ActionDispatcher, EvaluationContext
from automation_engine.services.recorder import ExecutionRecorder, execution_recorder

logger = logging.getLogger(__name__)


class EvaluationOutcome(str, Enum):
    NOT_TRIGGERED = "NOT_TRIGGERED"
    FIRED = "FIRED"
    FAILED = "FAILED"
    SKIPPED_COOLDOWN = "SKIPPED_COOLDOWN"
    READING_UNAVAILABLE = "READING_UNAVAILABLE"
    SKIPPED_INACTIVE = "SKIPPED_INACTIVE"
    ERROR = "ERROR"


@dataclass
class EvaluationResult:
    rule_id: int
    outcome: EvaluationOutcome
    execution: Optional[AutomationExecution] = None
    reason: Optional[str] = None


class AutomationEngine:
    """Evaluates one rule: read, compare, check cooldown, dispatch, record.

    Evaluations of the same rule are serialized on a per-rule lock held from the
    cooldown check through the execution write, so a manual evaluation racing a
    scheduler cycle cannot fire twice inside one cooldown window. The lock is
    process-local.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        reading_source: ReadingSource,
        dispatcher: ActionDispatcher,
        recorder: ExecutionRecorder = execution_recorder,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.session_factory = session_factory
        self.reading_source = reading_source
        self.dispatcher = dispatcher
        self.recorder = recorder
        self.clock = clock
        self._rule_locks: Dict[int, threading.Lock] = {}
        self._rule_locks_guard = threading.Lock()

    def _rule_lock(self, rule_id: int) -> threading.Lock:
        with self._rule_locks_guard:
            return self._rule_locks.setdefault(rule_id, threading.Lock())

    def evaluate_rule(
        self,
        rule_id: int,
        now: Optional[datetime] = None,
        sensor_value: Optional[float] = None,
        manual: bool = False,
        require_active: bool = False,
    ) -> EvaluationResult:
        with self._rule_lock(rule_id), self.session_factory() as db:
            rule = rule_crud.get(db, rule_id)
            if require_active and not rule.is_active:
                logger.info("Rule %s skipped: inactive", rule_id)
                return EvaluationResult(rule_id, EvaluationOutcome.SKIPPED_INACTIVE, reason="rule is inactive")
            return self._evaluate(db, rule, now, sensor_value, manual)

    def evaluate(
        self,
        db: Session,
        rule: AutomationRule,
        now: Optional[datetime] = None,
        sensor_value: Optional[float] = None,
        manual: bool = False,
    ) -> EvaluationResult:
        with self._rule_lock(rule.id):
            # another evaluation may have fired while we waited
            db.refresh(rule)
            return self._evaluate(db, rule, now, sensor_value, manual)

    def _read(self, deployment_id: int) -> float:
        value = self.reading_source.get_latest_value(deployment_id).value
        if not math.isfinite(value):
            raise ReadingUnavailable(deployment_id, f"non-finite value {value!r}")
        return value

    def _evaluate(
        self,
        db: Session,
        rule: AutomationRule,
        now: Optional[datetime],
        sensor_value: Optional[float],
        manual: bool,
    ) -> EvaluationResult:
        now = ensure_utc(now or self.clock())

        if sensor_value is None:
            try:
                sensor_value = self._read(rule.sensor_deployment_id)
            except ReadingUnavailable as exc:
                logger.info("Rule %s skipped: %s", rule.id, exc)
                return EvaluationResult(rule.id, EvaluationOutcome.READING_UNAVAILABLE, reason=str(exc))
        elif not math.isfinite(sensor_value):
            raise RuleValidationError(f"sensor_value must be a finite number, got {sensor_value!r}")

        record = dict(evaluated_at=now, sensor_value=sensor_value, manual=manual)

        if not evaluate(rule.operator, sensor_value, rule.threshold_value):
            logger.debug("Rule %s not triggered (%s %s %s)", rule.id, sensor_value, rule.operator, rule.threshold_value)
            execution = self.recorder.record(
                db, rule, triggered=False, action_executed=False, status=ExecutionStatus.COMPLETED, **record
            )
            return EvaluationResult(rule.id, EvaluationOutcome.NOT_TRIGGERED, execution=execution)

        if cooldown_state(rule.last_triggered, rule.cooldown_minutes, now) is CooldownState.COOLING:
            armed_at = rearm_at(rule.last_triggered, rule.cooldown_minutes)
            logger.info("Rule %s triggered but cooling down until %s", rule.id, armed_at.isoformat())
            execution = self.recorder.record(
                db, rule, triggered=True, action_executed=False, status=ExecutionStatus.SKIPPED_COOLDOWN, **record
            )
            return EvaluationResult(
                rule.id,
                EvaluationOutcome.SKIPPED_COOLDOWN,
                execution=execution,
                reason=f"cooling down until {armed_at.isoformat()}",
            )

        context = EvaluationContext(
            sensor_value=sensor_value,
            threshold_value=rule.threshold_value,
            operator=rule.operator,
            sensor_deployment_id=rule.sensor_deployment_id,
        )
        action_result = self.dispatcher.dispatch(rule, context)
        status = ExecutionStatus.COMPLETED if action_result.success else ExecutionStatus.FAILED
        execution = self.recorder.record(
            db,
            rule,
            triggered=True,
            action_executed=True,
            status=status,
            result=action_result.result if action_result.success else None,
            error=None if action_result.success else action_result.error,
            duration_ms=action_result.duration_ms,
            **record,
        )
        if action_result.success:
            return EvaluationResult(rule.id, EvaluationOutcome.FIRED, execution=execution)
        return EvaluationResult(rule.id, EvaluationOutcome.FAILED, execution=execution, reason=action_result.error)
