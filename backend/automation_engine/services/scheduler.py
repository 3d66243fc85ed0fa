import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from automation_engine.core.exceptions import NotFoundError, StoreUnavailable
from automation_engine.crud import rule_crud
from automation_engine.services.cooldown import ensure_utc, utc_now
from automation_engine.services.engine import AutomationEngine, EvaluationOutcome, EvaluationResult

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    IDLE = "IDLE"
    EVALUATING = "EVALUATING"


@dataclass
class CycleSummary:
    started_at: datetime
    finished_at: Optional[datetime] = None
    evaluated: int = 0
    triggered: int = 0
    fired: int = 0
    skipped_cooldown: int = 0
    failed: int = 0
    unavailable: int = 0
    errors: int = 0

    def add(self, result: EvaluationResult) -> None:
        outcome = result.outcome
        if result.execution is not None:
            self.evaluated += 1
        if outcome in (EvaluationOutcome.FIRED, EvaluationOutcome.FAILED, EvaluationOutcome.SKIPPED_COOLDOWN):
            self.triggered += 1
        if outcome is EvaluationOutcome.FIRED:
            self.fired += 1
        elif outcome is EvaluationOutcome.FAILED:
            self.failed += 1
        elif outcome is EvaluationOutcome.SKIPPED_COOLDOWN:
            self.skipped_cooldown += 1
        elif outcome is EvaluationOutcome.READING_UNAVAILABLE:
            self.unavailable += 1
        elif outcome is EvaluationOutcome.ERROR:
            self.errors += 1


class RuleScheduler:
    """Periodically evaluates every active rule.

    One driver thread runs the cycles (Idle -> Evaluating -> Idle). Inside a
    cycle the rules are evaluated independently on a thread pool, each with its
    own database session, so a slow dispatch only delays its own rule.
    """

    def __init__(
        self,
        engine: AutomationEngine,
        session_factory: sessionmaker,
        interval_seconds: float = 30.0,
        max_workers: int = 4,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.engine = engine
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds
        self.max_workers = max_workers
        self.clock = clock or engine.clock or utc_now

        self.state = SchedulerState.IDLE
        self.cycles_run = 0
        self.last_summary: Optional[CycleSummary] = None
        self.last_error: Optional[str] = None

        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._cycle_lock = threading.Lock()

    @property
    def running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run_loop, name="rule_scheduler", daemon=True)
        self._thread.start()
        logger.info("Rule scheduler started (interval=%ss, workers=%s)", self.interval_seconds, self.max_workers)

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop scheduling cycles; a cycle in progress finishes its dispatches first."""
        self._stop.set()
        thread = self._thread
        if thread and thread.is_alive():
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning("Rule scheduler still finishing an evaluation cycle after %ss", timeout)
        logger.info("Rule scheduler stopped")

    def _run_loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.run_cycle()
            except StoreUnavailable:
                pass  # logged in _active_rule_ids; retried next interval
            except Exception:
                logger.exception("Evaluation cycle crashed")
            self._stop.wait(self.interval_seconds)

    def _active_rule_ids(self) -> List[int]:
        try:
            with self.session_factory() as db:
                return [rule.id for rule in rule_crud.list_active(db)]
        except SQLAlchemyError as exc:
            self.last_error = f"rule store unavailable: {exc}"
            logger.error("Rule store unavailable, aborting evaluation cycle: %s", exc)
            raise StoreUnavailable(str(exc)) from exc

    def _evaluate_isolated(self, rule_id: int, now: datetime) -> EvaluationResult:
        try:
            return self.engine.evaluate_rule(rule_id, now=now, require_active=True)
        except NotFoundError:
            logger.info("Rule %s skipped: deleted during the cycle", rule_id)
            return EvaluationResult(rule_id, EvaluationOutcome.SKIPPED_INACTIVE, reason="rule no longer exists")
        except Exception as exc:
            logger.exception("Rule %s evaluation failed", rule_id)
            return EvaluationResult(rule_id, EvaluationOutcome.ERROR, reason=str(exc))

    def run_cycle(self, now: Optional[datetime] = None) -> CycleSummary:
        with self._cycle_lock:
            now = ensure_utc(now or self.clock())
            self.state = SchedulerState.EVALUATING
            try:
                rule_ids = self._active_rule_ids()
                summary = CycleSummary(started_at=now)

                if self.max_workers <= 1 or len(rule_ids) <= 1:
                    for rule_id in rule_ids:
                        summary.add(self._evaluate_isolated(rule_id, now))
                else:
                    workers = min(self.max_workers, len(rule_ids))
                    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="rule_eval") as executor:
                        futures = {executor.submit(self._evaluate_isolated, rule_id, now): rule_id for rule_id in rule_ids}
                        for future in as_completed(futures):
                            summary.add(future.result())

                summary.finished_at = self.clock()
                self.cycles_run += 1
                self.last_summary = summary
                self.last_error = None
                logger.info(
                    "Evaluation cycle done: %s rules, %s evaluated, %s fired, %s cooling, %s failed, %s unavailable, %s errors",
                    len(rule_ids),
                    summary.evaluated,
                    summary.fired,
                    summary.skipped_cooldown,
                    summary.failed,
                    summary.unavailable,
                    summary.errors,
                )
                return summary
            finally:
                self.state = SchedulerState.IDLE

    def status(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "running": self.running,
            "interval_seconds": self.interval_seconds,
            "max_workers": self.max_workers,
            "cycles_run": self.cycles_run,
            "last_cycle": asdict(self.last_summary) if self.last_summary else None,
            "last_error": self.last_error,
        }
