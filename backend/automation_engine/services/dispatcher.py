import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from automation_engine.core.exceptions import DispatchFailure
from automation_engine.models.automation_rule import AutomationRule
from automation_engine.schemas.rule import ActuatorAction, AlertAction
from automation_engine.services.collaborators import ActuatorCommandSink, AlertSink

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EvaluationContext:
    sensor_value: float
    threshold_value: float
    operator: str
    sensor_deployment_id: int


@dataclass
class ActionResult:
    success: bool
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    duration_ms: float = 0.0


def _created_id(response: Any) -> Any:
    if isinstance(response, dict):
        for key in ("id", "alertId", "actuatorCommandId"):
            if response.get(key) is not None:
                return response[key]
    return None


class ActionDispatcher:
    """Runs a rule's action against the alert or actuator collaborator.

    Failures are not retried: alerts are re-raised by the next cycle while the
    condition holds, and actuator commands may move physical hardware.
    """

    def __init__(self, alert_sink: AlertSink, actuator_sink: ActuatorCommandSink, timeout: float = 10.0) -> None:
        self.alert_sink = alert_sink
        self.actuator_sink = actuator_sink
        self.timeout = timeout

    def build_alert_request(self, rule: AutomationRule, action: AlertAction, context: EvaluationContext) -> Dict[str, Any]:
        return {
            "title": action.alert_title,
            "message": action.alert_message,
            "severity": action.alert_severity.value,
            "automation_rule_id": rule.id,
            "source": "automation_rule",
            "metadata": {
                "sensor_value": context.sensor_value,
                "threshold_value": context.threshold_value,
                "operator": context.operator,
                "sensor_deployment_id": context.sensor_deployment_id,
            },
        }

    def build_command_request(self, action: ActuatorAction) -> Dict[str, Any]:
        return {"command": action.actuator_command, "parameters": dict(action.actuator_parameters)}

    def _call_sink(self, call: Callable[[], Any]) -> Any:
        """Run one sink call under the dispatcher's total deadline.

        Sinks also receive the timeout, but a sink may ignore it and ``requests``
        only bounds each socket read. A running Python thread cannot be aborted,
        so a call past the deadline is abandoned: it finishes in the background
        and the action is reported as failed.
        """
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="dispatch")
        try:
            future = executor.submit(call)
            try:
                return future.result(timeout=self.timeout)
            except FutureTimeoutError:
                if future.done():
                    raise  # the sink itself raised a timeout
                future.cancel()
                raise DispatchFailure(f"dispatch timed out after {self.timeout:g}s") from None
        finally:
            executor.shutdown(wait=False)

    def dispatch(self, rule: AutomationRule, context: EvaluationContext) -> ActionResult:
        action = rule.action
        started = time.perf_counter()
        try:
            if isinstance(action, AlertAction):
                request = self.build_alert_request(rule, action, context)
                response = self._call_sink(lambda: self.alert_sink.create_alert(request, timeout=self.timeout))
                result = {"alert_id": _created_id(response)}
            else:
                request = self.build_command_request(action)
                response = self._call_sink(
                    lambda: self.actuator_sink.send_command(action.target_deployment_id, request, timeout=self.timeout)
                )
                result = {
                    "command_id": _created_id(response),
                    "status": response.get("status") if isinstance(response, dict) else None,
                    "target_deployment_id": action.target_deployment_id,
                }
        except Exception as exc:
            # Recorded as a FAILED execution by the caller; the message is kept verbatim.
            duration_ms = (time.perf_counter() - started) * 1000
            logger.warning("Rule %s: %s dispatch failed: %s", rule.id, rule.action_type, exc)
            return ActionResult(success=False, error=str(exc) or exc.__class__.__name__, duration_ms=duration_ms)

        duration_ms = (time.perf_counter() - started) * 1000
        logger.info("Rule %s: %s dispatched in %.1f ms (%s)", rule.id, rule.action_type, duration_ms, result)
        return ActionResult(success=True, result=result, duration_ms=duration_ms)
