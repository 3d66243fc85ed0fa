import logging
import math
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

import requests

from automation_engine.core.config import settings
from automation_engine.core.exceptions import DispatchFailure, ReadingUnavailable
from automation_engine.services.collaborators import ActuatorCommandSink, AlertSink, Reading, ReadingSource
from automation_engine.services.cooldown import ensure_utc, utc_now

logger = logging.getLogger(__name__)


def _parse_timestamp(raw: Any) -> Optional[datetime]:
    if isinstance(raw, datetime):
        return ensure_utc(raw)
    if not raw:
        return None
    try:
        return ensure_utc(datetime.fromisoformat(str(raw).replace("Z", "+00:00")))
    except ValueError:
        return None


class PlatformClient(ReadingSource, AlertSink, ActuatorCommandSink):
    """REST client for the IoT platform's sensor, alert and actuator endpoints."""

    def __init__(
        self,
        base_url: str,
        timeout: float,
        token: str = "",
        reading_max_age_seconds: float = 0,
        clock: Callable[[], datetime] = utc_now,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.reading_max_age_seconds = reading_max_age_seconds
        self.clock = clock
        self.session = session or requests.Session()
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    def get_latest_value(self, deployment_id: int) -> Reading:
        try:
            response = self.session.get(
                f"{self.base_url}/sensors/readings/latest",
                params={"deploymentId": deployment_id},
                timeout=self.timeout,
            )
            if response.status_code == 404:
                raise ReadingUnavailable(deployment_id)
            response.raise_for_status()
            body = response.json()
        except requests.RequestException as exc:
            raise ReadingUnavailable(deployment_id, f"reading source error: {exc}") from exc
        except ValueError as exc:
            raise ReadingUnavailable(deployment_id, f"malformed reading payload: {exc}") from exc

        if isinstance(body, dict) and "data" in body:
            body = body["data"]
        if isinstance(body, list):
            body = body[0] if body else None
        if not isinstance(body, dict) or body.get("value") is None:
            raise ReadingUnavailable(deployment_id)

        try:
            value = float(body["value"])
        except (TypeError, ValueError) as exc:
            raise ReadingUnavailable(deployment_id, f"non-numeric value {body['value']!r}") from exc
        if not math.isfinite(value):
            raise ReadingUnavailable(deployment_id, f"non-finite value {body['value']!r}")

        timestamp = _parse_timestamp(body.get("timestamp")) or self.clock()
        if self.reading_max_age_seconds > 0:
            age = self.clock() - timestamp
            if age > timedelta(seconds=self.reading_max_age_seconds):
                raise ReadingUnavailable(deployment_id, f"latest reading is stale ({int(age.total_seconds())}s old)")

        return Reading(deployment_id=deployment_id, value=value, timestamp=timestamp)

    def _post(self, path: str, payload: Dict[str, Any], timeout: float) -> Dict[str, Any]:
        try:
            response = self.session.post(f"{self.base_url}{path}", json=payload, timeout=timeout)
            response.raise_for_status()
            return response.json()
        except requests.RequestException as exc:
            raise DispatchFailure(str(exc)) from exc
        except ValueError as exc:
            raise DispatchFailure(f"invalid response from {path}: {exc}") from exc

    def create_alert(self, payload: Dict[str, Any], timeout: float) -> Dict[str, Any]:
        return self._post("/automation/alerts", payload, timeout)

    def send_command(self, deployment_id: int, payload: Dict[str, Any], timeout: float) -> Dict[str, Any]:
        return self._post(f"/actuators/{deployment_id}/command", payload, timeout)


platform_client = PlatformClient(
    settings.platform_api_base_url,
    settings.dispatch_timeout,
    token=settings.platform_api_token,
    reading_max_age_seconds=settings.reading_max_age_seconds,
)
