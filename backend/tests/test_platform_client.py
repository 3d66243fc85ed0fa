from datetime import timedelta

import pytest
import requests

from automation_engine.core.exceptions import DispatchFailure, ReadingUnavailable
from automation_engine.services.platform_client import PlatformClient
from tests.conftest import START, ManualClock


class FakeResponse:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self._body = body

    def json(self):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error")


class FakeSession:
    def __init__(self, response=None, error=None):
        self.headers = {}
        self.response = response
        self.error = error
        self.calls = []

    def _handle(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response

    def get(self, url, **kwargs):
        return self._handle("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._handle("POST", url, **kwargs)


def _client(session, **kwargs):
    return PlatformClient("http://platform/api/v1/", timeout=3, session=session, clock=ManualClock(), **kwargs)


def test_latest_reading_from_list_payload():
    session = FakeSession(FakeResponse(body=[{"value": "21.5", "timestamp": "2026-01-01T11:59:30Z"}]))

    reading = _client(session, token="secret").get_latest_value(101)

    assert reading.value == 21.5
    assert reading.timestamp == START - timedelta(seconds=30)
    method, url, kwargs = session.calls[0]
    assert (method, url) == ("GET", "http://platform/api/v1/sensors/readings/latest")
    assert kwargs["params"] == {"deploymentId": 101}
    assert kwargs["timeout"] == 3
    assert session.headers["Authorization"] == "Bearer secret"


def test_latest_reading_from_wrapped_object_without_timestamp():
    session = FakeSession(FakeResponse(body={"data": {"value": 7}}))

    reading = _client(session).get_latest_value(5)

    assert reading.value == 7.0
    assert reading.timestamp == START


@pytest.mark.parametrize(
    "response, error",
    [
        (FakeResponse(status_code=404), None),
        (FakeResponse(body=[]), None),
        (FakeResponse(body={"value": None}), None),
        (FakeResponse(body={"value": "n/a"}), None),
        (FakeResponse(status_code=500), None),
        (FakeResponse(body=ValueError("Expecting value")), None),
        (None, requests.ConnectionError("connection refused")),
    ],
)
def test_missing_or_broken_readings_are_unavailable(response, error):
    with pytest.raises(ReadingUnavailable):
        _client(FakeSession(response, error)).get_latest_value(5)


def test_stale_reading_is_unavailable():
    session = FakeSession(FakeResponse(body={"value": 3, "timestamp": "2026-01-01T11:50:00+00:00"}))

    with pytest.raises(ReadingUnavailable, match="stale"):
        _client(session, reading_max_age_seconds=300).get_latest_value(5)
    assert _client(session, reading_max_age_seconds=900).get_latest_value(5).value == 3.0


def test_create_alert_posts_payload():
    session = FakeSession(FakeResponse(body={"id": 77}))

    body = _client(session).create_alert({"title": "t"}, timeout=10)

    assert body == {"id": 77}
    assert session.calls[0] == ("POST", "http://platform/api/v1/automation/alerts", {"json": {"title": "t"}, "timeout": 10})


def test_send_command_posts_to_deployment():
    session = FakeSession(FakeResponse(body={"actuatorCommandId": 9, "status": "sent"}))

    body = _client(session).send_command(202, {"command": "on", "parameters": {}}, timeout=10)

    assert body["status"] == "sent"
    method, url, kwargs = session.calls[0]
    assert url == "http://platform/api/v1/actuators/202/command"
    assert kwargs == {"json": {"command": "on", "parameters": {}}, "timeout": 10}


def test_sink_errors_raise_dispatch_failure_with_message():
    session = FakeSession(error=requests.Timeout("Read timed out. (read timeout=10)"))

    with pytest.raises(DispatchFailure, match=r"Read timed out\. \(read timeout=10\)") as excinfo:
        _client(session).send_command(202, {"command": "on", "parameters": {}}, timeout=10)

    assert isinstance(excinfo.value.__cause__, requests.Timeout)


def test_sink_http_error_keeps_status_text():
    session = FakeSession(FakeResponse(status_code=502))

    with pytest.raises(DispatchFailure) as excinfo:
        _client(session).create_alert({"title": "t"}, timeout=10)

    assert str(excinfo.value) == "502 Server Error"


@pytest.mark.parametrize("raw", ["NaN", "inf", "-Infinity"])
def test_non_finite_reading_is_unavailable(raw):
    session = FakeSession(FakeResponse(body={"value": raw, "timestamp": "2026-01-01T11:59:30Z"}))

    with pytest.raises(ReadingUnavailable, match="non-finite value"):
        _client(session).get_latest_value(5)
