from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from automation_engine.core.database import Base
from automation_engine.crud import rule_crud
from automation_engine.services.collaborators import ActuatorCommandSink, AlertSink, InMemoryReadingSource
from automation_engine.services.dispatcher import ActionDispatcher
from automation_engine.services.engine import AutomationEngine
from automation_engine.services.scheduler import RuleScheduler

START = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class ManualClock:
    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeAlertSink(AlertSink):
    def __init__(self) -> None:
        self.alerts: List[Tuple[Dict[str, Any], float]] = []
        self.fail_with: Optional[Exception] = None

    def create_alert(self, payload: Dict[str, Any], timeout: float) -> Dict[str, Any]:
        if self.fail_with is not None:
            raise self.fail_with
        self.alerts.append((payload, timeout))
        return {"id": 1000 + len(self.alerts), "title": payload["title"]}


class FakeActuatorSink(ActuatorCommandSink):
    def __init__(self) -> None:
        self.commands: List[Tuple[int, Dict[str, Any], float]] = []
        self.fail_with: Optional[Exception] = None

    def send_command(self, deployment_id: int, payload: Dict[str, Any], timeout: float) -> Dict[str, Any]:
        self.commands.append((deployment_id, payload, timeout))
        if self.fail_with is not None:
            raise self.fail_with
        return {"id": 500 + len(self.commands), "status": "pending"}


@pytest.fixture()
def session_factory():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    try:
        yield factory
    finally:
        engine.dispose()


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def clock():
    return ManualClock()


@pytest.fixture()
def readings():
    return InMemoryReadingSource()


@pytest.fixture()
def alert_sink():
    return FakeAlertSink()


@pytest.fixture()
def actuator_sink():
    return FakeActuatorSink()


@pytest.fixture()
def dispatcher(alert_sink, actuator_sink):
    return ActionDispatcher(alert_sink, actuator_sink, timeout=10.0)


@pytest.fixture()
def automation_engine(session_factory, readings, dispatcher, clock):
    return AutomationEngine(session_factory, reading_source=readings, dispatcher=dispatcher, clock=clock)


@pytest.fixture()
def scheduler(automation_engine, session_factory, clock):
    return RuleScheduler(automation_engine, session_factory, interval_seconds=60, max_workers=1, clock=clock)


def alert_rule_payload(**overrides) -> Dict[str, Any]:
    payload = {
        "name": "Greenhouse too hot",
        "description": "Raise an alert when the greenhouse overheats",
        "sensor_deployment_id": 101,
        "operator": "GT",
        "threshold_value": 30.0,
        "cooldown_minutes": 15,
        "action_type": "CREATE_ALERT",
        "alert_title": "High temperature",
        "alert_message": "Greenhouse temperature is above 30C",
        "alert_severity": "warning",
    }
    payload.update(overrides)
    return payload


def actuator_rule_payload(**overrides) -> Dict[str, Any]:
    payload = {
        "name": "Irrigate when dry",
        "sensor_deployment_id": 102,
        "operator": "LT",
        "threshold_value": 40.0,
        "cooldown_minutes": 0,
        "action_type": "TRIGGER_ACTUATOR",
        "target_deployment_id": 202,
        "actuator_command": "on",
        "actuator_parameters": {},
    }
    payload.update(overrides)
    return payload


@pytest.fixture()
def make_alert_rule(db):
    def _make(**overrides):
        return rule_crud.create(db, alert_rule_payload(**overrides))

    return _make


@pytest.fixture()
def make_actuator_rule(db):
    def _make(**overrides):
        return rule_crud.create(db, actuator_rule_payload(**overrides))

    return _make


@pytest.fixture()
def reload(db):
    def _reload(rule_id: int):
        db.expire_all()
        return rule_crud.get(db, rule_id)

    return _reload
