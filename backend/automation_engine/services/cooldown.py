from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional


class CooldownState(str, Enum):
    ARMED = "ARMED"
    COOLING = "COOLING"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def rearm_at(last_triggered: Optional[datetime], cooldown_minutes: int) -> Optional[datetime]:
    if last_triggered is None:
        return None
    return ensure_utc(last_triggered) + timedelta(minutes=cooldown_minutes)


def cooldown_state(last_triggered: Optional[datetime], cooldown_minutes: int, now: datetime) -> CooldownState:
    """Decide whether a rule may fire at ``now``.

    Derived only from the persisted ``last_triggered`` and ``cooldown_minutes``;
    there is no timer. A ``last_triggered`` later than ``now`` (clock skew)
    counts as cooling.
    """
    if cooldown_minutes < 0:
        raise ValueError("cooldown_minutes must be >= 0")
    if last_triggered is None:
        return CooldownState.ARMED

    elapsed = ensure_utc(now) - ensure_utc(last_triggered)
    if elapsed < timedelta(0):
        return CooldownState.COOLING
    if elapsed >= timedelta(minutes=cooldown_minutes):
        return CooldownState.ARMED
    return CooldownState.COOLING
