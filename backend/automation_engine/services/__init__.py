from automation_engine.services.conditions import evaluate, parse_operator
from automation_engine.services.cooldown import CooldownState, cooldown_state

__all__ = ["CooldownState", "cooldown_state", "evaluate", "parse_operator"]
