from automation_engine.crud.crud_execution import execution_crud
from automation_engine.crud.crud_rule import rule_crud

__all__ = ["rule_crud", "execution_crud"]
