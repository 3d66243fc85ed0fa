from typing import Any, Dict, List, Optional

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from automation_engine.models.automation_execution import AutomationExecution


class CRUDExecution:
    """Append-only access to the execution log. There is deliberately no update."""

    def create(self, db: Session, obj_in: Dict[str, Any]) -> AutomationExecution:
        db_obj = AutomationExecution(**obj_in)
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def get_for_rule(self, db: Session, rule_id: int, limit: int = 50) -> List[AutomationExecution]:
        query = (
            select(AutomationExecution)
            .where(AutomationExecution.rule_id == rule_id)
            .order_by(desc(AutomationExecution.triggered_at), desc(AutomationExecution.id))
            .limit(limit)
        )
        result = db.execute(query)
        return list(result.scalars().all())

    def get_multi(
        self,
        db: Session,
        status: Optional[str] = None,
        limit: int = 100,
    ) -> List[AutomationExecution]:
        query = select(AutomationExecution).order_by(
            desc(AutomationExecution.triggered_at), desc(AutomationExecution.id)
        )

        if status:
            query = query.where(AutomationExecution.status == status)

        query = query.limit(limit)
        result = db.execute(query)
        return list(result.scalars().all())

    def count_by_status(self, db: Session) -> Dict[str, int]:
        result = db.execute(
            select(AutomationExecution.status, func.count(AutomationExecution.id)).group_by(
                AutomationExecution.status
            )
        )
        return {status: count for status, count in result.all()}


execution_crud = CRUDExecution()
