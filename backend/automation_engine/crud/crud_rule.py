import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy import case, desc, func, or_, select, update
from sqlalchemy.orm import Session

from automation_engine.core.exceptions import NotFoundError, RuleValidationError
from automation_engine.models.automation_execution import AutomationExecution
from automation_engine.models.automation_rule import AutomationRule
from automation_engine.models.enums import ExecutionStatus
from automation_engine.schemas.rule import ACTION_FIELDS, RuleCreate, RuleUpdate
from automation_engine.services.cooldown import ensure_utc

logger = logging.getLogger(__name__)

_CONFIG_FIELDS = (
    "name",
    "description",
    "sensor_deployment_id",
    "operator",
    "threshold_value",
    "cooldown_minutes",
    "is_active",
    "action_type",
) + ACTION_FIELDS


def _format_errors(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error["loc"]) or "rule"
        parts.append(f"{location}: {error['msg']}")
    return "; ".join(parts)


def _validate(schema, payload: Dict[str, Any]):
    try:
        return schema.model_validate(payload)
    except ValidationError as exc:
        raise RuleValidationError(_format_errors(exc)) from exc


class CRUDRule:
    def get(self, db: Session, rule_id: int) -> AutomationRule:
        rule = db.get(AutomationRule, rule_id)
        if rule is None:
            raise NotFoundError("AutomationRule", rule_id)
        return rule

    def get_multi(
        self,
        db: Session,
        is_active: Optional[bool] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[AutomationRule]:
        query = select(AutomationRule).order_by(AutomationRule.id)

        if is_active is not None:
            query = query.where(AutomationRule.is_active == is_active)

        query = query.offset(skip).limit(limit)
        result = db.execute(query)
        return list(result.scalars().all())

    def list_active(self, db: Session) -> List[AutomationRule]:
        result = db.execute(
            select(AutomationRule).where(AutomationRule.is_active.is_(True)).order_by(AutomationRule.id)
        )
        return list(result.scalars().all())

    def count(self, db: Session, is_active: Optional[bool] = None) -> int:
        query = select(func.count(AutomationRule.id))
        if is_active is not None:
            query = query.where(AutomationRule.is_active == is_active)
        return db.execute(query).scalar_one() or 0

    def create(self, db: Session, obj_in: RuleCreate | Dict[str, Any]) -> AutomationRule:
        if not isinstance(obj_in, RuleCreate):
            obj_in = _validate(RuleCreate, obj_in)

        db_obj = AutomationRule(**obj_in.to_columns())
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        logger.info("Created automation rule %s (%s)", db_obj.id, db_obj.name)
        return db_obj

    def update(self, db: Session, rule_id: int, obj_in: RuleUpdate | Dict[str, Any]) -> AutomationRule:
        rule = self.get(db, rule_id)
        if not isinstance(obj_in, RuleUpdate):
            obj_in = _validate(RuleUpdate, obj_in)
        updates = obj_in.model_dump(exclude_unset=True)

        current = {field: getattr(rule, field) for field in _CONFIG_FIELDS}
        new_type = updates.get("action_type")
        if new_type is not None and new_type != rule.action_type:
            current.update({field: None for field in ACTION_FIELDS})

        validated = _validate(RuleCreate, {**current, **updates})
        for key, value in validated.to_columns().items():
            setattr(rule, key, value)

        db.commit()
        db.refresh(rule)
        logger.info("Updated automation rule %s", rule.id)
        return rule

    def set_active(self, db: Session, rule_id: int, is_active: bool) -> AutomationRule:
        rule = self.get(db, rule_id)
        rule.is_active = is_active
        db.commit()
        db.refresh(rule)
        logger.info("Automation rule %s %s", rule.id, "activated" if is_active else "deactivated")
        return rule

    def delete(self, db: Session, rule_id: int) -> None:
        rule = self.get(db, rule_id)
        db.delete(rule)
        db.commit()
        logger.info("Deleted automation rule %s", rule_id)

    def record_trigger_outcome(self, db: Session, rule_id: int, timestamp: datetime, success: bool) -> AutomationRule:
        """Increment the trigger counters in a single UPDATE statement.

        The increments are computed by the database, so overlapping evaluations
        of the same rule cannot lose an update. ``last_triggered`` only moves
        forward and only on success.
        """
        # stored as naive UTC on SQLite
        timestamp = ensure_utc(timestamp)
        values: Dict[str, Any] = {
            "trigger_count": AutomationRule.trigger_count + 1,
            # counters are not configuration changes
            "updated_at": AutomationRule.updated_at,
        }
        if success:
            values["success_count"] = AutomationRule.success_count + 1
            values["last_triggered"] = case(
                (
                    or_(AutomationRule.last_triggered.is_(None), AutomationRule.last_triggered < timestamp),
                    timestamp,
                ),
                else_=AutomationRule.last_triggered,
            )
        else:
            values["failure_count"] = AutomationRule.failure_count + 1

        result = db.execute(
            update(AutomationRule)
            .where(AutomationRule.id == rule_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            db.rollback()
            raise NotFoundError("AutomationRule", rule_id)
        db.commit()
        return db.get(AutomationRule, rule_id, populate_existing=True)

    def reconcile_counters(self, db: Session, rule_id: int) -> AutomationRule:
        """Recompute counters and ``last_triggered`` from the execution log."""
        rule = self.get(db, rule_id)
        executed = (AutomationExecution.rule_id == rule_id, AutomationExecution.action_executed.is_(True))

        counts = db.execute(
            select(
                func.count(AutomationExecution.id).label("triggers"),
                func.sum(case((AutomationExecution.status == ExecutionStatus.COMPLETED.value, 1), else_=0)).label(
                    "successes"
                ),
                func.sum(case((AutomationExecution.status == ExecutionStatus.FAILED.value, 1), else_=0)).label(
                    "failures"
                ),
            ).where(*executed)
        ).one()
        last_success = db.execute(
            select(func.max(AutomationExecution.triggered_at)).where(
                *executed, AutomationExecution.status == ExecutionStatus.COMPLETED.value
            )
        ).scalar_one_or_none()

        rule.trigger_count = counts.triggers or 0
        rule.success_count = int(counts.successes or 0)
        rule.failure_count = int(counts.failures or 0)
        rule.last_triggered = last_success
        db.commit()
        db.refresh(rule)
        logger.info(
            "Reconciled automation rule %s: triggers=%s successes=%s failures=%s",
            rule.id,
            rule.trigger_count,
            rule.success_count,
            rule.failure_count,
        )
        return rule

    def get_totals(self, db: Session) -> Dict[str, int]:
        row = db.execute(
            select(
                func.coalesce(func.sum(AutomationRule.trigger_count), 0).label("triggers"),
                func.coalesce(func.sum(AutomationRule.success_count), 0).label("successes"),
                func.coalesce(func.sum(AutomationRule.failure_count), 0).label("failures"),
            )
        ).one()
        return {
            "trigger_count": int(row.triggers),
            "success_count": int(row.successes),
            "failure_count": int(row.failures),
        }

    def get_recently_triggered(self, db: Session, limit: int = 10) -> List[AutomationRule]:
        query = (
            select(AutomationRule)
            .where(AutomationRule.last_triggered.is_not(None))
            .order_by(desc(AutomationRule.last_triggered))
            .limit(limit)
        )
        return list(db.execute(query).scalars().all())


rule_crud = CRUDRule()
