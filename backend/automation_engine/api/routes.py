from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from automation_engine.core.database import get_db
from automation_engine.core.exceptions import NotFoundError, RuleValidationError, StoreUnavailable
from automation_engine.crud import execution_crud, rule_crud
from automation_engine.models.automation_rule import AutomationRule
from automation_engine.models.enums import ExecutionStatus
from automation_engine.schemas import (
    CycleSummaryOut,
    EvaluateRequest,
    EvaluationOut,
    ExecutionListResponse,
    ExecutionOut,
    RuleActivate,
    RuleCreate,
    RuleListResponse,
    RuleOut,
    RuleUpdate,
)
from automation_engine.services.cooldown import cooldown_state, rearm_at
from automation_engine.services.engine import AutomationEngine
from automation_engine.services.scheduler import RuleScheduler

router = APIRouter()


def get_automation_engine(request: Request) -> AutomationEngine:
    return request.app.state.automation_engine


def get_scheduler(request: Request) -> RuleScheduler:
    return request.app.state.scheduler


def _get_rule_or_404(db: Session, rule_id: int) -> AutomationRule:
    try:
        return rule_crud.get(db, rule_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail="Automation rule not found") from exc


def _serialize_rule(rule: AutomationRule, engine: AutomationEngine) -> dict[str, Any]:
    payload = RuleOut.model_validate(rule).model_dump()
    now = engine.clock()
    payload["cooldown_state"] = cooldown_state(rule.last_triggered, rule.cooldown_minutes, now).value
    payload["rearm_at"] = rearm_at(rule.last_triggered, rule.cooldown_minutes)
    return payload


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/automation/rules", response_model=RuleListResponse)
def list_rules(
    is_active: bool | None = Query(default=None),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
) -> RuleListResponse:
    rules = rule_crud.get_multi(db, is_active=is_active, skip=skip, limit=limit)
    serialized = [RuleOut.model_validate(rule) for rule in rules]
    return RuleListResponse(items=serialized, count=rule_crud.count(db, is_active=is_active))


@router.post("/automation/rules", response_model=RuleOut, status_code=201)
def create_rule(payload: dict[str, Any], db: Session = Depends(get_db)) -> RuleOut:
    try:
        rule = rule_crud.create(db, payload)
    except RuleValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return RuleOut.model_validate(rule)


@router.get("/automation/rules/{rule_id}")
def get_rule(
    rule_id: int,
    db: Session = Depends(get_db),
    engine: AutomationEngine = Depends(get_automation_engine),
) -> dict[str, Any]:
    rule = _get_rule_or_404(db, rule_id)
    return _serialize_rule(rule, engine)


@router.patch("/automation/rules/{rule_id}", response_model=RuleOut)
def update_rule(rule_id: int, payload: dict[str, Any], db: Session = Depends(get_db)) -> RuleOut:
    try:
        rule = rule_crud.update(db, rule_id, payload)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail="Automation rule not found") from exc
    except RuleValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return RuleOut.model_validate(rule)


@router.delete("/automation/rules/{rule_id}")
def delete_rule(rule_id: int, db: Session = Depends(get_db)) -> dict[str, bool]:
    try:
        rule_crud.delete(db, rule_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail="Automation rule not found") from exc
    return {"success": True}


@router.post("/automation/rules/{rule_id}/activate", response_model=RuleOut)
def activate_rule(rule_id: int, payload: RuleActivate, db: Session = Depends(get_db)) -> RuleOut:
    try:
        rule = rule_crud.set_active(db, rule_id, payload.is_active)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail="Automation rule not found") from exc
    return RuleOut.model_validate(rule)


@router.post("/automation/rules/{rule_id}/evaluate", response_model=EvaluationOut)
def evaluate_rule_now(
    rule_id: int,
    payload: EvaluateRequest | None = None,
    db: Session = Depends(get_db),
    engine: AutomationEngine = Depends(get_automation_engine),
) -> EvaluationOut:
    # Manual evaluation runs regardless of is_active.
    rule = _get_rule_or_404(db, rule_id)
    sensor_value = payload.sensor_value if payload else None
    result = engine.evaluate(db, rule, sensor_value=sensor_value, manual=True)
    return EvaluationOut(
        rule_id=result.rule_id,
        outcome=result.outcome.value,
        reason=result.reason,
        execution=ExecutionOut.model_validate(result.execution) if result.execution else None,
    )


@router.get("/automation/rules/{rule_id}/executions", response_model=ExecutionListResponse)
def get_rule_executions(
    rule_id: int,
    limit: int = Query(default=50, ge=1, le=1000),
    db: Session = Depends(get_db),
) -> ExecutionListResponse:
    _get_rule_or_404(db, rule_id)
    items = execution_crud.get_for_rule(db, rule_id, limit=limit)
    serialized = [ExecutionOut.model_validate(item) for item in items]
    return ExecutionListResponse(items=serialized, count=len(serialized))


@router.post("/automation/rules/{rule_id}/reconcile", response_model=RuleOut)
def reconcile_rule(rule_id: int, db: Session = Depends(get_db)) -> RuleOut:
    try:
        rule = rule_crud.reconcile_counters(db, rule_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail="Automation rule not found") from exc
    return RuleOut.model_validate(rule)


@router.get("/automation/executions", response_model=ExecutionListResponse)
def get_executions(
    status: str | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=2000),
    db: Session = Depends(get_db),
) -> ExecutionListResponse:
    if status is not None:
        status = status.strip().upper()
        if status not in ExecutionStatus.__members__:
            allowed = ", ".join(ExecutionStatus.__members__)
            raise HTTPException(status_code=400, detail=f"status must be one of: {allowed}")
    items = execution_crud.get_multi(db, status=status, limit=limit)
    serialized = [ExecutionOut.model_validate(item) for item in items]
    return ExecutionListResponse(items=serialized, count=len(serialized))


@router.get("/automation/stats")
def get_automation_stats(db: Session = Depends(get_db)) -> dict[str, Any]:
    by_status = execution_crud.count_by_status(db)
    recent = rule_crud.get_recently_triggered(db, limit=10)
    return {
        "rules": {
            "total": rule_crud.count(db),
            "active": rule_crud.count(db, is_active=True),
            "inactive": rule_crud.count(db, is_active=False),
        },
        "counters": rule_crud.get_totals(db),
        "executions": {status.value: by_status.get(status.value, 0) for status in ExecutionStatus},
        "recently_triggered": [
            {
                "id": rule.id,
                "name": rule.name,
                "last_triggered": rule.last_triggered,
                "trigger_count": rule.trigger_count,
            }
            for rule in recent
        ],
    }


@router.get("/automation/scheduler")
def get_scheduler_status(scheduler: RuleScheduler = Depends(get_scheduler)) -> dict[str, Any]:
    return scheduler.status()


@router.post("/automation/scheduler/run", response_model=CycleSummaryOut)
def run_scheduler_cycle(scheduler: RuleScheduler = Depends(get_scheduler)) -> CycleSummaryOut:
    try:
        summary = scheduler.run_cycle()
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=f"Rule store unavailable: {exc}") from exc
    return CycleSummaryOut.model_validate(summary, from_attributes=True)
