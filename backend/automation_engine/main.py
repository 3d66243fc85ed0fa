import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from automation_engine.api import router
from automation_engine.core import Base, SessionLocal, engine, settings
from automation_engine.models import AutomationExecution, AutomationRule  # noqa: F401
from automation_engine.services.dispatcher import ActionDispatcher
from automation_engine.services.engine import AutomationEngine
from automation_engine.services.platform_client import platform_client
from automation_engine.services.scheduler import RuleScheduler
from automation_engine.utils.logger import setup_logging

logger = logging.getLogger(__name__)

app = FastAPI(
    title="IoT Automation Engine API",
    version="0.1.0",
    description="Evaluates automation rules against sensor readings and dispatches alerts and actuator commands.",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix="/api")


@app.on_event("startup")
def on_startup() -> None:
    setup_logging()
    Base.metadata.create_all(bind=engine)

    automation_engine = AutomationEngine(
        SessionLocal,
        reading_source=platform_client,
        dispatcher=ActionDispatcher(platform_client, platform_client, timeout=settings.dispatch_timeout),
    )
    scheduler = RuleScheduler(
        automation_engine,
        SessionLocal,
        interval_seconds=settings.evaluation_interval_seconds,
        max_workers=settings.evaluation_max_workers,
    )
    app.state.automation_engine = automation_engine
    app.state.scheduler = scheduler

    if settings.scheduler_enabled:
        scheduler.start()
    else:
        logger.info("Rule scheduler disabled; cycles run only via /api/automation/scheduler/run")


@app.on_event("shutdown")
def on_shutdown() -> None:
    scheduler = getattr(app.state, "scheduler", None)
    if scheduler is not None:
        scheduler.stop()


@app.get("/")
def root() -> dict[str, str]:
    return {"message": "Automation engine is running", "docs": "/docs"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("automation_engine.main:app", host=settings.host, port=settings.port, reload=settings.debug)
