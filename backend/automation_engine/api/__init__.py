from automation_engine.api.routes import router

__all__ = ["router"]
