from sqlalchemy import JSON, Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from automation_engine.core.database import Base


class AutomationExecution(Base):
    __tablename__ = "automation_executions"

    id = Column(Integer, primary_key=True, index=True)
    rule_id = Column(Integer, ForeignKey("automation_rules.id", ondelete="CASCADE"), nullable=False, index=True)
    triggered_at = Column(DateTime(timezone=True), nullable=False, index=True)

    sensor_value = Column(Float, nullable=False)
    threshold_value = Column(Float, nullable=False)
    operator = Column(String, nullable=False)

    triggered = Column(Boolean, nullable=False)
    action_executed = Column(Boolean, nullable=False)
    status = Column(String, nullable=False, index=True)
    result = Column(JSON, nullable=True)
    error = Column(Text, nullable=True)
    duration_ms = Column(Float, nullable=True)
    manual = Column(Boolean, default=False, nullable=False)

    rule = relationship("AutomationRule", back_populates="executions")

    def __repr__(self):
        return (
            f"<AutomationExecution(rule={self.rule_id}, status={self.status}, "
            f"triggered={self.triggered}, executed={self.action_executed})>"
        )
