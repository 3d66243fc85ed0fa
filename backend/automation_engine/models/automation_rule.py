from sqlalchemy import JSON, Boolean, Column, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from automation_engine.core.database import Base
from automation_engine.models.enums import ActionType


class AutomationRule(Base):
    __tablename__ = "automation_rules"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)

    sensor_deployment_id = Column(Integer, nullable=False, index=True)
    operator = Column(String, nullable=False)
    threshold_value = Column(Float, nullable=False)

    action_type = Column(String, nullable=False)
    # CREATE_ALERT payload
    alert_title = Column(String, nullable=True)
    alert_message = Column(Text, nullable=True)
    alert_severity = Column(String, nullable=True)
    # TRIGGER_ACTUATOR payload
    target_deployment_id = Column(Integer, nullable=True)
    actuator_command = Column(String, nullable=True)
    actuator_parameters = Column(JSON, nullable=True)

    cooldown_minutes = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    last_triggered = Column(DateTime(timezone=True), nullable=True)

    trigger_count = Column(Integer, default=0, nullable=False)
    success_count = Column(Integer, default=0, nullable=False)
    failure_count = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    executions = relationship(
        "AutomationExecution",
        back_populates="rule",
        cascade="all, delete-orphan",
    )

    @property
    def action(self):
        """The rule's action payload as a typed variant keyed by ``action_type``."""
        from automation_engine.schemas.rule import ActuatorAction, AlertAction

        if self.action_type == ActionType.CREATE_ALERT.value:
            return AlertAction(
                alert_title=self.alert_title,
                alert_message=self.alert_message,
                alert_severity=self.alert_severity,
            )
        return ActuatorAction(
            target_deployment_id=self.target_deployment_id,
            actuator_command=self.actuator_command,
            actuator_parameters=self.actuator_parameters or {},
        )

    def __repr__(self):
        return (
            f"<AutomationRule(id={self.id}, {self.operator} {self.threshold_value}, "
            f"action={self.action_type}, active={self.is_active})>"
        )
