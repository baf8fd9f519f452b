from sqlalchemy import Column, Integer, String, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from app.database import Base


class WebhookEvent(Base):
    """Marker for a provider event that has already been applied."""

    __tablename__ = "webhook_events"
    __table_args__ = (
        UniqueConstraint("event_key", name="uq_webhook_event_key"),
    )

    id = Column(Integer, primary_key=True, index=True)
    event_key = Column(String, nullable=False)  # "<event>:<reference>"
    event = Column(String, nullable=False)
    provider_event_id = Column(String, nullable=True)
    reference = Column(String, index=True, nullable=True)
    processed_at = Column(DateTime(timezone=True), server_default=func.now())
