"""Incident model - one continuous period of monitor unavailability."""
import uuid

from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils.clock import utcnow


class Incident(Base):
    """Open-to-resolved outage record. At most one open row per monitor."""

    __tablename__ = "incidents"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    monitor_id = Column(String(36), ForeignKey("monitors.id"), nullable=False, index=True)
    owner_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(String, nullable=True)
    severity = Column(String, nullable=False, default="high")  # high, critical, warning
    status = Column(String, nullable=False, default="open")  # open, resolved
    start_time = Column(DateTime, nullable=False, default=utcnow)
    resolved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)

    monitor = relationship("Monitor", back_populates="incidents")
