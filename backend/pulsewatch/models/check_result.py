"""Check history models - one row per probe execution, append-only."""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Boolean, JSON
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils.clock import utcnow


class CheckResult(Base):
    """Result of one uptime or browser check."""

    __tablename__ = "check_results"

    id = Column(Integer, primary_key=True, autoincrement=True)
    monitor_id = Column(String(36), ForeignKey("monitors.id"), nullable=False, index=True)
    owner_id = Column(String, nullable=False, index=True)
    check_kind = Column(String, nullable=False, default="uptime")  # uptime, browser
    status = Column(Boolean, nullable=False)  # True = up
    response_time_ms = Column(Integer, nullable=True)
    http_status_code = Column(Integer, nullable=True)
    error_kind = Column(String, nullable=True)
    error_message = Column(String, nullable=False, default="")
    created_at = Column(DateTime, default=utcnow, index=True)

    monitor = relationship("Monitor", back_populates="check_results")


class BrowserCheckResult(Base):
    """Page metrics captured by a browser check."""

    __tablename__ = "browser_check_results"

    id = Column(Integer, primary_key=True, autoincrement=True)
    monitor_id = Column(String(36), ForeignKey("monitors.id"), nullable=False, index=True)
    owner_id = Column(String, nullable=False)
    status = Column(Boolean, nullable=False)
    load_time_ms = Column(Integer, nullable=True)
    dom_ready_ms = Column(Integer, nullable=True)
    found_selector = Column(Boolean, nullable=False, default=False)
    console_errors = Column(JSON, nullable=True)
    error_message = Column(String, nullable=False, default="")
    created_at = Column(DateTime, default=utcnow)
