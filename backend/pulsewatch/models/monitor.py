"""Monitor model - endpoints being watched."""
import uuid

from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils.clock import utcnow


class Monitor(Base):
    """A watched endpoint - http, https, ping, browser, or ssl.

    Rows are created by the CRUD layer with ``current_status = "unknown"``.
    The evaluator owns every status field below ``browser_wait_for_selector``.
    """

    __tablename__ = "monitors"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=True)
    url = Column(String, nullable=True)
    type = Column(String, nullable=False, default="https")  # http, https, ping, browser, ssl
    is_active = Column(Integer, default=1)

    browser_check_enabled = Column(Integer, default=0)
    browser_wait_for_selector = Column(String, nullable=True)

    current_status = Column(String, nullable=False, default="unknown")  # up, down, unknown
    consecutive_failures = Column(Integer, nullable=False, default=0)
    last_up = Column(DateTime, nullable=True)
    last_down = Column(DateTime, nullable=True)
    last_checked_at = Column(DateTime, nullable=True)
    last_response_time_ms = Column(Integer, nullable=True)
    last_http_status = Column(Integer, nullable=True)
    last_browser_check_at = Column(DateTime, nullable=True)

    # valid, expiring_soon, expired, invalid
    ssl_status = Column(String, nullable=True)
    ssl_expiry_date = Column(DateTime, nullable=True)
    ssl_issuer = Column(String, nullable=True)
    ssl_days_until_expiry = Column(Integer, nullable=True)
    last_ssl_check_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)

    check_results = relationship("CheckResult", back_populates="monitor")
    incidents = relationship("Incident", back_populates="monitor")

    @property
    def display_name(self) -> str:
        return self.name or self.url or self.id
