"""SSLAlert model - raised when a certificate starts expiring or expires."""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey

from ..database import Base
from ..utils.clock import utcnow


class SSLAlert(Base):
    """Record of a certificate entering expiring_soon or expired."""

    __tablename__ = "ssl_alerts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    monitor_id = Column(String(36), ForeignKey("monitors.id"), nullable=False, index=True)
    owner_id = Column(String, nullable=False)
    monitor_name = Column(String, nullable=True)
    monitor_url = Column(String, nullable=True)
    ssl_status = Column(String, nullable=False)  # expiring_soon, expired
    days_until_expiry = Column(Integer, nullable=True)
    expiry_date = Column(DateTime, nullable=True)
    severity = Column(String, nullable=False)  # critical, warning
    description = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)
