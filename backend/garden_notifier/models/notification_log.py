"""NotificationLog model - delivery record and deduplication marker."""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey

from ..database import Base
from ..utils.clock import local_now

LOG_STATUS_PENDING = "pending"
LOG_STATUS_SENT = "sent"
LOG_STATUS_FAILED = "failed"

# Rows stop suppressing duplicates this long after they are written
LOG_TTL_HOURS = 24


class NotificationLog(Base):
    """Outcome of one notification event for one user."""

    __tablename__ = "notification_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    notification_type = Column(String(50), nullable=False)
    channel = Column(String(50), nullable=True)  # e.g. "push,email"
    title = Column(String(200), nullable=True)
    body = Column(String(1000), nullable=True)
    status = Column(String(20), nullable=False, default=LOG_STATUS_PENDING)  # pending, sent, failed
    error_message = Column(String(2000), nullable=True)
    # {type}:{user_id}:{YYYY-MM-DD}
    deduplication_key = Column(String(255), unique=True, nullable=False, index=True)
    sent_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=local_now)
