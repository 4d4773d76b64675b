"""NotificationSettings model - per-user notification preferences."""
from sqlalchemy import Column, Integer, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils.clock import local_now


class NotificationSettings(Base):
    """Channel and category switches for one user.

    A user without a row is treated as having everything enabled.
    """

    __tablename__ = "notification_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    push_enabled = Column(Boolean, default=True, nullable=False)
    email_enabled = Column(Boolean, default=True, nullable=False)
    task_reminders = Column(Boolean, default=True, nullable=False)
    harvest_reminders = Column(Boolean, default=True, nullable=False)
    growth_record_notifications = Column(Boolean, default=False, nullable=False)
    updated_at = Column(DateTime, default=local_now, onupdate=local_now)

    # Relationship
    user = relationship("User", back_populates="notification_settings")
