"""DeviceToken model - push endpoints registered by the mobile app."""
from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils.clock import local_now

PLATFORMS = ("ios", "android", "web")


class DeviceToken(Base):
    """Registered device for push notifications.

    One row per (user, platform): re-registering replaces the token in place.
    """

    __tablename__ = "device_tokens"
    __table_args__ = (UniqueConstraint("user_id", "platform", name="uq_device_tokens_user_platform"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    platform = Column(String(10), nullable=False)  # ios, android, web
    token = Column(String(512), nullable=False)
    device_id = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=local_now)
    updated_at = Column(DateTime, default=local_now, onupdate=local_now)

    # Relationship
    user = relationship("User", back_populates="device_tokens")
