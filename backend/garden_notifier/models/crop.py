"""Crop model - a planting with an expected harvest date."""
from sqlalchemy import Column, Integer, String, Date, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils.clock import local_now

CROP_STATUS_GROWING = "growing"


class Crop(Base):
    """A crop planted by a user."""

    __tablename__ = "crops"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    variety = Column(String(100), nullable=True)
    planted_date = Column(Date, nullable=True)
    expected_harvest_date = Column(Date, nullable=True, index=True)
    status = Column(String(20), default="planned")  # planned, growing, harvested, failed
    created_at = Column(DateTime, default=local_now)

    # Relationship
    user = relationship("User", back_populates="crops")
