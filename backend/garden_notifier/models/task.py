"""Task model - garden work items with a due date."""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils.clock import local_now

TASK_STATUS_PENDING = "pending"
TASK_STATUS_COMPLETED = "completed"
TASK_STATUS_CANCELLED = "cancelled"


class Task(Base):
    """A to-do item such as watering or pruning."""

    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(String(1000), nullable=True)
    due_date = Column(DateTime, nullable=False, index=True)
    priority = Column(String(20), default="medium")  # low, medium, high
    status = Column(String(20), default=TASK_STATUS_PENDING)  # pending, completed, cancelled
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=local_now)

    # Relationship
    user = relationship("User", back_populates="tasks")
