"""SQLAlchemy model package for the family workflow board."""

from app.models.assignment import Assignment
from app.models.base import Base
from app.models.family import Family
from app.models.history import HistoryEntry, ImmutableHistoryError
from app.models.source_order import SourceOrder
from app.models.stage import Stage
from app.models.user import User

__all__ = [
    "Assignment",
    "Base",
    "Family",
    "HistoryEntry",
    "ImmutableHistoryError",
    "SourceOrder",
    "Stage",
    "User",
]
