"""Enums and fixed vocabularies for the workflow board."""

from enum import Enum, IntEnum


class Priority(IntEnum):
    """Urgency tier of an assignment. Higher sorts first."""

    NORMAL = 0
    HIGH = 1
    RUSH = 2


class Role(Enum):
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"


# Source statuses after which an order leaves the board.
TERMINAL_SOURCE_STATUSES = frozenset({"completed", "cancelled", "refunded", "failed", "trash"})

# Classification keys extracted from order customization metadata.
CLASSIFICATION_KEYS = ("board_style", "font", "board_color")

DEFAULT_STAGE_COLOR = "#4F46E5"

# name, color, external status mapping
DEFAULT_STAGES: tuple[tuple[str, str, str | None], ...] = (
    ("Ready to Make", "#3B82F6", "processing"),
    ("Making", "#8B5CF6", "processing"),
    ("Ready to Pack", "#10B981", "processing"),
    ("Packed", "#059669", "processing"),
    ("Ready to Dispatch", "#0891B2", "processing"),
    ("Needs Attention", "#EF4444", None),
)

BULK_UPDATE_NOTE = "Bulk update"
