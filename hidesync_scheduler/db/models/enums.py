# File: hidesync_scheduler/db/models/enums.py
"""
Enumerations shared by the recurring project models and schemas.
"""

from enum import Enum, IntEnum


class RecurrenceFrequency(str, Enum):
    """Frequency types for recurring projects."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"
    CUSTOM = "custom"


class DayOfWeek(IntEnum):
    """Days of the week, Sunday first (0-6)."""

    SUNDAY = 0
    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6

    @classmethod
    def from_python_weekday(cls, weekday: int) -> "DayOfWeek":
        """Convert ``date.weekday()`` (Monday=0) to a DayOfWeek."""
        return cls((weekday + 1) % 7)

    def to_python_weekday(self) -> int:
        """Convert to ``date.weekday()`` numbering (Monday=0)."""
        return (int(self) - 1) % 7


class DisabledDateHandling(str, Enum):
    """How an occurrence landing on a weekend or holiday is relocated."""

    PREVIOUS = "previous"
    NEXT = "next"
    SKIP = "skip"


class GenerationStatus(str, Enum):
    """Status of a generated project ledger record."""

    SCHEDULED = "scheduled"
    GENERATED = "generated"
    SKIPPED = "skipped"
    FAILED = "failed"


class ProjectStatus(str, Enum):
    """Project lifecycle stages, earliest first."""

    CONCEPT = "concept"
    PLANNING = "planning"
    DESIGN_PHASE = "design_phase"
    MATERIAL_SELECTION = "material_selection"
    PRODUCTION_QUEUE = "production_queue"
    IN_PROGRESS = "in_progress"
    QUALITY_CHECK = "quality_check"
    COMPLETED = "completed"
    ON_HOLD = "on_hold"
    CANCELLED = "cancelled"


class ProjectType(str, Enum):
    """Types of leathercraft projects."""

    WALLET = "wallet"
    BAG = "bag"
    BELT = "belt"
    WATCH_STRAP = "watch_strap"
    NOTEBOOK_COVER = "notebook_cover"
    PHONE_CASE = "phone_case"
    KEY_CASE = "key_case"
    ACCESSORY = "accessory"
    CUSTOM = "custom"
    OTHER = "other"


class SkillLevel(str, Enum):
    """Required craft skill level."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"
