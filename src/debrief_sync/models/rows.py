"""
Remote row shape and change events exchanged with the remote store.
"""

from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple


ROW_COLUMNS = (
    "organization",
    "period",
    "department_tag",
    "area_id",
    "area_name",
    "category_id",
    "rating",
    "worked_well",
    "needs_improvement",
    "notes",
    "updated_at",
)

# Column names used by rows written before organizations/periods were
# generalized from festivals/years.
LEGACY_COLUMN_ALIASES = {
    "festival": "organization",
    "year": "period",
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class RemoteRow:
    """One row of the remote reviews table.

    Unique on (organization, period, area_id, category_id).
    """
    organization: str
    period: str
    area_id: str
    category_id: str
    department_tag: str = ""
    area_name: str = ""
    rating: Optional[int] = None
    worked_well: Optional[str] = None
    needs_improvement: Optional[str] = None
    notes: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def unique_key(self) -> Tuple[str, str, str, str]:
        return (self.organization, self.period, self.area_id, self.category_id)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RemoteRow":
        """Build a row from a mapping, tolerating legacy column names and extras."""
        values: Dict[str, Any] = {}
        for key, value in data.items():
            key = LEGACY_COLUMN_ALIASES.get(key, key)
            if key in ROW_COLUMNS and key not in values:
                values[key] = value

        rating = values.get("rating")
        try:
            rating = int(rating) if rating is not None else None
        except (TypeError, ValueError):
            rating = None

        return cls(
            organization=str(values.get("organization") or ""),
            period=str(values.get("period") or ""),
            area_id=str(values.get("area_id") or ""),
            category_id=str(values.get("category_id") or ""),
            department_tag=str(values.get("department_tag") or ""),
            area_name=str(values.get("area_name") or ""),
            rating=rating,
            worked_well=values.get("worked_well"),
            needs_improvement=values.get("needs_improvement"),
            notes=values.get("notes"),
            updated_at=values.get("updated_at"),
        )


class ChangeType(str, Enum):
    """Kinds of row-change events delivered by the push channel."""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass
class ChangeEvent:
    """A single row change pushed by the remote store."""
    change_type: ChangeType
    row: RemoteRow
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


__all__ = [
    'RemoteRow',
    'ChangeType',
    'ChangeEvent',
    'ROW_COLUMNS',
    'utc_now_iso',
]
