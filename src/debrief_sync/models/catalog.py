"""
Static catalog: organizations, review categories, default areas, rating
options and period classification.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class Organization:
    """A festival. Static configuration, immutable at runtime."""
    id: str
    name: str
    capacity: str = ""
    secret: Optional[str] = None


@dataclass(frozen=True)
class Category:
    """A review category."""
    id: str
    label: str
    icon: str = ""


@dataclass(frozen=True)
class RatingOption:
    """Display metadata for a rating value."""
    value: int
    label: str
    color: str


@dataclass(frozen=True)
class Department:
    """A department, persisted per organization."""
    id: str
    name: str

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "name": self.name}


class PeriodKind(str, Enum):
    """Feature set selected by a period."""
    TRACKER = "tracker"
    REVIEW = "review"


ORGANIZATIONS: Tuple[Organization, ...] = (
    Organization("gottwood", "Gottwood", "8,000"),
    Organization("peep", "Peep Festival", "2,000"),
    Organization("soysambu", "Soysambu", "TBC"),
)

CATEGORIES: Tuple[Category, ...] = (
    Category("lighting", "Lighting", "💡"),
    Category("sound", "Sound", "🔊"),
    Category("design", "Design", "🎨"),
    Category("space", "Space & Layout", "📐"),
    Category("decor", "Decor", "✨"),
    Category("crowd_flow", "Crowd Flow", "🌊"),
    Category("power", "Power & Electrics", "⚡"),
    Category("staging", "Staging", "🎭"),
    Category("comms", "Comms & Signage", "📡"),
    Category("safety", "Safety", "🦺"),
)

DEFAULT_AREAS: Dict[str, Tuple[str, ...]] = {
    "gottwood": (
        "Main Gate", "Crew Campsite", "General Campsite", "Boutique Campsite",
        "Campsite Traders", "Wellbeing", "Medical & Welfare", "Woods Stage",
        "Top Woods", "Woods Traders", "Treehouse Stage", "The Barn", "Boxford",
        "Captain Cabeza", "Walled Garden", "Boneyard", "The Lawn", "Trigon",
        "Rickies Disco", "The Lighthouse", "Lakeside Traders",
        "Cocktail Bar (old curve)", "The Curve", "Lake", "The Nest", "Site General",
    ),
    "peep": ("Main Stage", "Stage 2", "Bar / Social", "Entrance / Gate", "Camping Zone"),
    "soysambu": ("Main Stage", "Bar / Social", "Entrance / Gate"),
}

RATING_OPTIONS: Tuple[RatingOption, ...] = (
    RatingOption(5, "Excellent", "#00ff9d"),
    RatingOption(4, "Good", "#7fff7f"),
    RatingOption(3, "Average", "#ffd700"),
    RatingOption(2, "Needs Work", "#ff8c42"),
    RatingOption(1, "Poor", "#ff4444"),
)

NO_RATING_COLOR = "#555"

DEFAULT_PERIODS: Tuple[str, ...] = ("2022", "2023", "2024", "2025", "2026")
CURRENT_PERIOD = "2025"

DEFAULT_DEPARTMENT = Department("production", "Production")


def get_organization(org_id: str) -> Optional[Organization]:
    for org in ORGANIZATIONS:
        if org.id == org_id:
            return org
    return None


def category_ids() -> List[str]:
    return [c.id for c in CATEGORIES]


def default_areas(org_id: str) -> List[str]:
    return list(DEFAULT_AREAS.get(org_id, ()))


def rating_option(value: Optional[int]) -> Optional[RatingOption]:
    for option in RATING_OPTIONS:
        if option.value == value:
            return option
    return None


def rating_color(value: Optional[int]) -> str:
    option = rating_option(value)
    return option.color if option else NO_RATING_COLOR


def _period_sort_key(period: str):
    # Numeric labels compare as numbers, anything else lexically after them
    return (0, int(period), "") if period.isdigit() else (1, 0, period)


def classify_period(period: str, current_period: str = CURRENT_PERIOD) -> PeriodKind:
    """Periods after the current one are planned with the task tracker."""
    if _period_sort_key(period) > _period_sort_key(current_period):
        return PeriodKind.TRACKER
    return PeriodKind.REVIEW


def sort_periods(periods: List[str]) -> List[str]:
    return sorted(periods, key=_period_sort_key)


__all__ = [
    'Organization',
    'Category',
    'RatingOption',
    'Department',
    'PeriodKind',
    'ORGANIZATIONS',
    'CATEGORIES',
    'DEFAULT_AREAS',
    'RATING_OPTIONS',
    'DEFAULT_PERIODS',
    'CURRENT_PERIOD',
    'DEFAULT_DEPARTMENT',
    'get_organization',
    'category_ids',
    'default_areas',
    'rating_option',
    'rating_color',
    'classify_period',
    'sort_periods',
]
