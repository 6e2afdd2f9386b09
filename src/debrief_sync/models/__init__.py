"""
Domain models for debrief-sync.

Static catalog data plus the record types held in the local state store.
"""

from .catalog import (
    Organization,
    Category,
    RatingOption,
    Department,
    PeriodKind,
    ORGANIZATIONS,
    CATEGORIES,
    DEFAULT_AREAS,
    DEFAULT_PERIODS,
    DEFAULT_DEPARTMENT,
    CURRENT_PERIOD,
    classify_period,
)
from .records import (
    CommentEntry,
    ReviewRecord,
    TaskStatus,
    Task,
    RosterMember,
    AreaSummary,
)

__all__ = [
    'Organization',
    'Category',
    'RatingOption',
    'Department',
    'PeriodKind',
    'ORGANIZATIONS',
    'CATEGORIES',
    'DEFAULT_AREAS',
    'DEFAULT_PERIODS',
    'DEFAULT_DEPARTMENT',
    'CURRENT_PERIOD',
    'classify_period',
    'CommentEntry',
    'ReviewRecord',
    'TaskStatus',
    'Task',
    'RosterMember',
    'AreaSummary',
]
