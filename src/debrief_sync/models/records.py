"""
Record types held in the local state store and their pure update helpers.

Records are replaced wholesale in the store, so every helper here returns a
new record instead of mutating its input.
"""

from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence
import uuid

from .catalog import CATEGORIES, rating_color


VOTE_MIN = 1
VOTE_MAX = 5


@dataclass(frozen=True)
class CommentEntry:
    """One author's entry in a worked-well / needs-improvement thread.

    Entries migrated from legacy plain text have no author.
    """
    text: str
    author: Optional[str] = None
    timestamp: Optional[str] = None


@dataclass
class ReviewRecord:
    """Review of one category of one area."""
    votes: Dict[str, int] = field(default_factory=dict)
    worked_well: List[CommentEntry] = field(default_factory=list)
    needs_improvement: List[CommentEntry] = field(default_factory=list)
    notes: str = ""
    tags: List[str] = field(default_factory=list)
    legacy_rating: Optional[int] = None

    @property
    def rating(self) -> Optional[int]:
        """Mode of the vote map, or the legacy scalar for pre-vote rows."""
        if self.votes:
            return mode_rating(self.votes)
        return self.legacy_rating

    @property
    def is_empty(self) -> bool:
        return not (
            self.votes or self.worked_well or self.needs_improvement
            or self.notes or self.tags or self.legacy_rating
        )


class TaskStatus(str, Enum):
    """Task checklist status."""
    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    DONE = "done"
    BLOCKED = "blocked"


# Display order when no manual order has been set
STATUS_DISPLAY_RANK = {
    TaskStatus.IN_PROGRESS: 0,
    TaskStatus.BLOCKED: 1,
    TaskStatus.NOT_STARTED: 2,
    TaskStatus.DONE: 3,
}


@dataclass
class Task:
    """One checklist item."""
    id: str
    label: str
    status: TaskStatus = TaskStatus.NOT_STARTED
    assignees: List[str] = field(default_factory=list)
    notes: str = ""
    due: Optional[date] = None
    tags: List[str] = field(default_factory=list)
    order: Optional[int] = None
    edited_by: Optional[str] = None


@dataclass
class RosterMember:
    """A person on an organization's roster."""
    id: str
    name: str
    role: str = ""
    color_id: str = ""


def new_task_id() -> str:
    return uuid.uuid4().hex[:12]


def new_task(label: str, edited_by: Optional[str] = None, **fields) -> Task:
    return Task(id=new_task_id(), label=label.strip(), edited_by=edited_by, **fields)


def normalize_tags(tags: Iterable[str]) -> List[str]:
    """Lowercase, strip, drop empties and duplicates, keep first-seen order."""
    seen: List[str] = []
    for tag in tags:
        if not isinstance(tag, str):
            continue
        cleaned = tag.strip().lower()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    return seen


def mode_rating(votes: Dict[str, int]) -> Optional[int]:
    """Most frequent vote value; ties go to the lowest value."""
    counts = Counter(v for v in votes.values() if VOTE_MIN <= v <= VOTE_MAX)
    if not counts:
        return None
    top = max(counts.values())
    for value in range(VOTE_MIN, VOTE_MAX + 1):
        if counts.get(value) == top:
            return value
    return None


def with_vote(record: ReviewRecord, voter: str, value: Optional[int]) -> ReviewRecord:
    """Set or clear one voter's vote. None clears it."""
    voter = voter.strip()
    if not voter:
        raise ValueError("voter is required")
    votes = dict(record.votes)
    if value is None:
        votes.pop(voter, None)
    else:
        if not isinstance(value, int) or not VOTE_MIN <= value <= VOTE_MAX:
            raise ValueError(f"vote must be an integer {VOTE_MIN}-{VOTE_MAX}")
        votes[voter] = value
    return replace(record, votes=votes)


def upsert_comment(
    entries: Sequence[CommentEntry],
    author: str,
    text: str,
    timestamp: Optional[str] = None,
) -> List[CommentEntry]:
    """Replace the author's entry in place, append it if new, drop it if text is blank."""
    result: List[CommentEntry] = []
    replaced = False
    for entry in entries:
        if entry.author is not None and entry.author == author:
            if replaced:
                continue
            replaced = True
            if text.strip():
                result.append(CommentEntry(text=text, author=author, timestamp=timestamp))
            continue
        result.append(entry)
    if not replaced and text.strip():
        result.append(CommentEntry(text=text, author=author, timestamp=timestamp))
    return result


def with_comment(
    record: ReviewRecord,
    field_name: str,
    author: str,
    text: str,
    timestamp: Optional[str] = None,
) -> ReviewRecord:
    if field_name not in ("worked_well", "needs_improvement"):
        raise ValueError(f"not a comment field: {field_name}")
    entries = upsert_comment(getattr(record, field_name), author, text, timestamp)
    return replace(record, **{field_name: entries})


def sort_tasks_for_display(tasks: Sequence[Task]) -> List[Task]:
    """Manual order when any task carries one, otherwise by status."""
    indexed = list(enumerate(tasks))
    if any(t.order is not None for t in tasks):
        indexed.sort(key=lambda it: (
            it[1].order is None,
            it[1].order if it[1].order is not None else 0,
            STATUS_DISPLAY_RANK[it[1].status],
            it[0],
        ))
    else:
        indexed.sort(key=lambda it: (STATUS_DISPLAY_RANK[it[1].status], it[0]))
    return [task for _, task in indexed]


def move_task(tasks: Sequence[Task], task_id: str, new_index: int) -> List[Task]:
    """Move a task within the displayed order and renumber manual order.

    Ids are never touched.
    """
    ordered = sort_tasks_for_display(tasks)
    moving = next((t for t in ordered if t.id == task_id), None)
    if moving is None:
        raise KeyError(task_id)
    ordered.remove(moving)
    new_index = max(0, min(new_index, len(ordered)))
    ordered.insert(new_index, moving)
    return [replace(task, order=i) for i, task in enumerate(ordered)]


def with_task_status(
    tasks: Sequence[Task],
    task_id: str,
    status: TaskStatus,
    edited_by: Optional[str] = None,
) -> List[Task]:
    found = False
    result = []
    for task in tasks:
        if task.id == task_id:
            found = True
            task = replace(task, status=status, edited_by=edited_by or task.edited_by)
        result.append(task)
    if not found:
        raise KeyError(task_id)
    return result


@dataclass(frozen=True)
class AreaSummary:
    """Roll-up of one area's review records."""
    average: Optional[float]
    completed: int
    total: int
    color: Optional[str]


def summarize_area(records: Dict[str, ReviewRecord], category_ids: Optional[Sequence[str]] = None) -> AreaSummary:
    """Average rating of rated categories and completion count.

    Args:
        records: category id -> record for one area
        category_ids: categories shown for the area (defaults to the catalog)
    """
    ids = list(category_ids) if category_ids is not None else [c.id for c in CATEGORIES]
    ratings = [records[c].rating for c in ids if c in records and records[c].rating]
    if not ratings:
        return AreaSummary(average=None, completed=0, total=len(ids), color=None)
    average = round(sum(ratings) / len(ratings), 1)
    if average >= 4:
        color = rating_color(5)
    elif average >= 3:
        color = rating_color(3)
    else:
        color = rating_color(2)
    return AreaSummary(average=average, completed=len(ratings), total=len(ids), color=color)


__all__ = [
    'CommentEntry',
    'ReviewRecord',
    'TaskStatus',
    'Task',
    'RosterMember',
    'AreaSummary',
    'STATUS_DISPLAY_RANK',
    'new_task',
    'new_task_id',
    'normalize_tags',
    'mode_rating',
    'with_vote',
    'upsert_comment',
    'with_comment',
    'sort_tasks_for_display',
    'move_task',
    'with_task_status',
    'summarize_area',
]
