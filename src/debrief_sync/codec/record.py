"""
Row <-> record codec.

Maps each kind of addressed value onto the fixed columns of a remote row:
reviews spread over worked_well / needs_improvement / notes / rating, every
other kind is a JSON (or plain text) payload in the notes column of a
placeholder row.
"""

from typing import Any, Iterable, List, Tuple

from ..keys import Address, ConfigName, KeyKind, address_from_row
from ..models.catalog import Department
from ..models.records import ReviewRecord, RosterMember, Task, VOTE_MAX, VOTE_MIN
from ..models.rows import RemoteRow, utc_now_iso
from .fields import (
    PlainText,
    TagEnvelope,
    VoteMap,
    decode_field,
    encode_field,
    entries_of,
    text_of,
    thread_of,
)
from .normalize import (
    dump_json,
    normalize_area_list,
    normalize_categories,
    normalize_departments,
    normalize_periods,
    normalize_roster,
    normalize_tasks,
    roster_to_list,
    task_to_dict,
)


def decode_review(row: RemoteRow) -> ReviewRecord:
    worked_well = decode_field(row.worked_well)
    votes = dict(worked_well.votes) if isinstance(worked_well, VoteMap) else {}

    notes = decode_field(row.notes)
    if isinstance(notes, TagEnvelope):
        notes_text, tags = notes.text, list(notes.tags)
    else:
        notes_text, tags = text_of(notes), []

    legacy_rating = None
    if not votes and isinstance(row.rating, int) and VOTE_MIN <= row.rating <= VOTE_MAX:
        legacy_rating = row.rating

    return ReviewRecord(
        votes=votes,
        worked_well=entries_of(worked_well),
        needs_improvement=entries_of(decode_field(row.needs_improvement)),
        notes=notes_text,
        tags=tags,
        legacy_rating=legacy_rating,
    )


def encode_review(record: ReviewRecord, row: RemoteRow) -> RemoteRow:
    row.worked_well = encode_field(VoteMap(dict(record.votes), thread_of(record.worked_well)))
    row.needs_improvement = encode_field(thread_of(record.needs_improvement))
    row.notes = encode_field(TagEnvelope(record.notes, tuple(record.tags)))
    row.rating = record.rating
    return row


def decode_value(address: Address, row: RemoteRow) -> Any:
    """Decode the value a row carries for its address."""
    if address.kind == KeyKind.REVIEW:
        return decode_review(row)
    if address.kind == KeyKind.TASKS:
        return normalize_tasks(row.notes)
    if address.kind == KeyKind.AREAS:
        return normalize_area_list(row.notes)
    if address.kind == KeyKind.DESCRIPTION:
        return text_of(decode_field(row.notes))
    if address.kind == KeyKind.CATEGORIES:
        return normalize_categories(row.notes)
    if address.config == ConfigName.PERIODS:
        return normalize_periods(row.notes)
    if address.config == ConfigName.DEPARTMENTS:
        return normalize_departments(row.notes)
    return normalize_roster(row.notes)


def decode_row(
    row: RemoteRow,
    default_department: str,
    known_departments: Iterable[str] = (),
) -> Tuple[Address, Any]:
    address = address_from_row(row, default_department, known_departments)
    return address, decode_value(address, row)


def _payload(address: Address, value: Any) -> str:
    if address.kind == KeyKind.TASKS:
        tasks: List[Task] = value or []
        return dump_json([task_to_dict(t) for t in tasks])
    if address.kind == KeyKind.AREAS:
        return dump_json(list(value or []))
    if address.kind == KeyKind.DESCRIPTION:
        return encode_field(PlainText(value or ""))
    if address.kind == KeyKind.CATEGORIES:
        return dump_json(list(value or []))
    if address.config == ConfigName.PERIODS:
        return dump_json(list(value or []))
    if address.config == ConfigName.DEPARTMENTS:
        departments: List[Department] = value or []
        return dump_json([d.to_dict() for d in departments])
    members: List[RosterMember] = value or []
    return dump_json(roster_to_list(members))


def encode_value(address: Address, value: Any, area_name: str = "") -> RemoteRow:
    """Build the full row for an address, stamped with the current time."""
    row = address.blank_row(area_name)
    if address.kind == KeyKind.REVIEW:
        encode_review(value or ReviewRecord(), row)
    else:
        row.notes = _payload(address, value)
    row.updated_at = utc_now_iso()
    return row


__all__ = [
    'decode_review',
    'encode_review',
    'decode_value',
    'decode_row',
    'encode_value',
]
