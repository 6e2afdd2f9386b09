"""
Codec for the multiplexed row columns and legacy value shapes.
"""

from .fields import (
    PlainText,
    ThreadEntries,
    VoteMap,
    TagEnvelope,
    FieldValue,
    decode_field,
    encode_field,
    entries_of,
    thread_of,
    text_of,
)
from .normalize import (
    normalize_area_list,
    normalize_categories,
    normalize_tasks,
    normalize_periods,
    normalize_departments,
    normalize_roster,
)
from .record import decode_review, encode_review, decode_value, decode_row, encode_value

__all__ = [
    'PlainText',
    'ThreadEntries',
    'VoteMap',
    'TagEnvelope',
    'FieldValue',
    'decode_field',
    'encode_field',
    'entries_of',
    'thread_of',
    'text_of',
    'normalize_area_list',
    'normalize_categories',
    'normalize_tasks',
    'normalize_periods',
    'normalize_departments',
    'normalize_roster',
    'decode_review',
    'encode_review',
    'decode_value',
    'decode_row',
    'encode_value',
]
