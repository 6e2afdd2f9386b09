"""
Tagged-union codec for the multiplexed text columns.

A column value is one of four shapes, told apart only by a leading marker:

- ``PlainText``      no marker; legacy free text
- ``VoteMap``        ``__votes__`` + JSON; lives in the worked_well column
                     and wraps the worked-well value it displaced
- ``ThreadEntries``  ``__thread__`` + JSON list of {text, author, timestamp}
- ``TagEnvelope``    ``__tagged__`` + JSON {text, tags}; lives in notes

Decoding never raises. Malformed payloads fall back to the most
conservative legacy reading.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, Union

from ..models.records import CommentEntry, VOTE_MIN, VOTE_MAX, normalize_tags
from ..utils.errors import CodecError
from ..utils.logging import get_logger


logger = get_logger("debrief-sync.codec")

VOTES_MARKER = "__votes__"
THREAD_MARKER = "__thread__"
TAGS_MARKER = "__tagged__"


@dataclass(frozen=True)
class PlainText:
    text: str = ""


@dataclass(frozen=True)
class ThreadEntries:
    entries: Tuple[CommentEntry, ...] = ()


@dataclass(frozen=True)
class VoteMap:
    votes: Dict[str, int] = field(default_factory=dict)
    worked_well: Union[PlainText, ThreadEntries] = PlainText()


@dataclass(frozen=True)
class TagEnvelope:
    text: str = ""
    tags: Tuple[str, ...] = ()


FieldValue = Union[PlainText, VoteMap, ThreadEntries, TagEnvelope]


def _dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def _loads(payload: str) -> Any:
    try:
        return json.loads(payload)
    except (TypeError, ValueError) as e:
        raise CodecError(f"malformed JSON payload: {e}") from e


def clean_votes(raw: Any) -> Dict[str, int]:
    """Keep string voters with integer votes in range; drop everything else."""
    if not isinstance(raw, dict):
        raise CodecError("vote map is not an object")
    votes: Dict[str, int] = {}
    for voter, value in raw.items():
        if isinstance(value, bool):
            continue
        if isinstance(value, str) and value.strip().isdigit():
            value = int(value.strip())
        if isinstance(value, int) and VOTE_MIN <= value <= VOTE_MAX and str(voter).strip():
            votes[str(voter)] = value
    return votes


def _entry_from_json(raw: Any) -> Optional[CommentEntry]:
    if not isinstance(raw, dict) or not isinstance(raw.get("text"), str):
        return None
    author = raw.get("author")
    timestamp = raw.get("timestamp")
    return CommentEntry(
        text=raw["text"],
        author=author if isinstance(author, str) and author else None,
        timestamp=timestamp if isinstance(timestamp, str) else None,
    )


def _decode_thread(payload: str) -> Union[ThreadEntries, PlainText]:
    try:
        raw = _loads(payload)
        if not isinstance(raw, list):
            raise CodecError("thread payload is not a list")
    except CodecError as e:
        logger.debug("thread_decode_fallback", error=str(e))
        return PlainText(payload)
    entries = tuple(e for e in (_entry_from_json(item) for item in raw) if e is not None)
    return ThreadEntries(entries)


def _decode_votes(payload: str) -> VoteMap:
    try:
        raw = _loads(payload)
        if isinstance(raw, dict) and isinstance(raw.get("votes"), dict):
            inner = raw.get("worked_well")
            if isinstance(inner, list):
                worked_well = ThreadEntries(tuple(
                    e for e in (_entry_from_json(item) for item in inner) if e is not None
                ))
            else:
                worked_well = comment_value(decode_field(inner if isinstance(inner, str) else ""))
            return VoteMap(clean_votes(raw["votes"]), worked_well)
        # Bare vote map written without the envelope
        return VoteMap(clean_votes(raw), PlainText(""))
    except CodecError as e:
        logger.debug("votes_decode_fallback", error=str(e))
        return VoteMap({}, PlainText(""))


def _decode_tag_envelope(payload: str) -> Union[TagEnvelope, PlainText]:
    try:
        raw = _loads(payload)
        if not isinstance(raw, dict):
            raise CodecError("tag envelope is not an object")
    except CodecError as e:
        logger.debug("tags_decode_fallback", error=str(e))
        return PlainText(payload)
    text = raw.get("text")
    tags = raw.get("tags")
    return TagEnvelope(
        text=text if isinstance(text, str) else "",
        tags=tuple(normalize_tags(tags if isinstance(tags, list) else [])),
    )


def decode_field(raw: Optional[str]) -> FieldValue:
    """Decode one column by its leading marker."""
    if not raw or not isinstance(raw, str):
        return PlainText("")
    if raw.startswith(VOTES_MARKER):
        return _decode_votes(raw[len(VOTES_MARKER):])
    if raw.startswith(THREAD_MARKER):
        return _decode_thread(raw[len(THREAD_MARKER):])
    if raw.startswith(TAGS_MARKER):
        return _decode_tag_envelope(raw[len(TAGS_MARKER):])
    return PlainText(raw)


def comment_value(value: FieldValue) -> Union[PlainText, ThreadEntries]:
    """Narrow any decoded shape to what a comment field can hold."""
    if isinstance(value, (PlainText, ThreadEntries)):
        return value
    if isinstance(value, VoteMap):
        return value.worked_well
    return PlainText(value.text)


def entries_of(value: FieldValue) -> list:
    """Canonical comment shape: a list of entries.

    Legacy plain text becomes a single authorless entry.
    """
    value = comment_value(value)
    if isinstance(value, ThreadEntries):
        return list(value.entries)
    return [CommentEntry(text=value.text)] if value.text else []


def thread_of(entries) -> Union[PlainText, ThreadEntries]:
    """Inverse of entries_of: a lone authorless entry is stored as plain text."""
    entries = tuple(entries)
    if not entries:
        return PlainText("")
    if len(entries) == 1 and entries[0].author is None and entries[0].timestamp is None:
        return PlainText(entries[0].text)
    return ThreadEntries(entries)


def text_of(value: FieldValue) -> str:
    """Best plain-text reading of any shape."""
    if isinstance(value, (PlainText, TagEnvelope)):
        return value.text
    return "\n".join(entry.text for entry in entries_of(value))


def encode_field(value: FieldValue) -> str:
    """Encode one column value; empty payloads collapse to legacy plain text."""
    if isinstance(value, PlainText):
        return value.text
    if isinstance(value, ThreadEntries):
        if not value.entries:
            return ""
        return THREAD_MARKER + _dumps([
            {"text": e.text, "author": e.author, "timestamp": e.timestamp}
            for e in value.entries
        ])
    if isinstance(value, VoteMap):
        if not value.votes:
            return encode_field(value.worked_well)
        return VOTES_MARKER + _dumps({
            "votes": dict(value.votes),
            "worked_well": encode_field(value.worked_well),
        })
    if isinstance(value, TagEnvelope):
        if not value.tags:
            return value.text
        return TAGS_MARKER + _dumps({"text": value.text, "tags": list(value.tags)})
    raise TypeError(f"not a field value: {value!r}")


__all__ = [
    'PlainText',
    'ThreadEntries',
    'VoteMap',
    'TagEnvelope',
    'FieldValue',
    'VOTES_MARKER',
    'THREAD_MARKER',
    'TAGS_MARKER',
    'clean_votes',
    'decode_field',
    'encode_field',
    'comment_value',
    'entries_of',
    'thread_of',
    'text_of',
]
