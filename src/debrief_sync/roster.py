"""
Person-name resolution against an organization roster.

Names are typed freely (assignees, comment authors, voters), so lookups are
fuzzy: exact full name first, then first token, then last token, ignoring
case. Resolution is total: a name with no roster match still gets a stable
color from a separate fallback palette.
"""

from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .keys import slugify
from .models.records import RosterMember


# Roster palette: color id -> hex
PALETTE: Tuple[Tuple[str, str], ...] = (
    ("teal", "#2dd4bf"),
    ("violet", "#a78bfa"),
    ("amber", "#fbbf24"),
    ("rose", "#fb7185"),
    ("sky", "#38bdf8"),
    ("lime", "#a3e635"),
    ("orange", "#fb923c"),
    ("pink", "#f472b6"),
    ("indigo", "#818cf8"),
    ("emerald", "#34d399"),
    ("cyan", "#22d3ee"),
    ("fuchsia", "#e879f9"),
)
PALETTE_HEX: Dict[str, str] = dict(PALETTE)

# Muted tones for names nobody has enrolled
FALLBACK_COLORS: Tuple[str, ...] = (
    "#94a3b8",
    "#a8a29e",
    "#9ca3af",
    "#a1a1aa",
    "#8b9dc3",
    "#b4a7a0",
)


def _char_sum(text: str) -> int:
    return sum(ord(ch) for ch in text)


def _tokens(name: str) -> List[str]:
    return name.strip().lower().split()


def assign_color(roster: Sequence[RosterMember], name: str) -> str:
    """First palette color unused by the roster, else a hash pick by name."""
    used = {m.color_id for m in roster if m.color_id}
    for color_id, _ in PALETTE:
        if color_id not in used:
            return color_id
    return PALETTE[_char_sum(name.strip().lower()) % len(PALETTE)][0]


def resolve_member(name: str, roster: Iterable[RosterMember]) -> Optional[RosterMember]:
    """Find the roster member a typed name refers to."""
    tokens = _tokens(name or "")
    if not tokens:
        return None
    members = list(roster)
    full = " ".join(tokens)

    for member in members:
        if " ".join(_tokens(member.name)) == full:
            return member
    for member in members:
        member_tokens = _tokens(member.name)
        if member_tokens and member_tokens[0] == tokens[0]:
            return member
    for member in members:
        member_tokens = _tokens(member.name)
        if member_tokens and member_tokens[-1] == tokens[-1]:
            return member
    return None


def color_for(name: str, roster: Iterable[RosterMember]) -> str:
    """Hex color for a name: the member's palette color or a fallback."""
    member = resolve_member(name, roster)
    if member is not None and member.color_id in PALETTE_HEX:
        return PALETTE_HEX[member.color_id]
    return FALLBACK_COLORS[_char_sum((name or "").strip().lower()) % len(FALLBACK_COLORS)]


def make_member(name: str, roster: Sequence[RosterMember], role: str = "") -> RosterMember:
    name = name.strip()
    base_id = f"m-{slugify(name)}"
    taken = {m.id for m in roster}
    member_id = base_id
    suffix = 2
    while member_id in taken:
        member_id = f"{base_id}-{suffix}"
        suffix += 1
    return RosterMember(id=member_id, name=name, role=role, color_id=assign_color(roster, name))


def enroll(name: str, roster: Sequence[RosterMember], role: str = "") -> Tuple[List[RosterMember], bool]:
    """Add a typed name to the roster unless it already resolves to a member.

    Returns:
        The (possibly extended) roster and whether a member was added
    """
    if not name or not name.strip() or resolve_member(name, roster) is not None:
        return list(roster), False
    return list(roster) + [make_member(name, roster, role)], True


def filter_by_person(names: Iterable[str], person: str, roster: Iterable[RosterMember]) -> bool:
    """Whether any of the names refers to the same roster member as person."""
    members = list(roster)
    target = resolve_member(person, members)
    for name in names:
        if target is not None:
            if resolve_member(name, members) == target:
                return True
        elif name.strip().lower() == person.strip().lower():
            return True
    return False


__all__ = [
    'PALETTE',
    'FALLBACK_COLORS',
    'assign_color',
    'resolve_member',
    'color_for',
    'make_member',
    'enroll',
    'filter_by_person',
]
