"""
Tests for person-name resolution and roster colors.
"""

from debrief_sync.models.records import RosterMember
from debrief_sync.roster import (
    FALLBACK_COLORS,
    PALETTE,
    PALETTE_HEX,
    assign_color,
    color_for,
    enroll,
    filter_by_person,
    resolve_member,
)


ROSTER = [
    RosterMember("m-sam", "Sam Lee", color_id="teal"),
    RosterMember("m-ana", "Ana Ruiz", color_id="violet"),
]


class TestResolveMember:
    """Test match priority."""

    def test_exact_match_ignores_case(self):
        assert resolve_member("sam lee", ROSTER).id == "m-sam"

    def test_first_token(self):
        assert resolve_member("Ana", ROSTER).id == "m-ana"

    def test_last_token(self):
        assert resolve_member("J. Ruiz", ROSTER).id == "m-ana"

    def test_exact_beats_first_token(self):
        roster = [RosterMember("1", "Sam Lee"), RosterMember("2", "Sam")]
        assert resolve_member("sam", roster).id == "2"

    def test_no_match(self):
        assert resolve_member("Zed", ROSTER) is None
        assert resolve_member("   ", ROSTER) is None


class TestColors:
    """Test deterministic color choice."""

    def test_member_color(self):
        assert color_for("Sam", ROSTER) == PALETTE_HEX["teal"]

    def test_unknown_name_is_stable_and_from_fallback(self):
        first = color_for("Zed Zulu", ROSTER)
        assert first == color_for("zed zulu", ROSTER)
        assert first in FALLBACK_COLORS
        assert first not in PALETTE_HEX.values()

    def test_assign_first_unused(self):
        assert assign_color(ROSTER, "New") == PALETTE[2][0]

    def test_assign_when_palette_exhausted(self):
        roster = [RosterMember(str(i), f"P{i}", color_id=c) for i, (c, _) in enumerate(PALETTE)]
        color = assign_color(roster, "Overflow")
        assert color == assign_color(roster, "Overflow")
        assert color in PALETTE_HEX


class TestEnroll:
    """Test roster auto-enrollment."""

    def test_enroll_new_name(self):
        roster, added = enroll("Kim Park", ROSTER)
        assert added
        assert roster[-1].name == "Kim Park"
        assert roster[-1].color_id not in {"teal", "violet"}

    def test_enroll_fuzzy_match_is_noop(self):
        roster, added = enroll("sam", ROSTER)
        assert not added
        assert roster == ROSTER

    def test_filter_by_person(self):
        assert filter_by_person(["Sam"], "Sam Lee", ROSTER)
        assert not filter_by_person(["Ana"], "Sam Lee", ROSTER)
        assert filter_by_person(["Zed"], "zed", ROSTER)
