"""Tests for mention tokens and composition helpers."""

import pytest

from src.forum.mentions import (
    MalformedMention,
    MentionSegment,
    TextSegment,
    apply_selection,
    decode_mention,
    encode_mention,
    extract_mentions,
    find_active_query,
    parse_segments,
)


class TestTokens:
    def test_encode(self) -> None:
        assert encode_mention("Casa Azul", "p-1") == "@[Casa Azul](p-1)"

    def test_round_trip(self) -> None:
        assert decode_mention(encode_mention("Loft 12", "abc-123")) == (
            "Loft 12",
            "abc-123",
        )

    @pytest.mark.parametrize("display,entity_id", [("", "x"), ("a]b", "x"), ("A", "")])
    def test_encode_rejects_bad_parts(self, display: str, entity_id: str) -> None:
        with pytest.raises(MalformedMention):
            encode_mention(display, entity_id)

    def test_decode_rejects_partial(self) -> None:
        with pytest.raises(MalformedMention):
            decode_mention("@[Name](12")


class TestParseSegments:
    def test_mixed_text(self) -> None:
        segments = parse_segments("See @[Loft](p-1) and @[Casa](p-2)!")
        assert segments == [
            TextSegment("See "),
            MentionSegment(display="Loft", entity_id="p-1", raw="@[Loft](p-1)"),
            TextSegment(" and "),
            MentionSegment(display="Casa", entity_id="p-2", raw="@[Casa](p-2)"),
            TextSegment("!"),
        ]

    def test_unterminated_token_is_literal(self) -> None:
        assert parse_segments("hi @[Name](12") == [TextSegment("hi @[Name](12")]

    def test_empty(self) -> None:
        assert parse_segments("") == []


class TestExtractMentions:
    def test_order_of_first_appearance(self) -> None:
        text = "@[B](2) then @[A](1) and again @[B](2)"
        assert extract_mentions(text) == ["2", "1"]

    def test_none_text(self) -> None:
        assert extract_mentions(None) == []


class TestComposition:
    def test_active_query(self) -> None:
        text = "Look at @cas"
        query = find_active_query(text, len(text))
        assert query is not None
        assert query.query == "cas"
        assert query.start == 8

    def test_whitespace_ends_query(self) -> None:
        text = "@casa azul"
        assert find_active_query(text, len(text)) is None

    def test_no_at_sign(self) -> None:
        assert find_active_query("hello", 5) is None

    def test_completed_token_is_not_a_query(self) -> None:
        text = "@[Loft](p-1)"
        assert find_active_query(text, len(text)) is None

    def test_apply_selection(self) -> None:
        text = "Look at @cas please"
        cursor = len("Look at @cas")
        new_text, new_cursor = apply_selection(text, cursor, "Casa Azul", "p-9")
        assert new_text == "Look at @[Casa Azul](p-9)  please"
        assert new_text[:new_cursor] == "Look at @[Casa Azul](p-9) "

    def test_apply_selection_without_query(self) -> None:
        assert apply_selection("plain", 5, "X", "1") == ("plain", 5)
