"""Inline entity mentions: ``@[Display Name](entity-id)``.

Covers three concerns:
- encoding/decoding a single token
- splitting stored text into literal and mention segments for rendering
- detecting the live ``@query`` while a user composes text, and splicing the
  chosen candidate back in
"""

import re
from dataclasses import dataclass


TOKEN_PATTERN = re.compile(r"@\[([^\]]+)\]\(([^)]+)\)")


class MalformedMention(ValueError):
    """Text is not a single well-formed mention token."""


@dataclass(frozen=True)
class TextSegment:
    text: str


@dataclass(frozen=True)
class MentionSegment:
    display: str
    entity_id: str
    raw: str


Segment = TextSegment | MentionSegment


@dataclass(frozen=True)
class MentionQuery:
    """A live ``@query`` found behind the cursor."""

    start: int  # index of the "@"
    end: int  # cursor offset
    query: str


def encode_mention(display: str, entity_id: str) -> str:
    """Build the canonical token for an entity.

    Raises:
        MalformedMention: if either part is empty or contains its terminator
    """
    if not display or "]" in display:
        raise MalformedMention(f"Invalid mention display name: {display!r}")
    if not entity_id or ")" in entity_id:
        raise MalformedMention(f"Invalid mention id: {entity_id!r}")
    return f"@[{display}]({entity_id})"


def decode_mention(token: str) -> tuple[str, str]:
    """Return ``(display, entity_id)`` for a single token."""
    match = TOKEN_PATTERN.fullmatch(token)
    if match is None:
        raise MalformedMention(f"Not a mention token: {token!r}")
    return match.group(1), match.group(2)


def parse_segments(text: str) -> list[Segment]:
    """Split text into literal and mention segments.

    Never raises: anything that is not a complete token, including
    unterminated ones like ``@[Name](12``, stays in a TextSegment.
    """
    segments: list[Segment] = []
    last = 0
    for match in TOKEN_PATTERN.finditer(text):
        if match.start() > last:
            segments.append(TextSegment(text[last : match.start()]))
        segments.append(
            MentionSegment(
                display=match.group(1), entity_id=match.group(2), raw=match.group(0)
            )
        )
        last = match.end()
    if last < len(text):
        segments.append(TextSegment(text[last:]))
    return segments


def extract_mentions(text: str) -> list[str]:
    """Return mentioned entity ids in order of first appearance."""
    seen: dict[str, None] = {}
    for match in TOKEN_PATTERN.finditer(text or ""):
        seen.setdefault(match.group(2), None)
    return list(seen)


def find_active_query(text: str, cursor: int) -> MentionQuery | None:
    """Find the ``@query`` the user is typing at ``cursor``.

    The query starts at the nearest ``@`` before the cursor and is live only
    while no whitespace separates it from the cursor.
    """
    cursor = max(0, min(cursor, len(text)))
    before = text[:cursor]
    at = before.rfind("@")
    if at == -1:
        return None

    query = before[at + 1 :]
    if any(ch.isspace() for ch in query):
        return None
    # Cursor sits right after an already completed token
    if TOKEN_PATTERN.fullmatch(before[at:]):
        return None
    return MentionQuery(start=at, end=cursor, query=query)


def apply_selection(
    text: str, cursor: int, display: str, entity_id: str
) -> tuple[str, int]:
    """Replace the live ``@query`` with the chosen entity's token.

    Returns the new text and the cursor position just after the inserted
    token and its trailing space. Text is returned unchanged when there is no
    live query at the cursor.
    """
    active = find_active_query(text, cursor)
    if active is None:
        return text, cursor

    replacement = encode_mention(display, entity_id) + " "
    new_text = text[: active.start] + replacement + text[active.end :]
    return new_text, active.start + len(replacement)
