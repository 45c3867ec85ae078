#!/usr/bin/env python3
"""Build Discord webhook payloads that stay inside Discord's embed limits."""

from __future__ import annotations

import json
from typing import Optional
from urllib.parse import urlparse

from notice_errors import FormatError
from notice_models import INITIAL, ChangeSet, Field, Message, Notice, Section

BOT_USERNAME = "MapleStory Notice Bot"
BOT_AVATAR_URL = "https://ssl.nx.com/s2/game/maplestory/renewal/common/game_icon.png"
DEFAULT_NOTICE_URL = "https://maplestory.nexon.com"

# Discord limits
MAX_USERNAME_LENGTH = 80
MAX_TITLE_LENGTH = 256
MAX_DESCRIPTION_LENGTH = 4096
MAX_FIELD_NAME_LENGTH = 256
MAX_FIELD_VALUE_LENGTH = 1024
MAX_SECTIONS = 10
MAX_PAYLOAD_BYTES = 50_000
SECTIONS_KEPT_WHEN_OVERSIZED = 5

INITIAL_PREVIEW_COUNT = 3
MAX_FIELDS_PER_SECTION = 5

COLOR_STARTED = 0x00FF00
COLOR_RECENT = 0x0099FF
COLOR_NEW = 0xFF6B35
COLOR_UPDATED = 0xFFA500
COLOR_ERROR = 0xFF0000

ELLIPSIS = "..."


def truncate_text(text: Optional[str], max_length: int) -> str:
    """Clip *text* to *max_length* characters, marking the cut with ``...``.

    A clipped result is exactly *max_length* long; text that already fits
    is returned unchanged.
    """
    if not text:
        return ""
    if len(text) <= max_length:
        return text
    if max_length < len(ELLIPSIS):
        return ELLIPSIS[: max(0, max_length)]
    return text[: max_length - len(ELLIPSIS)] + ELLIPSIS


def validate_url(url: Optional[str]) -> str:
    """Return *url* if it is an absolute http(s) URL, else the default page."""
    if not url:
        return DEFAULT_NOTICE_URL
    try:
        parsed = urlparse(url)
    except ValueError:
        return DEFAULT_NOTICE_URL
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return DEFAULT_NOTICE_URL
    return url


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

def _notice_field(notice: Notice, with_date: bool) -> Field:
    value = f"[Open notice]({validate_url(notice.url)})"
    if with_date:
        value += f"\n📅 {notice.date or 'No date'}"
    return Field(
        name=truncate_text(notice.title or "Untitled notice", MAX_FIELD_NAME_LENGTH),
        value=truncate_text(value, MAX_FIELD_VALUE_LENGTH),
    )


def _initial_sections(changes: ChangeSet, timestamp: Optional[str]) -> list[Section]:
    sections = [
        Section(
            title=truncate_text("🍁 MapleStory notice monitoring started", MAX_TITLE_LENGTH),
            description=truncate_text(
                f"Now tracking **{len(changes.added)}** notices.", MAX_DESCRIPTION_LENGTH
            ),
            color=COLOR_STARTED,
            timestamp=timestamp,
        )
    ]
    recent = changes.added[:INITIAL_PREVIEW_COUNT]
    if recent:
        sections.append(
            Section(
                title=truncate_text("📋 Recent notices", MAX_TITLE_LENGTH),
                color=COLOR_RECENT,
                timestamp=timestamp,
                fields=[_notice_field(notice, with_date=False) for notice in recent],
            )
        )
    return sections


def _update_sections(changes: ChangeSet, timestamp: Optional[str]) -> list[Section]:
    sections: list[Section] = []
    if changes.added:
        sections.append(
            Section(
                title=truncate_text("🆕 New notices", MAX_TITLE_LENGTH),
                description=truncate_text(
                    f"**{len(changes.added)}** new notice(s) posted!", MAX_DESCRIPTION_LENGTH
                ),
                color=COLOR_NEW,
                timestamp=timestamp,
                fields=[
                    _notice_field(notice, with_date=True)
                    for notice in changes.added[:MAX_FIELDS_PER_SECTION]
                ],
            )
        )
    if changes.updated:
        sections.append(
            Section(
                title=truncate_text("📝 Updated notices", MAX_TITLE_LENGTH),
                description=truncate_text(
                    f"**{len(changes.updated)}** notice(s) were updated!", MAX_DESCRIPTION_LENGTH
                ),
                color=COLOR_UPDATED,
                timestamp=timestamp,
                fields=[
                    _notice_field(change.after, with_date=True)
                    for change in changes.updated[:MAX_FIELDS_PER_SECTION]
                ],
            )
        )
    return sections


def _new_message(sections: list[Section]) -> Message:
    return Message(
        username=truncate_text(BOT_USERNAME, MAX_USERNAME_LENGTH),
        avatar_url=BOT_AVATAR_URL,
        sections=sections,
    )


def format_discord_message(changes: ChangeSet, timestamp: Optional[str] = None) -> Message:
    """Format a change set as a Discord webhook message.

    The ``initial`` kind announces how many notices are tracked and previews
    the first few; the ``update`` kind lists new and updated notices in
    separate embeds, five notices each at most.

    *timestamp* is an ISO-8601 string stamped on every embed; pass ``None``
    to leave embeds unstamped.  The result always satisfies
    ``enforce_payload_limits``.
    """
    if changes.kind == INITIAL:
        sections = _initial_sections(changes, timestamp)
    else:
        sections = _update_sections(changes, timestamp)
    return enforce_payload_limits(_new_message(sections[:MAX_SECTIONS]))


def format_error_message(error: BaseException, timestamp: Optional[str] = None) -> Message:
    """Single-embed message reporting a failed check."""
    fence = "```"
    body = truncate_text(str(error) or type(error).__name__, MAX_DESCRIPTION_LENGTH - 2 * len(fence))
    section = Section(
        title=truncate_text("⚠️ Error while checking notices", MAX_TITLE_LENGTH),
        description=f"{fence}{body}{fence}",
        color=COLOR_ERROR,
        timestamp=timestamp,
    )
    return _new_message([section])


# ---------------------------------------------------------------------------
# Serialisation and size limits
# ---------------------------------------------------------------------------

def serialize_message(message: Message) -> str:
    """Serialise *message* to its JSON webhook body.

    Raises:
        FormatError: if the message has no embeds or cannot be encoded.
    """
    if not message.sections:
        raise FormatError("Invalid message format: no embeds found")
    try:
        return json.dumps(message.to_payload(), ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        raise FormatError(f"JSON serialization failed: {exc}") from exc


def payload_size(body: str) -> int:
    return len(body.encode("utf-8"))


def enforce_payload_limits(message: Message) -> Message:
    """Cap the embed count and, if the body is too large, keep five embeds.

    The oversize correction is applied once; the result is not re-checked.
    """
    sections = message.sections[:MAX_SECTIONS]
    capped = Message(username=message.username, avatar_url=message.avatar_url, sections=sections)
    if not sections:
        return capped
    if payload_size(serialize_message(capped)) > MAX_PAYLOAD_BYTES:
        capped.sections = sections[:SECTIONS_KEPT_WHEN_OVERSIZED]
    return capped
