#!/usr/bin/env python3
"""Record types shared by the fetcher, detector, formatter and notifier."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

INITIAL = "initial"
UPDATE = "update"


# ---------------------------------------------------------------------------
# Notices
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Notice:
    """A single announcement from the feed, keyed by ``id``."""

    id: str
    title: str = ""
    url: str = ""
    date: str = ""

    @classmethod
    def from_record(cls, record: dict) -> Optional["Notice"]:
        """Build a notice from a feed record, or ``None`` if it has no id.

        Feed records use ``notice_id`` as the key.  Ids are normalised to
        strings so a stored ``"123"`` and a freshly fetched ``123`` match.
        Missing or null text fields default to ``""``.
        """
        notice_id = record.get("notice_id")
        if notice_id is None or notice_id == "":
            return None
        return cls(
            id=str(notice_id),
            title=_text(record.get("title")),
            url=_text(record.get("url")),
            date=_text(record.get("date")),
        )

    def to_record(self) -> dict:
        return {
            "notice_id": self.id,
            "title": self.title,
            "url": self.url,
            "date": self.date,
        }


def _text(value) -> str:
    if value is None:
        return ""
    return str(value)


def notices_from_document(document) -> tuple[list[Notice], int]:
    """Extract notices from a ``{"notice": [...]}`` document.

    Returns the parsed notices (in document order) and the number of
    records that were skipped because they carried no ``notice_id``.

    Raises:
        ValueError: if the document is not an object with a ``notice``
            list, or a list entry is not an object.
    """
    if not isinstance(document, dict):
        raise ValueError(f"expected a JSON object, got {type(document).__name__}")
    records = document.get("notice")
    if not isinstance(records, list):
        raise ValueError("document has no 'notice' list")

    notices: list[Notice] = []
    skipped = 0
    for index, record in enumerate(records):
        if not isinstance(record, dict):
            raise ValueError(f"notice #{index} is not an object")
        notice = Notice.from_record(record)
        if notice is None:
            skipped += 1
            continue
        notices.append(notice)
    return notices, skipped


# ---------------------------------------------------------------------------
# Change sets
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NoticeUpdate:
    before: Notice
    after: Notice


@dataclass
class ChangeSet:
    """Classification of the current notices against the previous snapshot."""

    kind: str
    added: list[Notice] = field(default_factory=list)
    updated: list[NoticeUpdate] = field(default_factory=list)

    @property
    def has_notification(self) -> bool:
        # A cold start only seeds storage; it never alerts.
        if self.kind == INITIAL:
            return False
        return bool(self.added) or bool(self.updated)


# ---------------------------------------------------------------------------
# Discord messages
# ---------------------------------------------------------------------------

@dataclass
class Field:
    name: str
    value: str
    inline: bool = False

    def to_payload(self) -> dict:
        return {"name": self.name, "value": self.value, "inline": self.inline}


@dataclass
class Section:
    """One Discord embed."""

    title: str
    description: Optional[str] = None
    color: Optional[int] = None
    timestamp: Optional[str] = None
    fields: list[Field] = field(default_factory=list)

    def to_payload(self) -> dict:
        payload: dict = {"title": self.title}
        if self.description is not None:
            payload["description"] = self.description
        if self.color is not None:
            payload["color"] = self.color
        if self.timestamp is not None:
            payload["timestamp"] = self.timestamp
        if self.fields:
            payload["fields"] = [f.to_payload() for f in self.fields]
        return payload


@dataclass
class Message:
    username: str
    avatar_url: str
    sections: list[Section] = field(default_factory=list)

    def to_payload(self) -> dict:
        return {
            "username": self.username,
            "avatar_url": self.avatar_url,
            "embeds": [s.to_payload() for s in self.sections],
        }
