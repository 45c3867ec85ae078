#!/usr/bin/env python3
"""Classify the current notice list against the previously stored snapshot."""

from __future__ import annotations

from typing import Optional

from notice_models import INITIAL, UPDATE, ChangeSet, Notice, NoticeUpdate


def detect_changes(previous: Optional[list[Notice]], current: list[Notice]) -> ChangeSet:
    """Compare two snapshots and return the added and updated notices.

    Args:
        previous: The stored snapshot, or ``None`` when nothing has been
            stored yet.
        current: The notices just fetched from the feed.

    Returns:
        A ``ChangeSet``.  Without a previous snapshot every current notice
        is reported as added under the ``initial`` kind, which never
        triggers a notification.  Notices that disappeared from the feed
        are not reported.
    """
    if previous is None:
        return ChangeSet(kind=INITIAL, added=list(current), updated=[])

    previous_ids = {notice.id for notice in previous}
    added = [notice for notice in current if notice.id not in previous_ids]

    current_by_id = {notice.id: notice for notice in current}
    updated: list[NoticeUpdate] = []
    for before in previous:
        after = current_by_id.get(before.id)
        if after is None:
            continue
        if before.title != after.title or before.url != after.url:
            updated.append(NoticeUpdate(before=before, after=after))

    return ChangeSet(kind=UPDATE, added=added, updated=updated)


def format_change_summary(changes: ChangeSet) -> str:
    """One-line summary of what changed, suitable for logging."""
    if changes.kind == INITIAL:
        return f"initial snapshot of {len(changes.added)} notices"
    parts: list[str] = []
    if changes.added:
        parts.append(f"{len(changes.added)} new")
    if changes.updated:
        parts.append(f"{len(changes.updated)} updated")
    return ", ".join(parts) if parts else "no changes"
