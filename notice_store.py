#!/usr/bin/env python3
"""Persist the last-seen notice list as a JSON file."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from notice_errors import PersistenceError
from notice_models import Notice, notices_from_document

DEFAULT_STATE_FILE = "notice-data.json"

log = logging.getLogger("notice_checker")


def load_notices(
    state_file: str | Path = DEFAULT_STATE_FILE,
    logger: logging.Logger = log,
) -> Optional[list[Notice]]:
    """Load the stored snapshot, or ``None`` if no snapshot has been saved.

    Only a missing file counts as "no snapshot"; unreadable or corrupt
    files are errors so that a broken state file never looks like a cold
    start.

    Raises:
        PersistenceError: if the file exists but cannot be read or parsed.
    """
    state_file = Path(state_file)
    try:
        text = state_file.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.info("No previous data found at %s", state_file)
        return None
    except OSError as exc:
        raise PersistenceError(f"Failed to read {state_file}: {exc}") from exc

    try:
        notices, skipped = notices_from_document(json.loads(text))
    except ValueError as exc:
        raise PersistenceError(f"Stored snapshot {state_file} is invalid: {exc}") from exc
    if skipped:
        logger.warning("Ignored %d stored notice(s) without a notice_id", skipped)
    logger.info("Loaded %d previous notices from %s", len(notices), state_file)
    return notices


def save_notices(
    notices: list[Notice],
    state_file: str | Path = DEFAULT_STATE_FILE,
    saved_at: Optional[datetime] = None,
    logger: logging.Logger = log,
) -> Path:
    """Write *notices* to *state_file*, creating parent directories.

    Raises:
        PersistenceError: if the file cannot be written.
    """
    state_file = Path(state_file)
    saved_at = saved_at or datetime.now(timezone.utc)
    payload = {
        "updated_at_utc": saved_at.isoformat(),
        "notice": [notice.to_record() for notice in notices],
    }
    content = json.dumps(payload, indent=2, ensure_ascii=False) + "\n"
    try:
        state_file.parent.mkdir(parents=True, exist_ok=True)
        state_file.write_text(content, encoding="utf-8")
    except OSError as exc:
        raise PersistenceError(f"Failed to write {state_file}: {exc}") from exc
    logger.info("Saved %d notices to %s", len(notices), state_file)
    return state_file
