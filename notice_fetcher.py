#!/usr/bin/env python3
"""Fetch the current notice list from the MapleStory Open API."""

from __future__ import annotations

import json
import logging
from urllib import error, request

from notice_errors import FetchError
from notice_models import Notice, notices_from_document

DEFAULT_API_BASE_URL = "https://open.api.nexon.com/maplestory/v1"
DEFAULT_TIMEOUT = 30
API_KEY_HEADER = "x-nxopen-api-key"
USER_AGENT = "MapleNoticeChecker/1.0"

log = logging.getLogger("notice_checker")


def fetch_document(api_base_url: str, api_key: str, timeout: int = DEFAULT_TIMEOUT) -> dict:
    """GET ``{api_base_url}/notice`` and return the decoded JSON document.

    Raises:
        FetchError: on a non-2xx response, a transport failure, or a body
            that is not valid JSON.
    """
    url = f"{api_base_url.rstrip('/')}/notice"
    req = request.Request(
        url,
        headers={
            API_KEY_HEADER: api_key,
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        },
    )
    try:
        with request.urlopen(req, timeout=timeout) as response:
            if response.status < 200 or response.status >= 300:
                raise FetchError(f"API request failed: HTTP {response.status}")
            charset = response.headers.get_content_charset() or "utf-8"
            text = response.read().decode(charset, errors="replace")
    except error.HTTPError as exc:
        raise FetchError(f"API request failed: HTTP {exc.code} {exc.reason}") from exc
    except (error.URLError, TimeoutError, OSError, ValueError) as exc:
        raise FetchError(f"API request failed: {exc}") from exc

    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise FetchError(f"API returned malformed JSON: {exc}") from exc


def fetch_notices(
    api_base_url: str,
    api_key: str,
    timeout: int = DEFAULT_TIMEOUT,
    logger: logging.Logger = log,
) -> list[Notice]:
    """Fetch and parse the current notices, in feed order."""
    document = fetch_document(api_base_url, api_key, timeout)
    try:
        notices, skipped = notices_from_document(document)
    except ValueError as exc:
        raise FetchError(f"API returned malformed notice data: {exc}") from exc
    if skipped:
        logger.warning("Skipped %d notice(s) without a notice_id", skipped)
    logger.info("Found %d notices", len(notices))
    return notices
