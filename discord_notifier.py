#!/usr/bin/env python3
"""Deliver messages to a Discord webhook with a single plain-text fallback."""

from __future__ import annotations

import json
import logging
from urllib import error, request

from discord_message import serialize_message, truncate_text
from notice_errors import DeliveryError
from notice_models import Message

DEFAULT_TIMEOUT = 30
USER_AGENT = "MapleNoticeChecker/1.0"
MAX_CONTENT_LENGTH = 2000
MAX_LOGGED_RESPONSE_LENGTH = 500

log = logging.getLogger("notice_checker")


def post_json(webhook_url: str, body: str, timeout: int = DEFAULT_TIMEOUT) -> int:
    """POST a JSON *body* to *webhook_url* and return the HTTP status.

    Raises:
        DeliveryError: on a non-2xx response or any transport failure.  HTTP
            failures carry the status code and the response text.
    """
    req = request.Request(
        webhook_url,
        data=body.encode("utf-8"),
        headers={
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        },
        method="POST",
    )
    try:
        with request.urlopen(req, timeout=timeout) as response:
            status = response.status
            if status < 200 or status >= 300:
                text = response.read().decode("utf-8", errors="replace").strip()
                raise DeliveryError(
                    f"Discord webhook failed: HTTP {status}",
                    status=status,
                    response_text=text,
                )
            return status
    except error.HTTPError as exc:
        details = ""
        try:
            details = exc.read().decode("utf-8", errors="replace").strip()
        except OSError:
            details = ""
        raise DeliveryError(
            f"Discord webhook failed: HTTP {exc.code} {exc.reason}",
            status=exc.code,
            response_text=details,
        ) from exc
    except (error.URLError, TimeoutError, OSError, ValueError) as exc:
        raise DeliveryError(f"Discord webhook request failed: {exc}") from exc


def send_fallback_message(
    webhook_url: str,
    username: str,
    failure: BaseException,
    timeout: int = DEFAULT_TIMEOUT,
    logger: logging.Logger = log,
) -> bool:
    """Post a plain-text notice about *failure*; return True if it was accepted.

    Failures are logged and swallowed so the caller can surface the
    original error.
    """
    content = truncate_text(
        f"⚠️ An error occurred while sending the notice notification.\nError: {failure}",
        MAX_CONTENT_LENGTH,
    )
    body = json.dumps({"username": username, "content": content}, ensure_ascii=False)
    try:
        post_json(webhook_url, body, timeout)
    except DeliveryError as exc:
        logger.error("Fallback message also failed: %s", exc)
        return False
    logger.info("Fallback message sent successfully")
    return True


def dispatch_message(
    message: Message,
    webhook_url: str,
    timeout: int = DEFAULT_TIMEOUT,
    logger: logging.Logger = log,
) -> None:
    """Send *message*, falling back to one plain-text post if that fails.

    Raises:
        FormatError: before any network call, if the message has no embeds
            or cannot be serialised.
        DeliveryError: the primary delivery error, whether or not the
            fallback post went through.
    """
    body = serialize_message(message)
    logger.debug("Sending Discord message: %s", body)

    try:
        post_json(webhook_url, body, timeout)
    except DeliveryError as exc:
        logger.error(
            "Error sending Discord notification: %s",
            truncate_text(str(exc), MAX_LOGGED_RESPONSE_LENGTH),
        )
        send_fallback_message(webhook_url, message.username, exc, timeout, logger)
        raise

    logger.info("Discord notification sent (%d embeds)", len(message.sections))
