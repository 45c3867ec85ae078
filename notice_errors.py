#!/usr/bin/env python3
"""Exception types raised by the notice checker pipeline."""

from __future__ import annotations


class NoticeCheckError(Exception):
    """Base class for every failure the checker knows how to report."""


class ConfigError(NoticeCheckError):
    """Required configuration is missing or invalid."""


class FetchError(NoticeCheckError):
    """The notice feed request failed or returned malformed data."""


class PersistenceError(NoticeCheckError):
    """The stored snapshot could not be read or written."""


class FormatError(NoticeCheckError):
    """A message violated a structural invariant before sending."""


class DeliveryError(NoticeCheckError):
    """The webhook rejected a message or could not be reached."""

    def __init__(self, message: str, status: int | None = None, response_text: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.response_text = response_text

    def __str__(self) -> str:
        text = super().__str__()
        if self.response_text:
            return f"{text}\nResponse: {self.response_text}"
        return text
