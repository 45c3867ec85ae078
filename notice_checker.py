#!/usr/bin/env python3
"""Check the MapleStory notice feed for changes and notify a Discord webhook."""

from __future__ import annotations

import argparse
import json
import logging
import os
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from discord_message import format_discord_message, format_error_message
from discord_notifier import DEFAULT_TIMEOUT, dispatch_message
from notice_diff import detect_changes, format_change_summary
from notice_errors import ConfigError, NoticeCheckError
from notice_fetcher import DEFAULT_API_BASE_URL, fetch_notices
from notice_models import INITIAL, ChangeSet, Message
from notice_store import DEFAULT_STATE_FILE, load_notices, save_notices

DISCORD_WEBHOOK_HOSTS = ("discord.com", "discordapp.com", "ptb.discord.com", "canary.discord.com")

DONE = "done"
FAILED = "failed"

log = logging.getLogger("notice_checker")


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CheckerConfig:
    api_key: str
    webhook_url: str
    api_base_url: str = DEFAULT_API_BASE_URL
    state_file: Path = Path(DEFAULT_STATE_FILE)
    timeout: int = DEFAULT_TIMEOUT
    dry_run: bool = False
    announce_initial: bool = False


def load_config(args: argparse.Namespace) -> CheckerConfig:
    """Resolve parsed CLI arguments into a validated ``CheckerConfig``.

    Raises:
        ConfigError: if a required secret is missing or a value is invalid.
    """
    api_key = (args.api_key or "").strip()
    if not api_key:
        raise ConfigError("provide --api-key or set NEXON_API_KEY")

    webhook_url = (args.webhook_url or "").strip()
    if not webhook_url and not args.dry_run:
        raise ConfigError("provide --webhook-url or set DISCORD_WEBHOOK_URL")
    if webhook_url:
        parsed = urlparse(webhook_url)
        if parsed.scheme != "https" or parsed.netloc not in DISCORD_WEBHOOK_HOSTS:
            raise ConfigError("Webhook URL does not look like a Discord webhook URL")

    if args.timeout <= 0:
        raise ConfigError("--timeout must be greater than 0")

    return CheckerConfig(
        api_key=api_key,
        webhook_url=webhook_url,
        api_base_url=args.api_base_url,
        state_file=Path(args.state_file),
        timeout=args.timeout,
        dry_run=args.dry_run,
        announce_initial=args.announce_initial,
    )


# ---------------------------------------------------------------------------
# Run orchestration
# ---------------------------------------------------------------------------

@dataclass
class CheckResult:
    state: str
    changes: Optional[ChangeSet] = None
    notified: bool = False
    persisted: bool = False
    error: Optional[BaseException] = None

    @property
    def exit_code(self) -> int:
        return 0 if self.state == DONE else 1


def _deliver(config: CheckerConfig, message: Message, logger: logging.Logger) -> None:
    if config.dry_run:
        logger.info(
            "[dry-run] Would send Discord message:\n%s",
            json.dumps(message.to_payload(), indent=2, ensure_ascii=False),
        )
        return
    dispatch_message(message, config.webhook_url, timeout=config.timeout, logger=logger)


def _notify_error(
    config: CheckerConfig,
    failure: BaseException,
    timestamp: str,
    logger: logging.Logger,
) -> None:
    try:
        _deliver(config, format_error_message(failure, timestamp=timestamp), logger)
    except Exception as exc:
        logger.error("Failed to send error notification: %s", exc)


def run_check(
    config: CheckerConfig,
    logger: logging.Logger = log,
    now: Optional[datetime] = None,
) -> CheckResult:
    """Run one fetch, detect, notify, persist cycle.

    Any failure after the run starts is reported to the webhook as an error
    embed and ends the run in the ``failed`` state.  A steady state (no
    changes) ends ``done`` without touching the stored snapshot.
    """
    checked_at = now or datetime.now(timezone.utc)
    timestamp = checked_at.isoformat()
    result = CheckResult(state=FAILED)

    try:
        logger.info("🔍 Checking for MapleStory notice changes...")
        current = fetch_notices(config.api_base_url, config.api_key, config.timeout, logger)
        previous = load_notices(config.state_file, logger)

        changes = detect_changes(previous, current)
        result.changes = changes
        logger.info("Change detection: %s", format_change_summary(changes))

        if changes.has_notification or (changes.kind == INITIAL and config.announce_initial):
            _deliver(config, format_discord_message(changes, timestamp=timestamp), logger)
            result.notified = True
        elif changes.kind == INITIAL:
            logger.info("📋 Initial data will be saved (no notification sent)")
        else:
            logger.info("✅ No changes detected")
            result.state = DONE
            return result

        save_notices(current, config.state_file, saved_at=checked_at, logger=logger)
        result.persisted = True
    except Exception as exc:
        logger.error("❌ Error in notice checker: %s", exc, exc_info=not isinstance(exc, NoticeCheckError))
        result.error = exc
        _notify_error(config, exc, timestamp, logger)
        return result

    result.state = DONE
    return result


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def log_formatter() -> logging.Formatter:
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", datefmt="%Y-%m-%dT%H:%M:%SZ")
    # Timestamps carry a Z suffix, so render them in UTC.
    formatter.converter = time.gmtime
    return formatter


def configure_logging(verbose: bool = False) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(log_formatter())
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, handlers=[handler])


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Check the MapleStory notice feed for changes and notify a Discord webhook."
    )
    parser.add_argument(
        "--api-key",
        default=os.environ.get("NEXON_API_KEY"),
        help="Nexon Open API key (or set NEXON_API_KEY env var)",
    )
    parser.add_argument(
        "--webhook-url",
        default=os.environ.get("DISCORD_WEBHOOK_URL"),
        help="Discord webhook URL (or set DISCORD_WEBHOOK_URL env var)",
    )
    parser.add_argument(
        "--api-base-url",
        default=DEFAULT_API_BASE_URL,
        help=f"Notice API base URL (default: {DEFAULT_API_BASE_URL})",
    )
    parser.add_argument(
        "--state-file",
        type=Path,
        default=Path(DEFAULT_STATE_FILE),
        help=f"Path for the stored notice snapshot (default: {DEFAULT_STATE_FILE})",
    )
    parser.add_argument("--timeout", type=int, default=DEFAULT_TIMEOUT, help="HTTP timeout in seconds")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Do everything except posting to Discord",
    )
    parser.add_argument(
        "--announce-initial",
        action="store_true",
        help="Send a 'monitoring started' message on the first run instead of only seeding the snapshot",
    )
    parser.add_argument("--verbose", action="store_true", help="Log webhook payloads and debug output")
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.verbose)

    try:
        config = load_config(args)
    except ConfigError as exc:
        log.error("Error: %s", exc)
        return 1

    return run_check(config).exit_code


if __name__ == "__main__":
    raise SystemExit(main())
