"""End-to-end tests for a single notice check run."""

import io
import json
import logging
import tempfile
import time
import unittest
from datetime import datetime, timezone
from pathlib import Path
from unittest import mock
from urllib import error

from notice_checker import (
    DONE,
    FAILED,
    CheckerConfig,
    configure_logging,
    load_config,
    log_formatter,
    main,
    parse_args,
    run_check,
)
from notice_errors import ConfigError, DeliveryError, FetchError
from notice_models import INITIAL, UPDATE, Notice
from notice_store import load_notices, save_notices

WEBHOOK_URL = "https://discord.com/api/webhooks/test/fake"
NOW = datetime(2026, 10, 17, 9, 0, tzinfo=timezone.utc)

logging.getLogger("notice_checker").addHandler(logging.NullHandler())


def _notice(notice_id, title, url=""):
    return Notice(id=str(notice_id), title=title, url=url)


def _webhook_500(*args, **kwargs):
    raise error.HTTPError(WEBHOOK_URL, 500, "Internal Server Error", {}, io.BytesIO(b"oops"))


class RunCheckTestCase(unittest.TestCase):
    def setUp(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmpdir.cleanup)
        self.state_file = Path(self._tmpdir.name) / "notice-data.json"
        self.config = CheckerConfig(api_key="key", webhook_url=WEBHOOK_URL, state_file=self.state_file)

        fetch_patcher = mock.patch("notice_checker.fetch_notices")
        self.fetch = fetch_patcher.start()
        self.addCleanup(fetch_patcher.stop)

        dispatch_patcher = mock.patch("notice_checker.dispatch_message")
        self.dispatch = dispatch_patcher.start()
        self.addCleanup(dispatch_patcher.stop)

    def _sent_messages(self):
        return [c.args[0] for c in self.dispatch.call_args_list]


class TestRunCheckScenarios(RunCheckTestCase):
    def test_cold_start_seeds_storage_without_notifying(self):
        current = [_notice(1, "A"), _notice(2, "B")]
        self.fetch.return_value = current

        result = run_check(self.config, now=NOW)

        self.assertEqual(result.state, DONE)
        self.assertEqual(result.changes.kind, INITIAL)
        self.assertFalse(result.changes.has_notification)
        self.assertTrue(result.persisted)
        self.assertFalse(result.notified)
        self.dispatch.assert_not_called()
        self.assertEqual(load_notices(self.state_file), current)

    def test_cold_start_announced_when_enabled(self):
        self.fetch.return_value = [_notice(1, "A")]
        config = CheckerConfig(
            api_key="key", webhook_url=WEBHOOK_URL, state_file=self.state_file, announce_initial=True
        )

        result = run_check(config, now=NOW)

        self.assertEqual(result.state, DONE)
        self.assertTrue(result.notified)
        self.assertEqual(self.dispatch.call_count, 1)
        self.assertIn("monitoring started", self._sent_messages()[0].sections[0].title)
        self.assertTrue(self.state_file.exists())

    def test_new_notice_sends_added_section(self):
        save_notices([_notice(1, "A")], self.state_file)
        self.fetch.return_value = [_notice(1, "A"), _notice(2, "B")]

        result = run_check(self.config, now=NOW)

        self.assertEqual(result.state, DONE)
        self.assertEqual(result.changes.kind, UPDATE)
        self.assertEqual(result.changes.added, [_notice(2, "B")])
        self.assertEqual(result.changes.updated, [])
        self.assertEqual(self.dispatch.call_count, 1)
        message = self._sent_messages()[0]
        self.assertEqual(len(message.sections), 1)
        self.assertIn("New notices", message.sections[0].title)
        self.assertEqual(len(message.sections[0].fields), 1)
        self.assertEqual(message.sections[0].timestamp, NOW.isoformat())
        self.assertEqual(len(load_notices(self.state_file)), 2)

    def test_updated_notice_sends_updated_section(self):
        save_notices([_notice(1, "A", "u1")], self.state_file)
        self.fetch.return_value = [_notice(1, "A2", "u1")]

        result = run_check(self.config, now=NOW)

        self.assertEqual(result.state, DONE)
        self.assertEqual(result.changes.added, [])
        self.assertEqual(len(result.changes.updated), 1)
        self.assertEqual(result.changes.updated[0].before.title, "A")
        self.assertEqual(result.changes.updated[0].after.title, "A2")
        message = self._sent_messages()[0]
        self.assertIn("Updated notices", message.sections[0].title)
        self.assertEqual(load_notices(self.state_file)[0].title, "A2")

    def test_steady_state_does_not_notify_or_persist(self):
        save_notices([_notice(1, "A")], self.state_file, saved_at=datetime(2026, 1, 1, tzinfo=timezone.utc))
        before = self.state_file.read_text(encoding="utf-8")
        self.fetch.return_value = [_notice(1, "A")]

        result = run_check(self.config, now=NOW)

        self.assertEqual(result.state, DONE)
        self.assertFalse(result.persisted)
        self.dispatch.assert_not_called()
        self.assertEqual(self.state_file.read_text(encoding="utf-8"), before)

    def test_dry_run_skips_dispatch_but_persists(self):
        save_notices([_notice(1, "A")], self.state_file)
        self.fetch.return_value = [_notice(1, "A"), _notice(2, "B")]
        config = CheckerConfig(api_key="key", webhook_url="", state_file=self.state_file, dry_run=True)

        result = run_check(config, now=NOW)

        self.assertEqual(result.state, DONE)
        self.dispatch.assert_not_called()
        self.assertEqual(len(load_notices(self.state_file)), 2)


class TestRunCheckFailures(RunCheckTestCase):
    def test_fetch_failure_sends_error_message(self):
        self.fetch.side_effect = FetchError("API request failed: HTTP 503")

        result = run_check(self.config, now=NOW)

        self.assertEqual(result.state, FAILED)
        self.assertEqual(result.exit_code, 1)
        self.assertIsInstance(result.error, FetchError)
        self.assertEqual(self.dispatch.call_count, 1)
        error_message = self._sent_messages()[0]
        self.assertEqual(len(error_message.sections), 1)
        self.assertIn("HTTP 503", error_message.sections[0].description)
        self.assertFalse(self.state_file.exists())

    def test_corrupt_snapshot_fails_run(self):
        self.state_file.write_text("{broken", encoding="utf-8")
        self.fetch.return_value = [_notice(1, "A")]

        result = run_check(self.config, now=NOW)

        self.assertEqual(result.state, FAILED)
        self.assertEqual(self.state_file.read_text(encoding="utf-8"), "{broken")
        self.assertIn("Error", self._sent_messages()[0].sections[0].title)

    def test_delivery_failure_does_not_persist(self):
        save_notices([_notice(1, "A")], self.state_file)
        self.fetch.return_value = [_notice(1, "A"), _notice(2, "B")]
        self.dispatch.side_effect = [DeliveryError("Discord webhook failed: HTTP 500", status=500), None]

        result = run_check(self.config, now=NOW)

        self.assertEqual(result.state, FAILED)
        self.assertIsInstance(result.error, DeliveryError)
        self.assertEqual(self.dispatch.call_count, 2)
        self.assertEqual(len(load_notices(self.state_file)), 1)

    def test_error_notification_failure_still_fails_cleanly(self):
        self.fetch.side_effect = FetchError("down")
        self.dispatch.side_effect = DeliveryError("Discord webhook failed: HTTP 500", status=500)

        result = run_check(self.config, now=NOW)

        self.assertEqual(result.state, FAILED)
        self.assertIsInstance(result.error, FetchError)

    def test_unexpected_error_notification_failure_is_contained(self):
        self.fetch.side_effect = FetchError("down")
        self.dispatch.side_effect = RuntimeError("boom")

        result = run_check(self.config, now=NOW)

        self.assertEqual(result.state, FAILED)
        self.assertEqual(result.exit_code, 1)
        self.assertIsInstance(result.error, FetchError)
        self.assertEqual(self.dispatch.call_count, 1)

    def test_unexpected_exception_is_reported(self):
        self.fetch.side_effect = KeyError("notice")

        result = run_check(self.config, now=NOW)

        self.assertEqual(result.state, FAILED)
        self.assertEqual(self.dispatch.call_count, 1)


class TestWebhook500EndToEnd(unittest.TestCase):
    """A 500 from the webhook triggers exactly one fallback per dispatch."""

    @mock.patch("discord_notifier.request.urlopen")
    @mock.patch("notice_checker.fetch_notices")
    def test_original_500_surfaces(self, fetch, urlopen):
        with tempfile.TemporaryDirectory() as tmpdir:
            state_file = Path(tmpdir) / "notice-data.json"
            save_notices([_notice(1, "A")], state_file)
            fetch.return_value = [_notice(1, "A"), _notice(2, "B")]
            urlopen.side_effect = _webhook_500
            config = CheckerConfig(api_key="key", webhook_url=WEBHOOK_URL, state_file=state_file)

            result = run_check(config, now=NOW)

            self.assertEqual(result.state, FAILED)
            self.assertIsInstance(result.error, DeliveryError)
            self.assertEqual(result.error.status, 500)
            # change message + its fallback, then error message + its fallback
            self.assertEqual(urlopen.call_count, 4)
            fallback = json.loads(urlopen.call_args_list[1].args[0].data.decode("utf-8"))
            self.assertIn("HTTP 500", fallback["content"])
            self.assertEqual(len(load_notices(state_file)), 1)


class TestConfig(unittest.TestCase):
    def _args(self, *argv):
        with mock.patch.dict("os.environ", {}, clear=True):
            return parse_args(list(argv))

    def test_valid_config(self):
        config = load_config(self._args("--api-key", "k", "--webhook-url", WEBHOOK_URL, "--state-file", "s.json"))
        self.assertEqual(config.api_key, "k")
        self.assertEqual(config.state_file, Path("s.json"))
        self.assertFalse(config.announce_initial)

    def test_env_defaults(self):
        env = {"NEXON_API_KEY": "env-key", "DISCORD_WEBHOOK_URL": WEBHOOK_URL}
        with mock.patch.dict("os.environ", env, clear=True):
            config = load_config(parse_args([]))
        self.assertEqual(config.api_key, "env-key")
        self.assertEqual(config.webhook_url, WEBHOOK_URL)

    def test_missing_api_key(self):
        with self.assertRaises(ConfigError):
            load_config(self._args("--webhook-url", WEBHOOK_URL))

    def test_missing_webhook(self):
        with self.assertRaises(ConfigError):
            load_config(self._args("--api-key", "k"))

    def test_webhook_optional_for_dry_run(self):
        config = load_config(self._args("--api-key", "k", "--dry-run"))
        self.assertTrue(config.dry_run)

    def test_non_discord_webhook_rejected(self):
        with self.assertRaises(ConfigError):
            load_config(self._args("--api-key", "k", "--webhook-url", "http://example.com/hook"))

    def test_non_positive_timeout_rejected(self):
        with self.assertRaises(ConfigError):
            load_config(self._args("--api-key", "k", "--webhook-url", WEBHOOK_URL, "--timeout", "0"))


class TestLogging(unittest.TestCase):
    def test_timestamps_rendered_in_utc(self):
        record = logging.LogRecord("notice_checker", logging.INFO, __file__, 1, "hello", None, None)
        record.created = 0.0
        self.assertEqual(log_formatter().formatTime(record, "%Y-%m-%dT%H:%M:%SZ"), "1970-01-01T00:00:00Z")

    @mock.patch("notice_checker.logging.basicConfig")
    def test_configure_logging_installs_utc_handler(self, basic_config):
        configure_logging(verbose=True)

        kwargs = basic_config.call_args.kwargs
        self.assertEqual(kwargs["level"], logging.DEBUG)
        (handler,) = kwargs["handlers"]
        self.assertIs(handler.formatter.converter, time.gmtime)


class TestMain(unittest.TestCase):
    @mock.patch("notice_checker.run_check")
    def test_config_error_exits_nonzero_without_running(self, run):
        with mock.patch.dict("os.environ", {}, clear=True):
            self.assertEqual(main([]), 1)
        run.assert_not_called()

    @mock.patch("notice_checker.dispatch_message")
    @mock.patch("notice_checker.fetch_notices")
    def test_exit_codes(self, fetch, dispatch):
        with tempfile.TemporaryDirectory() as tmpdir:
            argv = ["--api-key", "k", "--webhook-url", WEBHOOK_URL, "--state-file", str(Path(tmpdir) / "s.json")]
            fetch.return_value = [_notice(1, "A")]
            self.assertEqual(main(argv), 0)
            fetch.side_effect = FetchError("down")
            self.assertEqual(main(argv), 1)


if __name__ == "__main__":
    unittest.main()
