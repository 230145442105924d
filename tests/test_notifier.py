"""Tests for agentrem.dispatch.notifier — message building and backend selection."""

import subprocess
import sys
from datetime import datetime, timedelta

import pytest

from agentrem.core.dates import dt_to_iso
from agentrem.core.models import Reminder
from agentrem.dispatch.notifier import (
    Notification,
    Notifier,
    build_notification,
    format_overdue,
)

NOW = datetime(2026, 3, 10, 12, 0, 0)


def _rem(priority=3, content="Rotate the staging credentials", overdue=None):
    trigger_at = dt_to_iso(NOW - overdue) if overdue is not None else None
    return Reminder(id="abcdef0123456789", content=content, priority=priority, trigger_at=trigger_at)


class TestFormatOverdue:
    @pytest.mark.parametrize("seconds,expected", [
        (30, "just now"),
        (10 * 60, "10 min ago"),
        (45 * 60, "about an hour, no biggie"),
        (2 * 3600, "been a couple hours..."),
        (30 * 3600, "it's been a whole day, dude"),
        (3 * 86400, "I've been here for 3 days. just saying."),
    ])
    def test_buckets(self, seconds, expected):
        assert format_overdue(seconds) == expected


class TestBuildNotification:
    def test_priority_title_and_sound(self):
        n = build_notification(_rem(priority=1, overdue=timedelta(minutes=10)), NOW)
        assert "urgent" in n.title
        assert n.sound == "Hero"
        assert n.subtitle == "10 min ago"
        assert n.group == "com.agentrem.watch"

    def test_low_priority_has_no_sound(self):
        assert build_notification(_rem(priority=4), NOW).sound is None

    def test_not_yet_overdue(self):
        n = build_notification(_rem(overdue=timedelta(hours=-1)), NOW)
        assert "due now" in n.subtitle

    def test_message_truncated(self):
        n = build_notification(_rem(content="w" * 200), NOW)
        assert len(n.message) == 80


class TestBackends:
    def test_detect_prefers_terminal_notifier(self, monkeypatch):
        monkeypatch.setattr("shutil.which", lambda name: f"/usr/bin/{name}")
        assert Notifier.detect() == "terminal-notifier"

    def test_detect_osascript_only_on_darwin(self, monkeypatch):
        available = {"osascript", "notify-send"}
        monkeypatch.setattr("shutil.which", lambda name: name if name in available else None)
        monkeypatch.setattr(sys, "platform", "darwin")
        assert Notifier.detect() == "osascript"
        monkeypatch.setattr(sys, "platform", "linux")
        assert Notifier.detect() == "notify-send"

    def test_detect_falls_back_to_log(self, monkeypatch):
        monkeypatch.setattr("shutil.which", lambda name: None)
        assert Notifier.detect() == "log"

    def test_detection_memoised_per_instance(self, monkeypatch):
        calls = []
        monkeypatch.setattr("shutil.which", lambda name: calls.append(name))
        notifier = Notifier()
        assert notifier.backend == "log"
        n = len(calls)
        assert notifier.backend == "log"
        assert len(calls) == n

    def test_terminal_notifier_command(self):
        args = Notifier("terminal-notifier").command(
            Notification(title="T", subtitle="S", message="M", sound="Pop")
        )
        assert args[0] == "terminal-notifier"
        assert args[args.index("-sound") + 1] == "Pop"
        assert args[args.index("-group") + 1] == "com.agentrem.watch"

    def test_osascript_escapes_quotes(self):
        args = Notifier("osascript").command(
            Notification(title="T", subtitle="S", message='say "hi"')
        )
        assert args[:2] == ["osascript", "-e"]
        assert 'say \\"hi\\"' in args[2]

    def test_log_backend_spawns_nothing(self, monkeypatch):
        def fail(*args, **kwargs):
            raise AssertionError("should not spawn")

        monkeypatch.setattr(subprocess, "Popen", fail)
        Notifier("log").notify(_rem(), NOW)

    def test_send_failure_falls_back_to_log(self, monkeypatch):
        def missing(*args, **kwargs):
            raise FileNotFoundError("notify-send")

        monkeypatch.setattr(subprocess, "Popen", missing)
        notifier = Notifier("notify-send")
        notifier.notify(_rem(), NOW)
        assert notifier.backend == "log"

    def test_send_does_not_wait(self, monkeypatch):
        spawned = []

        class FakePopen:
            def __init__(self, args, **kwargs):
                spawned.append((args, kwargs))

            def wait(self, *a, **kw):
                raise AssertionError("dispatch must not wait")

        monkeypatch.setattr(subprocess, "Popen", FakePopen)
        Notifier("notify-send").notify(_rem(), NOW)
        args, kwargs = spawned[0]
        assert args[0] == "notify-send"
        assert kwargs["start_new_session"] is True
