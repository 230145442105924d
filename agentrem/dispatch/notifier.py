"""
Desktop notifications for fired reminders.

Backend detection runs once per Notifier instance:
terminal-notifier → osascript (macOS) → notify-send → log only.
Sending is fire-and-forget: the child process is started and never waited
on, and nothing raised here reaches the caller.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import sys
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from ..core.dates import parse_iso, truncate
from ..core.models import Reminder

logger = logging.getLogger(__name__)

NOTIFY_GROUP = "com.agentrem.watch"

PRIORITY_TITLES = {
    1: "⚡ Yo. This one's urgent.",
    2: "👋 Hey, heads up.",
    3: "📌 Quick reminder",
    4: "💭 When you get a sec...",
    5: "🌊 No rush, but...",
}

PRIORITY_SOUNDS = {1: "Hero", 2: "Ping", 3: "Pop"}


@dataclass
class Notification:
    title: str
    subtitle: str
    message: str
    sound: Optional[str] = None
    group: Optional[str] = NOTIFY_GROUP


def format_overdue(seconds: float) -> str:
    mins = seconds / 60
    hours = seconds / 3600
    if mins < 2:
        return "just now"
    if mins < 30:
        return f"{int(mins)} min ago"
    if hours < 1:
        return "about an hour, no biggie"
    if hours < 3:
        return "been a couple hours..."
    if hours < 6:
        return "this has been waiting a while"
    if hours < 24:
        return "so... you forgot about this one 😅"
    if hours < 48:
        return "it's been a whole day, dude"
    return f"I've been here for {int(seconds // 86400)} days. just saying."


def build_notification(rem: Reminder, now: Optional[datetime] = None) -> Notification:
    now = now or datetime.now()
    subtitle = "due now ⏰"
    if rem.trigger_at:
        try:
            overdue = (now - parse_iso(rem.trigger_at)).total_seconds()
        except ValueError:
            overdue = 0
        if overdue > 0:
            subtitle = format_overdue(overdue)

    return Notification(
        title=PRIORITY_TITLES.get(rem.priority, PRIORITY_TITLES[3]),
        subtitle=subtitle,
        message=truncate(rem.content, 80),
        sound=PRIORITY_SOUNDS.get(rem.priority),
    )


def _escape_applescript(s: str) -> str:
    return s.replace("\\", "\\\\").replace('"', '\\"')


class Notifier:
    """Sends notifications through the best backend found on this machine."""

    def __init__(self, backend: Optional[str] = None):
        self._backend = backend

    @property
    def backend(self) -> str:
        if self._backend is None:
            self._backend = self.detect()
        return self._backend

    @staticmethod
    def detect() -> str:
        if shutil.which("terminal-notifier"):
            return "terminal-notifier"
        if sys.platform == "darwin" and shutil.which("osascript"):
            return "osascript"
        if shutil.which("notify-send"):
            return "notify-send"
        return "log"

    def command(self, n: Notification) -> Optional[List[str]]:
        """argv for the detected backend, or None for log-only."""
        backend = self.backend
        if backend == "terminal-notifier":
            args = ["terminal-notifier", "-title", n.title, "-subtitle", n.subtitle,
                    "-message", n.message]
            if n.sound:
                args += ["-sound", n.sound]
            if n.group:
                args += ["-group", n.group]
            return args
        if backend == "osascript":
            script = (
                f'display notification "{_escape_applescript(n.message)}"'
                f' with title "{_escape_applescript(n.title)}"'
                f' subtitle "{_escape_applescript(n.subtitle)}"'
            )
            if n.sound:
                script += f' sound name "{_escape_applescript(n.sound)}"'
            return ["osascript", "-e", script]
        if backend == "notify-send":
            return ["notify-send", "--app-name=agentrem", n.title, f"{n.subtitle}: {n.message}"]
        return None

    def send(self, n: Notification) -> None:
        logger.info(f"🔔 {n.title} — {n.subtitle}: {n.message}")
        args = self.command(n)
        if args is None:
            return
        try:
            subprocess.Popen(
                args,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            logger.warning(f"{self.backend} failed, falling back to log only: {e}")
            self._backend = "log"

    def notify(self, rem: Reminder, now: Optional[datetime] = None) -> None:
        self.send(build_notification(rem, now))
