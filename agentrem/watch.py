"""
Watch loop — poll for due reminders, notify, run on-fire hooks.

Each tick opens its own store connection, runs maintenance when it is due,
evaluates the pipeline and dispatches notifications outside the per-reminder
cooldown. A failing tick is logged and the next tick runs as usual.
"""

from __future__ import annotations

import json
import logging
import os
import signal
import tempfile
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .core.config import Config
from .core.dates import now_iso
from .core.db import open_db
from .core.models import Reminder
from .dispatch.hooks import HookRunner
from .dispatch.notifier import Notifier
from .engine.pipeline import WATCH_KINDS, evaluate, parse_kinds
from .reminders import collect_garbage

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 30.0       # seconds between ticks
DEFAULT_COOLDOWN = 300.0      # seconds before the same reminder notifies again
DEFAULT_GC_INTERVAL = 86400.0
DUE_POLL_INTERVAL = 5.0


# ── State ─────────────────────────────────────────────────────────────────────


@dataclass
class WatchState:
    """Notification times and last maintenance run, as epoch seconds."""

    last_notified: Dict[str, float] = field(default_factory=dict)
    last_gc: float = 0.0

    def should_notify(self, reminder_id: str, now: float, cooldown: float) -> bool:
        last = self.last_notified.get(reminder_id)
        return last is None or now - last >= cooldown

    def mark_notified(self, reminder_id: str, now: float) -> None:
        self.last_notified[reminder_id] = now

    def reset(self) -> None:
        self.last_notified.clear()
        self.last_gc = 0.0

    def save(self, path: Path) -> None:
        path = Path(path).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        data = json.dumps({"last_notified": self.last_notified, "last_gc": self.last_gc})
        fd, tmp = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(data)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    @classmethod
    def load(cls, path: Path) -> WatchState:
        path = Path(path).expanduser()
        if not path.exists():
            return cls()
        try:
            data = json.loads(path.read_text())
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable watch state {path}: {e}")
            return cls()
        return cls(
            last_notified={k: float(v) for k, v in data.get("last_notified", {}).items()},
            last_gc=float(data.get("last_gc", 0.0)),
        )


# ── Options ───────────────────────────────────────────────────────────────────


@dataclass
class WatchOptions:
    interval: float = DEFAULT_INTERVAL
    agent: str = "main"
    once: bool = False
    cooldown: float = DEFAULT_COOLDOWN
    gc_interval: float = DEFAULT_GC_INTERVAL
    gc_older_than_days: int = 30
    on_fire: Optional[str] = None
    on_fire_timeout: float = 5.0
    budget: int = 800
    condition_timeout: float = 10.0
    db_path: Optional[str] = None
    state_path: Optional[str] = None
    log_dir: Optional[str] = None

    @classmethod
    def from_config(cls, cfg: Optional[Config] = None, **overrides) -> WatchOptions:
        cfg = cfg or Config.load()
        options = cls(
            interval=cfg.watch_interval,
            agent=cfg.agent,
            cooldown=cfg.cooldown,
            gc_interval=cfg.gc_interval,
            gc_older_than_days=cfg.gc_older_than_days,
            on_fire=cfg.on_fire,
            on_fire_timeout=cfg.on_fire_timeout,
            budget=cfg.budget,
            condition_timeout=cfg.condition_timeout,
            db_path=str(cfg.resolved_db_path),
            log_dir=str(cfg.resolved_log_dir),
        )
        for key, value in overrides.items():
            if value is not None:
                setattr(options, key, value)
        return options

    @property
    def resolved_db_path(self) -> Path:
        if self.db_path:
            return Path(self.db_path).expanduser()
        return Config.load().resolved_db_path


# ── Loop ──────────────────────────────────────────────────────────────────────


class WatchLoop:
    def __init__(
        self,
        options: Optional[WatchOptions] = None,
        *,
        state: Optional[WatchState] = None,
        notifier: Optional[Notifier] = None,
        hook_runner: Optional[HookRunner] = None,
    ):
        self.options = options or WatchOptions()
        if state is None:
            state = WatchState.load(self.options.state_path) if self.options.state_path else WatchState()
        self.state = state
        self.notifier = notifier or Notifier()
        if hook_runner is None:
            log_path = Path(self.options.log_dir) / "on-fire.log" if self.options.log_dir else None
            hook_runner = HookRunner(log_path)
        self.hook_runner = hook_runner
        self._stop = threading.Event()

    def tick(self, now: Optional[datetime] = None) -> List[Reminder]:
        """
        Run one poll cycle. Never raises.

        Returns the reminders that were notified this tick.
        """
        now = (now or datetime.now()).replace(microsecond=0)
        epoch = now.timestamp()
        opts = self.options
        notified: List[Reminder] = []

        db = None
        try:
            db = open_db(opts.resolved_db_path)
            self._maintain(db, now, epoch)

            result = evaluate(
                db,
                now=now,
                kinds=WATCH_KINDS,
                agent=opts.agent,
                budget=opts.budget,
                escalate_overdue=True,
                condition_timeout=opts.condition_timeout,
            )
            for rem in result.included:
                if not self.state.should_notify(rem.id, epoch, opts.cooldown):
                    logger.debug(f"Cooldown: skipping {rem.id[:8]}")
                    continue
                try:
                    delivered = self._dispatch(rem, now)
                except Exception as e:
                    logger.error(f"Dispatch failed for {rem.id[:8]}: {e}")
                    continue
                if delivered:
                    self.state.mark_notified(rem.id, epoch)
                    notified.append(rem)
        except Exception as e:
            logger.error(f"Watch tick failed: {e}")
        finally:
            if db is not None:
                db.close()

        if opts.state_path:
            try:
                self.state.save(Path(opts.state_path))
            except OSError as e:
                logger.warning(f"Cannot save watch state: {e}")
        return notified

    def _maintain(self, db, now: datetime, epoch: float) -> None:
        if epoch - self.state.last_gc < self.options.gc_interval:
            return
        try:
            result = collect_garbage(db, older_than_days=self.options.gc_older_than_days, now=now)
        except Exception as e:
            logger.warning(f"gc error: {e}")
            return
        self.state.last_gc = epoch
        if result["count"]:
            logger.info(f"Maintenance: removed {result['count']} old reminders")

    def _dispatch(self, rem: Reminder, now: datetime) -> bool:
        """Notify, then run the hook. False when the notification itself failed."""
        try:
            self.notifier.notify(rem, now)
        except Exception as e:
            logger.warning(f"Notification failed for {rem.id[:8]}: {e}")
            return False

        command = self.options.on_fire
        if command:
            try:
                ok = self.hook_runner.run_for(command, rem, self.options.on_fire_timeout)
            except Exception as e:
                logger.warning(f"on-fire hook for {rem.id[:8]} raised: {e}")
                return True
            logger.info(f"on-fire hook for {rem.id[:8]}: {'ok' if ok else 'failed'}")
        return True

    def run(self, stop_event: Optional[threading.Event] = None) -> None:
        """Tick immediately, then every `interval` seconds until stopped."""
        if stop_event is not None:
            self._stop = stop_event

        previous = {}
        if threading.current_thread() is threading.main_thread():
            for sig in (signal.SIGINT, signal.SIGTERM):
                previous[sig] = signal.signal(sig, lambda *_: self.stop())

        logger.info(
            f"Watching agent={self.options.agent} every {self.options.interval:g}s "
            f"(cooldown {self.options.cooldown:g}s)"
        )
        try:
            while not self._stop.is_set():
                self.tick()
                if self.options.once:
                    break
                self._stop.wait(self.options.interval)
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)
        logger.info("Watch stopped")

    def stop(self) -> None:
        self._stop.set()


class WatchHandle:
    def __init__(self, loop: WatchLoop, thread: threading.Thread):
        self.loop = loop
        self.thread = thread

    def stop(self, timeout: Optional[float] = None) -> None:
        self.loop.stop()
        self.thread.join(timeout)


def start_loop(options: Optional[WatchOptions] = None, **kwargs) -> WatchHandle:
    """Run the watch loop on a background thread."""
    loop = WatchLoop(options, **kwargs)
    thread = threading.Thread(target=loop.run, name="agentrem-watch", daemon=True)
    thread.start()
    return WatchHandle(loop, thread)


def start_watch(options: Optional[WatchOptions] = None, **kwargs) -> None:
    """Run the watch loop in the calling thread until stopped."""
    WatchLoop(options, **kwargs).run()


# ── Wait for next due ─────────────────────────────────────────────────────────


@dataclass
class DueWaitResult:
    reminder: Optional[Reminder] = None
    timed_out: bool = False


def wait_for_due(
    db_path: Optional[Path] = None,
    agent: str = "main",
    kinds: Iterable[str] = ("time",),
    timeout: Optional[float] = None,
    stop_event: Optional[threading.Event] = None,
    poll_interval: float = DUE_POLL_INTERVAL,
) -> DueWaitResult:
    """
    Block until a reminder of `kinds` is due, the timeout passes, or
    `stop_event` is set. Nothing is marked fired.
    """
    path = Path(db_path).expanduser() if db_path else Config.load().resolved_db_path
    requested = parse_kinds(kinds)
    stop_event = stop_event or threading.Event()
    deadline = None if timeout is None else time.monotonic() + timeout

    while True:
        db = open_db(path)
        try:
            rem = db.first_due(agent, requested, now_iso())
        finally:
            db.close()
        if rem:
            return DueWaitResult(reminder=rem)

        if deadline is None:
            wait = poll_interval
        else:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return DueWaitResult(timed_out=True)
            wait = min(poll_interval, remaining)

        if stop_event.wait(wait):
            return DueWaitResult()
