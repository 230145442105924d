"""
On-fire hooks — run a user command when a reminder fires.

Reminder data is passed through AGENTREM_* environment variables. The
command runs with a timeout and captured output; failures are appended to
an on-fire log file and reported as False, never raised.
"""

from __future__ import annotations

import logging
import os
import subprocess
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from ..core.models import Reminder

logger = logging.getLogger(__name__)

DEFAULT_HOOK_TIMEOUT = 5.0  # seconds
DEFAULT_LOG_PATH = Path("~/.agentrem/logs/on-fire.log")


def hook_env(rem: Reminder) -> Dict[str, str]:
    return {
        "AGENTREM_ID": rem.id,
        "AGENTREM_CONTENT": rem.content,
        "AGENTREM_PRIORITY": str(rem.priority or 3),
        "AGENTREM_TAGS": rem.tags or "",
        "AGENTREM_CONTEXT": rem.context or "",
        "AGENTREM_DUE": rem.trigger_at or "",
        "AGENTREM_FIRE_COUNT": str(rem.fire_count or 1),
    }


class HookRunner:
    def __init__(self, log_path: Optional[Path] = None):
        self.log_path = Path(log_path or DEFAULT_LOG_PATH).expanduser()

    def run(
        self,
        command: str,
        env: Dict[str, str],
        timeout: float = DEFAULT_HOOK_TIMEOUT,
        *,
        label: str = "-",
    ) -> bool:
        """Run `command` through the shell. True on exit status 0."""
        try:
            result = subprocess.run(
                command,
                shell=True,
                env={**os.environ, **env},
                stdin=subprocess.DEVNULL,
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            self._log_failure(label, f"timed out after {timeout}s: {command}")
            return False
        except (OSError, subprocess.SubprocessError, ValueError) as e:
            self._log_failure(label, f"failed to start: {e}")
            return False

        if result.returncode != 0:
            detail = (result.stderr or result.stdout or "").strip()[:500]
            self._log_failure(label, f"exit {result.returncode}: {detail}")
            return False
        return True

    def run_for(
        self, command: str, rem: Reminder, timeout: float = DEFAULT_HOOK_TIMEOUT
    ) -> bool:
        return self.run(command, hook_env(rem), timeout, label=rem.id[:8])

    def _log_failure(self, label: str, message: str) -> None:
        logger.warning(f"on-fire hook [{label}] {message}")
        line = f"{datetime.now().isoformat(timespec='seconds')} | {label} | {message}\n"
        try:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(line)
        except OSError as e:
            logger.error(f"Cannot write on-fire log {self.log_path}: {e}")
