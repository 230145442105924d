"""Tests for agentrem.dispatch.hooks — on-fire command execution."""

from agentrem.core.models import Reminder
from agentrem.dispatch.hooks import HookRunner, hook_env


def _rem(**overrides):
    defaults = dict(
        id="abcdef0123456789",
        content="Renew the TLS cert",
        priority=2,
        tags="ops,security",
        context="expires Friday",
        trigger_at="2026-03-10T09:00:00",
        fire_count=3,
    )
    defaults.update(overrides)
    return Reminder(**defaults)


class TestHookEnv:
    def test_fields(self):
        env = hook_env(_rem())
        assert env == {
            "AGENTREM_ID": "abcdef0123456789",
            "AGENTREM_CONTENT": "Renew the TLS cert",
            "AGENTREM_PRIORITY": "2",
            "AGENTREM_TAGS": "ops,security",
            "AGENTREM_CONTEXT": "expires Friday",
            "AGENTREM_DUE": "2026-03-10T09:00:00",
            "AGENTREM_FIRE_COUNT": "3",
        }

    def test_missing_optionals_are_empty(self):
        env = hook_env(_rem(tags=None, context=None, trigger_at=None))
        assert env["AGENTREM_TAGS"] == ""
        assert env["AGENTREM_CONTEXT"] == ""
        assert env["AGENTREM_DUE"] == ""


class TestHookRunner:
    def test_success(self, tmp_path):
        runner = HookRunner(tmp_path / "on-fire.log")
        assert runner.run("true", {})
        assert not (tmp_path / "on-fire.log").exists()

    def test_env_passed(self, tmp_path):
        runner = HookRunner(tmp_path / "on-fire.log")
        assert runner.run_for('test "$AGENTREM_CONTENT" = "Renew the TLS cert"', _rem())

    def test_inherits_process_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HOOK_TEST_MARKER", "present")
        runner = HookRunner(tmp_path / "on-fire.log")
        assert runner.run('test "$HOOK_TEST_MARKER" = present', {})

    def test_nonzero_exit_logged(self, tmp_path):
        log = tmp_path / "logs" / "on-fire.log"
        runner = HookRunner(log)
        assert not runner.run_for("echo broken >&2; exit 2", _rem())
        line = log.read_text().strip()
        assert " | abcdef01 | " in line
        assert "exit 2" in line
        assert "broken" in line

    def test_timeout(self, tmp_path):
        log = tmp_path / "on-fire.log"
        runner = HookRunner(log)
        assert not runner.run_for("sleep 5", _rem(), timeout=0.2)
        assert "timed out" in log.read_text()

    def test_unwritable_log_does_not_raise(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        runner = HookRunner(blocker / "on-fire.log")
        assert not runner.run("exit 1", {})

    def test_undecodable_output_logged(self, tmp_path):
        log = tmp_path / "on-fire.log"
        runner = HookRunner(log)
        assert not runner.run("printf '\\377'; exit 1", {})
        assert "exit 1" in log.read_text(encoding="utf-8")

    def test_nul_in_reminder_content(self, tmp_path):
        log = tmp_path / "on-fire.log"
        runner = HookRunner(log)
        assert not runner.run_for("true", _rem(content="bad\0content"))
        assert " | abcdef01 | " in log.read_text()
