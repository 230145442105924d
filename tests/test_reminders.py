"""Tests for agentrem.reminders — add/complete/snooze/edit/delete/gc and recurrence."""

import json
from datetime import datetime, timedelta

import pytest

from agentrem.core.db import Database
from agentrem.core.errors import NotFoundError, ValidationError
from agentrem.reminders import (
    add_reminder,
    collect_garbage,
    complete_reminder,
    delete_reminder,
    edit_reminder,
    snooze_reminder,
)

NOW = datetime(2026, 3, 10, 12, 0, 0)


@pytest.fixture
def db(tmp_path):
    db = Database(tmp_path / "test.db")
    db.initialize()
    yield db
    db.close()


class TestAdd:
    def test_time_reminder(self, db):
        rem = add_reminder(db, "  Ship release notes ", due="+2h", tags="docs, release", now=NOW)
        stored = db.get_reminder(rem.id)
        assert stored.content == "Ship release notes"
        assert stored.trigger_at == "2026-03-10T14:00:00"
        assert stored.tags == "docs,release"
        assert stored.priority == 3
        assert [h.action for h in db.list_history(rem.id)] == ["created"]

    def test_keyword_config(self, db):
        rem = add_reminder(db, "Mention the freeze", trigger="keyword",
                           keywords="deploy, merge", match="all")
        assert json.loads(rem.trigger_config) == {"keywords": ["deploy", "merge"], "match": "all"}

    def test_condition_config(self, db):
        rem = add_reminder(db, "CI is green", trigger="condition", check="echo ok", expect="ok")
        assert json.loads(rem.trigger_config) == {"check": "echo ok", "expect": "ok"}

    def test_recur_and_decay(self, db):
        rem = add_reminder(db, "Standup", due="+1h", recur="1d", decay="+2d", now=NOW)
        assert json.loads(rem.recur_rule) == {"interval": 1, "unit": "d"}
        assert rem.decay_at == "2026-03-12T12:00:00"

    def test_dry_run_stores_nothing(self, db):
        rem = add_reminder(db, "Preview only", due="+1h", dry_run=True, now=NOW)
        assert rem.id == "dry-run"
        assert db.query_reminders() == []

    @pytest.mark.parametrize("kwargs", [
        dict(content="", due="+1h"),
        dict(content="x", due="+1h", priority=0),
        dict(content="x", due="+1h", priority=6),
        dict(content="x", trigger="cron", due="+1h"),
        dict(content="x", trigger="time"),
        dict(content="x", trigger="keyword"),
        dict(content="x", trigger="keyword", keywords="a", match="fuzzy"),
        dict(content="x", trigger="condition", check="true"),
        dict(content="x", due="whenever"),
        dict(content="x", due="+1h", recur="daily"),
        dict(content="x", due="+1h", max_fires=0),
        dict(content="x", due="+1h", source="robot"),
    ])
    def test_validation(self, db, kwargs):
        with pytest.raises(ValidationError):
            add_reminder(db, kwargs.pop("content"), now=NOW, **kwargs)
        assert db.query_reminders() == []

    def test_unknown_dependency(self, db):
        with pytest.raises(NotFoundError):
            add_reminder(db, "x", due="+1h", depends_on="doesnotexist", now=NOW)

    def test_dependency_prefix_resolved(self, db):
        first = add_reminder(db, "first", due="+1h", now=NOW)
        second = add_reminder(db, "second", due="+1h", depends_on=first.id[:8], now=NOW)
        assert second.depends_on == first.id


class TestComplete:
    def test_complete(self, db):
        rem = add_reminder(db, "One-off", due="+1h", now=NOW)
        done, nxt = complete_reminder(db, rem.id, notes="done early", now=NOW)
        assert nxt is None
        stored = db.get_reminder(rem.id)
        assert stored.status == "completed"
        assert stored.completed_at == "2026-03-10T12:00:00"
        assert stored.notes == "done early"
        assert db.list_history(rem.id)[0].action == "completed"

    def test_complete_twice(self, db):
        rem = add_reminder(db, "One-off", due="+1h", now=NOW)
        complete_reminder(db, rem.id, now=NOW)
        with pytest.raises(ValidationError):
            complete_reminder(db, rem.id, now=NOW)

    def test_unknown_id(self, db):
        with pytest.raises(NotFoundError):
            complete_reminder(db, "missing")

    def test_notes_appended(self, db):
        rem = add_reminder(db, "Task", due="+1h", now=NOW)
        db.update_reminder(rem.id, {"notes": "first"})
        done, _ = complete_reminder(db, rem.id, notes="second", now=NOW)
        assert done.notes == "first\nsecond"


class TestRecurrence:
    def test_successor_created(self, db):
        rem = add_reminder(db, "Standup", due="2026-03-10T09:00:00", recur="1d",
                           priority=2, tags="team", now=NOW)
        db.update_reminder(rem.id, {"fire_count": 4})
        _, nxt = complete_reminder(db, rem.id, now=NOW)

        stored = db.get_reminder(nxt.id)
        assert stored.trigger_at == "2026-03-11T09:00:00"
        assert stored.status == "active"
        assert stored.fire_count == 0
        assert stored.priority == 2
        assert stored.tags == "team"
        assert stored.recur_parent_id == rem.id
        assert db.list_history(nxt.id)[0].source == "system"

    def test_chain_points_at_root(self, db):
        root = add_reminder(db, "Weekly review", due="2026-03-10T09:00:00", recur="1w", now=NOW)
        _, second = complete_reminder(db, root.id, now=NOW)
        _, third = complete_reminder(db, second.id, now=NOW)
        assert third.recur_parent_id == root.id
        assert third.trigger_at == "2026-03-24T09:00:00"

    def test_month_is_thirty_days(self, db):
        rem = add_reminder(db, "Invoice", due="2026-01-31T10:00:00", recur="1m", now=NOW)
        _, nxt = complete_reminder(db, rem.id, now=NOW)
        assert nxt.trigger_at == "2026-03-02T10:00:00"

    def test_snooze_and_decay_not_copied(self, db):
        rem = add_reminder(db, "Daily", due="2026-03-10T09:00:00", recur="1d",
                           decay="2026-03-20", now=NOW)
        _, nxt = complete_reminder(db, rem.id, now=NOW)
        assert nxt.decay_at is None
        assert nxt.snoozed_until is None

    def test_malformed_rule(self, db):
        rem = add_reminder(db, "Broken", due="+1h", now=NOW)
        db.update_reminder(rem.id, {"recur_rule": "{nope"})
        with pytest.raises(ValidationError):
            complete_reminder(db, rem.id, now=NOW)
        assert db.get_reminder(rem.id).status == "active"


class TestSnooze:
    def test_for_duration(self, db):
        rem = add_reminder(db, "Later", due="+1h", now=NOW)
        snoozed = snooze_reminder(db, rem.id, duration="2h", now=NOW)
        assert snoozed.status == "snoozed"
        assert db.get_reminder(rem.id).snoozed_until == "2026-03-10T14:00:00"
        assert db.list_history(rem.id)[0].action == "snoozed"

    def test_until_date(self, db):
        rem = add_reminder(db, "Later", due="+1h", now=NOW)
        snooze_reminder(db, rem.id, until="tomorrow", now=NOW)
        assert db.get_reminder(rem.id).snoozed_until == "2026-03-11T09:00:00"

    def test_requires_target(self, db):
        rem = add_reminder(db, "Later", due="+1h", now=NOW)
        with pytest.raises(ValidationError):
            snooze_reminder(db, rem.id, now=NOW)

    def test_cannot_snooze_completed(self, db):
        rem = add_reminder(db, "Done", due="+1h", now=NOW)
        complete_reminder(db, rem.id, now=NOW)
        with pytest.raises(ValidationError):
            snooze_reminder(db, rem.id, duration="1h", now=NOW)


class TestEdit:
    def test_priority_and_due_in_place(self, db):
        rem = add_reminder(db, "Renew cert", due="+1h", now=NOW)
        db.update_reminder(rem.id, {"fire_count": 2})
        waiting = add_reminder(db, "Deploy", due="+2h", depends_on=rem.id, now=NOW)

        edited = edit_reminder(db, rem.id[:8], priority=1, due="+1d", now=NOW)
        stored = db.get_reminder(rem.id)
        assert edited.priority == stored.priority == 1
        assert stored.trigger_at == "2026-03-11T12:00:00"
        assert stored.fire_count == 2
        assert db.get_reminder(waiting.id).depends_on == rem.id

        history = db.list_history(rem.id)
        assert history[0].action == "updated"
        assert json.loads(history[0].old_data)["priority"] == 3

    def test_add_and_remove_tags_sorted(self, db):
        rem = add_reminder(db, "Tagged", due="+1h", tags="ops,web", now=NOW)
        edited = edit_reminder(db, rem.id, add_tags="db, alerts", remove_tags="web", now=NOW)
        assert edited.tags == "alerts,db,ops"
        assert db.get_reminder(rem.id).tags == "alerts,db,ops"

    def test_keywords_keep_match_mode(self, db):
        rem = add_reminder(db, "Mention freeze", trigger="keyword",
                           keywords="deploy", match="all", now=NOW)
        edit_reminder(db, rem.id, keywords="deploy, ship", now=NOW)
        config = json.loads(db.get_reminder(rem.id).trigger_config)
        assert config == {"keywords": ["deploy", "ship"], "match": "all"}

    @pytest.mark.parametrize("kwargs", [
        {},
        {"priority": 0},
        {"priority": 6},
        {"content": "   "},
        {"max_fires": 0},
        {"keywords": "x"},
    ])
    def test_validation(self, db, kwargs):
        rem = add_reminder(db, "Plain", due="+1h", now=NOW)
        with pytest.raises(ValidationError):
            edit_reminder(db, rem.id, now=NOW, **kwargs)
        assert [h.action for h in db.list_history(rem.id)] == ["created"]

    def test_unknown_id(self, db):
        with pytest.raises(NotFoundError):
            edit_reminder(db, "missing", priority=1)


class TestDelete:
    def test_soft_delete(self, db):
        rem = add_reminder(db, "Gone", due="+1h", now=NOW)
        delete_reminder(db, rem.id)
        assert db.get_reminder(rem.id).status == "deleted"

    def test_permanent_delete(self, db):
        rem = add_reminder(db, "Gone", due="+1h", now=NOW)
        delete_reminder(db, rem.id, permanent=True)
        assert db.get_reminder(rem.id) is None
        assert [h.action for h in db.list_history(rem.id)] == ["deleted"]


class TestCollectGarbage:
    def test_purges_old_finished(self, db):
        done = add_reminder(db, "Old", due="+1h", now=NOW)
        complete_reminder(db, done.id, now=NOW - timedelta(days=40))
        keep = add_reminder(db, "Active", due="+1h", now=NOW)

        preview = collect_garbage(db, older_than_days=30, dry_run=True, now=NOW)
        assert preview["count"] == 1
        assert preview["dry_run"] is True
        assert db.get_reminder(done.id) is not None

        result = collect_garbage(db, older_than_days=30, now=NOW)
        assert result["count"] == 1
        assert db.get_reminder(done.id) is None
        assert db.get_reminder(keep.id) is not None
