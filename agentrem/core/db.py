"""
SQLite database for agentrem.

Single-file implementation: schema, reminder CRUD, history, search, gc.
"""

from __future__ import annotations

import json
import logging
import re
import sqlite3
import threading
import uuid
from dataclasses import asdict, fields
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .dates import now_iso
from .errors import DataAccessError, ValidationError
from .models import SCHEMA_VERSION, HistoryEntry, Reminder

logger = logging.getLogger(__name__)

# ── Schema ────────────────────────────────────────────────────────────────────

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT DEFAULT (datetime('now')),
    description TEXT
);

CREATE TABLE IF NOT EXISTS reminders (
    id TEXT PRIMARY KEY,
    content TEXT NOT NULL,
    context TEXT,
    trigger_type TEXT NOT NULL DEFAULT 'time',
    trigger_at TEXT,
    trigger_config TEXT,
    priority INTEGER NOT NULL DEFAULT 3,
    tags TEXT,
    category TEXT,
    status TEXT NOT NULL DEFAULT 'active',
    snoozed_until TEXT,
    decay_at TEXT,
    fire_count INTEGER DEFAULT 0,
    last_fired TEXT,
    max_fires INTEGER,
    recur_rule TEXT,
    recur_parent_id TEXT,
    depends_on TEXT,
    source TEXT DEFAULT 'agent',
    agent TEXT DEFAULT 'main',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    completed_at TEXT,
    notes TEXT
);

CREATE TABLE IF NOT EXISTS history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    reminder_id TEXT NOT NULL,
    action TEXT NOT NULL,
    old_data TEXT,
    new_data TEXT,
    timestamp TEXT NOT NULL,
    source TEXT
);

-- Indexes
CREATE INDEX IF NOT EXISTS idx_rem_status ON reminders(status);
CREATE INDEX IF NOT EXISTS idx_rem_trigger ON reminders(trigger_type, status);
CREATE INDEX IF NOT EXISTS idx_rem_due ON reminders(trigger_at)
    WHERE trigger_type = 'time' AND status = 'active';
CREATE INDEX IF NOT EXISTS idx_rem_agent ON reminders(agent);
CREATE INDEX IF NOT EXISTS idx_history_reminder ON history(reminder_id);
"""

_REMINDER_COLUMNS = tuple(f.name for f in fields(Reminder))
_UPDATABLE_COLUMNS = frozenset(_REMINDER_COLUMNS) - {"id", "created_at"}
_GC_STATUSES = ("completed", "expired", "deleted")


def _new_id() -> str:
    return uuid.uuid4().hex[:16]


def _regexp(pattern: str, value: str) -> bool:
    if value is None:
        return False
    try:
        return re.search(pattern, value) is not None
    except re.error:
        return False


def snapshot(rem: Optional[Reminder]) -> Optional[str]:
    """JSON snapshot of a reminder for history old_data/new_data."""
    if rem is None:
        return None
    return json.dumps(asdict(rem), ensure_ascii=False)


# ── Database ──────────────────────────────────────────────────────────────────


class Database:
    """SQLite reminder store. One connection per thread."""

    def __init__(self, db_path: Path, *, read_only: bool = False):
        self.db_path = Path(db_path).expanduser()
        self.read_only = read_only
        self._local = threading.local()

        if not read_only:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _conn(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            return conn

        try:
            if self.read_only:
                uri = f"file:{self.db_path}?mode=ro"
                conn = sqlite3.connect(
                    uri, uri=True, timeout=5.0, check_same_thread=False
                )
            else:
                conn = sqlite3.connect(self.db_path, timeout=5.0, check_same_thread=False)
                conn.execute("PRAGMA journal_mode=WAL;")
                conn.execute("PRAGMA synchronous=NORMAL;")
                conn.execute("PRAGMA busy_timeout=5000;")
        except sqlite3.Error as e:
            raise DataAccessError(f"Cannot open database {self.db_path}: {e}") from e

        conn.row_factory = sqlite3.Row
        conn.create_function("REGEXP", 2, _regexp)
        self._local.conn = conn
        return conn

    def _execute(self, sql: str, params: Iterable[Any] = ()) -> sqlite3.Cursor:
        try:
            return self._conn().execute(sql, tuple(params))
        except sqlite3.OperationalError as e:
            raise DataAccessError(f"Database error: {e}") from e

    def initialize(self) -> None:
        """Create tables if this is a fresh database."""
        if self.read_only:
            return
        conn = self._conn()
        conn.executescript(SCHEMA_SQL)
        conn.execute(
            "INSERT OR IGNORE INTO schema_version (version, description) VALUES (?, ?)",
            (SCHEMA_VERSION, "agentrem initial schema"),
        )
        conn.commit()

    def close(self) -> None:
        conn = getattr(self._local, "conn", None)
        if conn:
            conn.close()
            self._local.conn = None

    def commit(self) -> None:
        self._conn().commit()

    # ── Reminders ─────────────────────────────────────────────────────────

    def insert_reminder(self, rem: Reminder) -> Reminder:
        """Insert a reminder, assigning id and timestamps when missing."""
        now = now_iso()
        rem.id = rem.id or _new_id()
        rem.created_at = rem.created_at or now
        rem.updated_at = rem.updated_at or now

        data = asdict(rem)
        cols = ", ".join(_REMINDER_COLUMNS)
        placeholders = ", ".join("?" for _ in _REMINDER_COLUMNS)
        self._execute(
            f"INSERT INTO reminders ({cols}) VALUES ({placeholders})",
            [data[c] for c in _REMINDER_COLUMNS],
        )
        self.commit()
        return rem

    def get_reminder(self, reminder_id: str) -> Optional[Reminder]:
        row = self._execute(
            "SELECT * FROM reminders WHERE id=?", (reminder_id,)
        ).fetchone()
        return self._row_to_reminder(row) if row else None

    def find_reminder(self, id_or_prefix: str) -> Optional[Reminder]:
        """Exact id match, else a unique id prefix."""
        rem = self.get_reminder(id_or_prefix)
        if rem:
            return rem

        rows = self._execute(
            "SELECT * FROM reminders WHERE id LIKE ? LIMIT 2", (id_or_prefix + "%",)
        ).fetchall()
        if len(rows) > 1:
            raise ValidationError(
                f"Ambiguous ID prefix '{id_or_prefix}'. Use more characters."
            )
        return self._row_to_reminder(rows[0]) if rows else None

    def query_reminders(
        self,
        *,
        statuses: Optional[Iterable[str]] = None,
        kinds: Optional[Iterable[str]] = None,
        agent: Optional[str] = None,
        due_before: Optional[str] = None,
        priorities: Optional[Iterable[int]] = None,
        tag: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Reminder]:
        """Filtered reminder query, ordered by priority then due time."""
        conditions: List[str] = []
        params: List[Any] = []

        for column, values in (
            ("status", statuses),
            ("trigger_type", kinds),
            ("priority", priorities),
        ):
            if values is None:
                continue
            values = list(values)
            if not values:
                return []
            placeholders = ",".join("?" for _ in values)
            conditions.append(f"{column} IN ({placeholders})")
            params.extend(values)

        if agent:
            conditions.append("agent = ?")
            params.append(agent)
        if due_before:
            conditions.append("trigger_at IS NOT NULL AND trigger_at <= ?")
            params.append(due_before)
        if tag:
            conditions.append("tags LIKE ?")
            params.append(f"%{tag}%")

        where = " AND ".join(conditions) if conditions else "1=1"
        sql = f"SELECT * FROM reminders WHERE {where} ORDER BY priority, trigger_at, created_at"
        if limit:
            sql += " LIMIT ?"
            params.append(limit)

        return [self._row_to_reminder(r) for r in self._execute(sql, params).fetchall()]

    def update_reminder(
        self, reminder_id: str, changes: Dict[str, Any], *, commit: bool = True
    ) -> None:
        unknown = set(changes) - _UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Unknown reminder columns: {sorted(unknown)}")
        changes = dict(changes)
        changes.setdefault("updated_at", now_iso())

        set_clause = ", ".join(f"{k}=?" for k in changes)
        self._execute(
            f"UPDATE reminders SET {set_clause} WHERE id=?",
            list(changes.values()) + [reminder_id],
        )
        if commit:
            self.commit()

    def delete_reminders(self, reminder_ids: List[str]) -> None:
        """Permanently remove reminders and their history."""
        if not reminder_ids:
            return
        placeholders = ",".join("?" for _ in reminder_ids)
        self._execute(f"DELETE FROM reminders WHERE id IN ({placeholders})", reminder_ids)
        self._execute(f"DELETE FROM history WHERE reminder_id IN ({placeholders})", reminder_ids)
        self.commit()

    def first_due(self, agent: str, kinds: List[str], as_of: str) -> Optional[Reminder]:
        """Most urgent active reminder of the given kinds due at or before as_of."""
        found = self.query_reminders(
            statuses=["active"], kinds=kinds, agent=agent, due_before=as_of, limit=1
        )
        return found[0] if found else None

    def _row_to_reminder(self, row: sqlite3.Row) -> Reminder:
        keys = row.keys()

        def _get(key, default=None):
            return row[key] if key in keys else default

        return Reminder(
            id=row["id"],
            content=row["content"],
            trigger_type=row["trigger_type"],
            trigger_at=_get("trigger_at"),
            trigger_config=_get("trigger_config"),
            priority=_get("priority", 3),
            context=_get("context"),
            tags=_get("tags"),
            category=_get("category"),
            status=row["status"],
            snoozed_until=_get("snoozed_until"),
            decay_at=_get("decay_at"),
            fire_count=_get("fire_count") or 0,
            last_fired=_get("last_fired"),
            max_fires=_get("max_fires"),
            recur_rule=_get("recur_rule"),
            recur_parent_id=_get("recur_parent_id"),
            depends_on=_get("depends_on"),
            source=_get("source", "agent"),
            agent=_get("agent", "main"),
            created_at=_get("created_at"),
            updated_at=_get("updated_at"),
            completed_at=_get("completed_at"),
            notes=_get("notes"),
        )

    # ── History ───────────────────────────────────────────────────────────

    def append_history(self, entry: HistoryEntry, *, commit: bool = True) -> int:
        cur = self._execute(
            """INSERT INTO history (reminder_id, action, old_data, new_data, timestamp, source)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                entry.reminder_id,
                entry.action,
                entry.old_data,
                entry.new_data,
                entry.timestamp or now_iso(),
                entry.source,
            ),
        )
        if commit:
            self.commit()
        entry.id = cur.lastrowid
        return cur.lastrowid

    def record_history(
        self,
        reminder_id: str,
        action: str,
        old: Optional[Reminder] = None,
        new: Optional[Reminder] = None,
        source: Optional[str] = None,
        *,
        commit: bool = True,
    ) -> int:
        return self.append_history(
            HistoryEntry(
                reminder_id=reminder_id,
                action=action,
                old_data=snapshot(old),
                new_data=snapshot(new),
                source=source,
            ),
            commit=commit,
        )

    def list_history(
        self, reminder_id: Optional[str] = None, *, limit: int = 20
    ) -> List[HistoryEntry]:
        if reminder_id:
            rows = self._execute(
                """SELECT * FROM history WHERE reminder_id = ? OR reminder_id LIKE ?
                   ORDER BY id DESC LIMIT ?""",
                (reminder_id, reminder_id + "%", limit),
            ).fetchall()
        else:
            rows = self._execute(
                "SELECT * FROM history ORDER BY id DESC LIMIT ?", (limit,)
            ).fetchall()
        return [
            HistoryEntry(
                id=r["id"],
                reminder_id=r["reminder_id"],
                action=r["action"],
                old_data=r["old_data"],
                new_data=r["new_data"],
                timestamp=r["timestamp"],
                source=r["source"],
            )
            for r in rows
        ]

    # ── Search ────────────────────────────────────────────────────────────

    def search_reminders(
        self,
        query: str,
        *,
        statuses: Iterable[str] = ("active",),
        limit: int = 10,
        regex: bool = True,
        ignore_case: bool = True,
    ) -> List[Reminder]:
        statuses = list(statuses)
        placeholders = ",".join("?" for _ in statuses)
        if regex:
            pattern = f"(?i){query}" if ignore_case else query
            rows = self._execute(
                f"""SELECT * FROM reminders
                    WHERE (content REGEXP ? OR context REGEXP ? OR tags REGEXP ?
                           OR notes REGEXP ?)
                      AND status IN ({placeholders})
                    ORDER BY priority, updated_at DESC LIMIT ?""",
                [pattern] * 4 + statuses + [limit],
            ).fetchall()
        else:
            like = f"%{query}%"
            rows = self._execute(
                f"""SELECT * FROM reminders
                    WHERE (content LIKE ? OR context LIKE ? OR tags LIKE ? OR notes LIKE ?)
                      AND status IN ({placeholders})
                    ORDER BY priority, updated_at DESC LIMIT ?""",
                [like] * 4 + statuses + [limit],
            ).fetchall()
        return [self._row_to_reminder(r) for r in rows]

    # ── Maintenance ───────────────────────────────────────────────────────

    def collect_garbage(self, cutoff: str, *, dry_run: bool = False) -> List[Dict[str, str]]:
        """Purge completed/expired/deleted reminders last updated before cutoff."""
        placeholders = ",".join("?" for _ in _GC_STATUSES)
        rows = self._execute(
            f"""SELECT id, status, content FROM reminders
                WHERE status IN ({placeholders}) AND updated_at <= ?""",
            list(_GC_STATUSES) + [cutoff],
        ).fetchall()
        purged = [{"id": r["id"], "status": r["status"], "content": r["content"]} for r in rows]

        if purged and not dry_run:
            self.delete_reminders([p["id"] for p in purged])
            self._conn().execute("VACUUM")
            logger.info(f"gc purged {len(purged)} reminders older than {cutoff}")
        return purged

    # ── Stats ─────────────────────────────────────────────────────────────

    def stats(self, as_of: Optional[str] = None) -> Dict[str, Any]:
        as_of = as_of or now_iso()

        def _count(sql: str, params: Iterable[Any] = ()) -> int:
            return self._execute(sql, params).fetchone()["c"]

        by_priority = {
            r["priority"]: r["c"]
            for r in self._execute(
                """SELECT priority, COUNT(*) as c FROM reminders
                   WHERE status='active' GROUP BY priority"""
            ).fetchall()
        }
        by_trigger = {
            r["trigger_type"]: r["c"]
            for r in self._execute(
                """SELECT trigger_type, COUNT(*) as c FROM reminders
                   WHERE status='active' GROUP BY trigger_type"""
            ).fetchall()
        }
        next_due = self._execute(
            """SELECT id, content, trigger_at FROM reminders
               WHERE trigger_type='time' AND status='active' AND trigger_at > ?
               ORDER BY trigger_at LIMIT 1""",
            (as_of,),
        ).fetchone()

        db_size = self.db_path.stat().st_size if self.db_path.exists() else 0
        return {
            "db_path": str(self.db_path),
            "db_size_mb": round(db_size / (1024 * 1024), 2),
            "active": sum(by_priority.values()),
            "by_priority": by_priority,
            "by_trigger": by_trigger,
            "overdue": _count(
                """SELECT COUNT(*) as c FROM reminders
                   WHERE trigger_type='time' AND status='active' AND trigger_at <= ?""",
                (as_of,),
            ),
            "snoozed": _count("SELECT COUNT(*) as c FROM reminders WHERE status='snoozed'"),
            "completed": _count("SELECT COUNT(*) as c FROM reminders WHERE status='completed'"),
            "expired": _count("SELECT COUNT(*) as c FROM reminders WHERE status='expired'"),
            "next_due": dict(next_due) if next_due else None,
        }


# ── Accessors ─────────────────────────────────────────────────────────────────

_db_instances: Dict[str, Database] = {}
_db_lock = threading.Lock()


def open_db(db_path: Path, *, read_only: bool = False) -> Database:
    """Fresh, initialized Database handle. The caller closes it."""
    db = Database(db_path, read_only=read_only)
    if not read_only:
        db.initialize()
    return db


def get_db(*, read_only: bool = False) -> Database:
    """Get or create database instance (process-wide singleton per path)."""
    from .config import Config

    cfg = Config.load()
    db_path = str(cfg.resolved_db_path)
    key = f"{db_path}:{'ro' if read_only else 'rw'}"

    with _db_lock:
        if key not in _db_instances:
            _db_instances[key] = open_db(cfg.resolved_db_path, read_only=read_only)
        return _db_instances[key]


def reset_db_cache() -> None:
    """Close and forget cached instances (config path changes, tests)."""
    with _db_lock:
        for db in _db_instances.values():
            db.close()
        _db_instances.clear()
