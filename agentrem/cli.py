#!/usr/bin/env python3
"""
agentrem — reminders for AI agents

Usage:
    agentrem init                              Initialize config and database
    agentrem add <content> [options]           Create a reminder
        --due DATE  --trigger KIND  --priority N  --keywords A,B  --match MODE
        --check CMD  --expect OUT  --context TEXT  --tags A,B  --category C
        --decay DATE  --max-fires N  --recur 1d|2w|1m  --depends-on ID
        --agent NAME  --source agent|user|system  --dry-run
    agentrem check [--type KINDS] [--text T]   Evaluate due reminders
        [--budget N] [--escalate] [--dry-run] [--format full|compact|inline|json]
    agentrem check --watch [--timeout SECS]    Block until the next reminder is due
    agentrem list [--status S] [--priority P] [--tag T] [--type KIND] [--overdue] [--limit N]
    agentrem show <id>                         Reminder details and history
    agentrem complete <id> [--notes TEXT]      Complete (recurring: schedule next)
    agentrem snooze <id> (--until DATE | --for 2h)
    agentrem edit <id> [options]               Change fields in place
        --content T  --context T  --priority N  --due DATE  --tags A,B
        --add-tags A,B  --remove-tags A,B  --category C  --decay DATE
        --max-fires N  --keywords A,B  --agent NAME
    agentrem delete <id> [--permanent]
    agentrem history [<id>] [--limit N]
    agentrem search <query> [--status S] [--limit N]
    agentrem gc [--older-than DAYS] [--dry-run]
    agentrem stats                             Database stats
    agentrem watch [--once] [--interval S] [--cooldown S] [--on-fire CMD]
        [--on-fire-timeout S]
    agentrem config <key> <value>              Set a config value

Global: --verbose / -v enables INFO logging.
"""

from __future__ import annotations

import json
import logging
import sys

PRIORITY_ICONS = {1: "🔴", 2: "🟡", 3: "🔵", 4: "⚪", 5: "💤"}
CONTENT_LIMITS = {1: 200, 2: 100, 3: 60}


def _json_out(data):
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def _checked(result):
    if isinstance(result, dict) and "error" in result:
        _err(result["error"])
    return result


def cmd_init(args):
    from agentrem.api import init
    result = init()
    for item in result["created"]:
        print(f"  created: {item}")
    for item in result["existing"]:
        print(f"  exists:  {item}")
    print("\nagentrem initialized.")
    print("Next: agentrem add \"Review the PR\" --due +2h")


def cmd_add(args):
    from agentrem.api import add
    if not args or args[0].startswith("-"):
        _err("Usage: agentrem add <content> [--due DATE] [--priority N] ...")

    kwargs = {
        "trigger": _get_opt(args, "--trigger") or "time",
        "due": _get_opt(args, "--due"),
        "keywords": _get_opt(args, "--keywords"),
        "match": _get_opt(args, "--match"),
        "check": _get_opt(args, "--check"),
        "expect": _get_opt(args, "--expect"),
        "context": _get_opt(args, "--context"),
        "tags": _get_opt(args, "--tags"),
        "category": _get_opt(args, "--category"),
        "decay": _get_opt(args, "--decay"),
        "recur": _get_opt(args, "--recur"),
        "depends_on": _get_opt(args, "--depends-on"),
        "source": _get_opt(args, "--source") or "agent",
        "dry_run": "--dry-run" in args,
    }
    if _get_opt(args, "--agent"):
        kwargs["agent"] = _get_opt(args, "--agent")
    kwargs["priority"] = _int_opt(args, "--priority", 3)
    kwargs["max_fires"] = _int_opt(args, "--max-fires", None)

    result = _checked(add(args[0], **kwargs))
    rem = result["reminder"]
    prefix = "[dry run] " if result["dry_run"] else ""
    due = f" — due {rem['trigger_at']}" if rem.get("trigger_at") else ""
    print(f"{prefix}✅ [{rem['id'][:8]}] {rem['content']}{due}", file=sys.stderr)
    _json_out(result)


def cmd_check(args):
    if "--watch" in args:
        return _check_watch(args)

    from agentrem.api import check
    budget = _int_opt(args, "--budget", None)
    result = _checked(check(
        kinds=_get_opt(args, "--type"),
        text=_get_opt(args, "--text"),
        agent=_get_opt(args, "--agent"),
        budget=budget,
        escalate="--escalate" in args,
        dry_run="--dry-run" in args,
    ))

    fmt = _get_opt(args, "--format") or "full"
    if fmt == "json":
        _json_out(result)
        return
    if not result["included"]:
        return
    for line in _render_check(result, fmt):
        print(line)


def _render_check(result, fmt):
    from agentrem.core.dates import truncate
    from agentrem.core.models import PRIORITY_LABELS

    included = result["included"]
    if fmt == "inline":
        for rem in included:
            ctx = f" — {rem['context']}" if rem.get("context") else ""
            yield f"💡 Reminder [{rem['id'][:8]}]: \"{rem['content']}{ctx}\""
        return

    by_priority = {}
    for rem in included:
        by_priority.setdefault(rem["priority"], []).append(rem)

    if fmt == "compact":
        parts = []
        for p in sorted(by_priority):
            items = by_priority[p]
            if len(items) == 1:
                r = items[0]
                due = f" — {r['trigger_at']}" if r.get("trigger_at") else ""
                parts.append(f"1 {PRIORITY_LABELS[p]} ({truncate(r['content'], 30)}{due})")
            else:
                parts.append(f"{len(items)} {PRIORITY_LABELS[p]}")
        hidden = [
            f"+{result['overflow_counts'][p]} {PRIORITY_LABELS[p]}"
            for p in (2, 3, 4)
            if result["overflow_counts"].get(p)
        ]
        extra = f", {', '.join(hidden)} hidden" if hidden else ""
        yield f"🔔 {', '.join(parts)}{extra}"
        return

    yield "🔔 Active Reminders\n"
    for p in sorted(by_priority):
        items = by_priority[p]
        count = f" ({len(items)})" if len(items) > 1 else ""
        yield f"{PRIORITY_ICONS.get(p, '')} {PRIORITY_LABELS[p].capitalize()}{count}"
        limit = CONTENT_LIMITS.get(p, 60)
        for rem in items:
            due = f" — due {rem['trigger_at']}" if rem.get("trigger_at") else ""
            fired = f", fired {rem['fire_count']}x" if rem.get("fire_count") else ""
            yield f"- [{rem['id'][:8]}] {truncate(rem['content'], limit)}{due}{fired}"
            if rem.get("context"):
                yield f"  Context: {truncate(rem['context'], limit)}"
            if rem.get("tags"):
                yield f"  Tags: {rem['tags']}"
        yield ""
    if result["overflow_total"]:
        yield f"...and {result['overflow_total']} more (run `agentrem list` for all)"


def _check_watch(args):
    from agentrem.api import wait
    result = _checked(wait(
        kinds=_get_opt(args, "--type") or "time",
        agent=_get_opt(args, "--agent"),
        timeout=_float_opt(args, "--timeout", None),
    ))
    if result["timed_out"]:
        print("Timed out waiting for a due reminder.", file=sys.stderr)
        sys.exit(1)
    if result["reminder"]:
        _json_out(result["reminder"])


def cmd_list(args):
    from agentrem.api import list_reminders
    from agentrem.core.dates import format_relative
    result = _checked(list_reminders(
        status=_get_opt(args, "--status") or "active",
        priority=_get_opt(args, "--priority"),
        tag=_get_opt(args, "--tag"),
        trigger=_get_opt(args, "--type"),
        agent=_get_opt(args, "--agent"),
        overdue="--overdue" in args,
        limit=_int_opt(args, "--limit", 50),
    ))
    if "--json" in args:
        _json_out(result)
        return
    if not result["reminders"]:
        print("No reminders found.")
        return
    for r in result["reminders"]:
        due = format_relative(r["trigger_at"]) if r.get("trigger_at") else r["trigger_type"]
        print(
            f"  {PRIORITY_ICONS.get(r['priority'], '?')} [{r['id'][:8]}] "
            f"{due:10s}  {r['status']:9s}  {r['content'][:60]}"
        )
    print(f"\n  [{result['total']} reminders]")


def cmd_show(args):
    from agentrem.api import show
    if not args:
        _err("Usage: agentrem show <id>")
    _json_out(_checked(show(args[0])))


def cmd_complete(args):
    from agentrem.api import complete
    if not args:
        _err("Usage: agentrem complete <id> [--notes TEXT]")
    result = _checked(complete(args[0], notes=_get_opt(args, "--notes")))
    print(f"✅ Completed [{result['completed']['id'][:8]}]", file=sys.stderr)
    if result["next"]:
        print(
            f"🔁 Next: [{result['next']['id'][:8]}] due {result['next']['trigger_at']}",
            file=sys.stderr,
        )
    _json_out(result)


def cmd_snooze(args):
    from agentrem.api import snooze
    if not args:
        _err("Usage: agentrem snooze <id> (--until DATE | --for 2h)")
    result = _checked(snooze(
        args[0], until=_get_opt(args, "--until"), duration=_get_opt(args, "--for")
    ))
    rem = result["reminder"]
    print(f"💤 Snoozed [{rem['id'][:8]}] until {rem['snoozed_until']}", file=sys.stderr)
    _json_out(result)


EDIT_FLAGS = {
    "--content": "content",
    "--context": "context",
    "--due": "due",
    "--tags": "tags",
    "--add-tags": "add_tags",
    "--remove-tags": "remove_tags",
    "--category": "category",
    "--decay": "decay",
    "--keywords": "keywords",
    "--agent": "agent",
}


def cmd_edit(args):
    from agentrem.api import edit
    if not args or args[0].startswith("-"):
        _err("Usage: agentrem edit <id> [--content T] [--priority N] [--due DATE] [--tags A,B] ...")
    changes = {key: _get_opt(args, flag) for flag, key in EDIT_FLAGS.items()}
    changes["priority"] = _int_opt(args, "--priority", None)
    changes["max_fires"] = _int_opt(args, "--max-fires", None)
    result = _checked(edit(args[0], **changes))
    rem = result["reminder"]
    print(f"✏️  Updated [{rem['id'][:8]}] {rem['content']}", file=sys.stderr)
    _json_out(result)


def cmd_delete(args):
    from agentrem.api import delete
    if not args:
        _err("Usage: agentrem delete <id> [--permanent]")
    _json_out(_checked(delete(args[0], permanent="--permanent" in args)))


def cmd_history(args):
    from agentrem.api import history
    reminder_id = args[0] if args and not args[0].startswith("-") else None
    _json_out(_checked(history(reminder_id, limit=_int_opt(args, "--limit", 20))))


def cmd_search(args):
    from agentrem.api import search
    if not args:
        _err("Usage: agentrem search <query> [--status S] [--limit N]")
    _json_out(_checked(search(
        args[0],
        status=_get_opt(args[1:], "--status") or "active",
        limit=_int_opt(args[1:], "--limit", 10),
    )))


def cmd_gc(args):
    from agentrem.api import gc
    result = _checked(gc(
        older_than_days=_int_opt(args, "--older-than", None),
        dry_run="--dry-run" in args,
    ))
    verb = "Would remove" if result["dry_run"] else "Removed"
    print(f"🗑  {verb} {result['count']} reminders", file=sys.stderr)
    _json_out(result)


def cmd_stats(args):
    from agentrem.api import stats
    result = stats()
    if "db_error" in result:
        print(f"  db:       {result['db_error']}")
        return
    print(f"  db:       {result['db_path']} ({result['db_size_mb']} MB)")
    print(
        f"  active:   {result['active']} "
        f"({result['overdue']} overdue, {result['snoozed']} snoozed)"
    )
    print(f"  done:     {result['completed']} completed, {result['expired']} expired")
    if result.get("next_due"):
        nd = result["next_due"]
        print(f"  next:     [{nd['id'][:8]}] {nd['content'][:50]} — {nd['trigger_at']}")


def cmd_watch(args):
    from agentrem.api import watch
    logging.getLogger().setLevel(logging.INFO)
    watch(
        once="--once" in args,
        interval=_float_opt(args, "--interval", None),
        agent=_get_opt(args, "--agent"),
        cooldown=_float_opt(args, "--cooldown", None),
        on_fire=_get_opt(args, "--on-fire"),
        on_fire_timeout=_float_opt(args, "--on-fire-timeout", None),
    )


def cmd_config(args):
    from agentrem.api import setup_config
    if len(args) < 2:
        _err("Usage: agentrem config <key> <value>")
    _json_out(_checked(setup_config(args[0], args[1])))


COMMANDS = {
    "init": cmd_init,
    "add": cmd_add,
    "check": cmd_check,
    "list": cmd_list,
    "show": cmd_show,
    "complete": cmd_complete,
    "snooze": cmd_snooze,
    "edit": cmd_edit,
    "delete": cmd_delete,
    "history": cmd_history,
    "search": cmd_search,
    "gc": cmd_gc,
    "stats": cmd_stats,
    "watch": cmd_watch,
    "config": cmd_config,
}


def _get_opt(args, flag):
    """Extract value after a flag from args list."""
    if flag in args:
        idx = args.index(flag)
        if idx + 1 < len(args):
            return args[idx + 1]
    return None


def _int_opt(args, flag, default):
    value = _get_opt(args, flag)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        _err(f"{flag} expects a number, got '{value}'")


def _float_opt(args, flag, default):
    value = _get_opt(args, flag)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        _err(f"{flag} expects a number, got '{value}'")


def _err(msg):
    print(msg, file=sys.stderr)
    sys.exit(1)


def main():
    argv = sys.argv[1:]
    verbose = any(a in ("-v", "--verbose") for a in argv)
    argv = [a for a in argv if a not in ("-v", "--verbose")]
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not argv or argv[0] in ("-h", "--help", "help"):
        print(__doc__.strip())
        sys.exit(0)

    cmd = argv[0]
    handler = COMMANDS.get(cmd)
    if not handler:
        print(f"Unknown command: {cmd}", file=sys.stderr)
        print(f"Available: {', '.join(COMMANDS.keys())}", file=sys.stderr)
        sys.exit(1)

    handler(argv[1:])


if __name__ == "__main__":
    main()
