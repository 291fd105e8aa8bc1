import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import formatting

VERSION = "0.3.0"

SCHEMA_SQL = """
PRAGMA journal_mode = WAL;

CREATE TABLE IF NOT EXISTS config (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    version TEXT NOT NULL,
    grace_period_seconds INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS practices (
    name TEXT PRIMARY KEY,
    created_at INTEGER NOT NULL,
    logged_at INTEGER NOT NULL,
    period_seconds INTEGER NOT NULL,
    cumulative_seconds INTEGER NOT NULL DEFAULT 0,
    notes TEXT NOT NULL DEFAULT ''
);
"""


class StateError(ValueError):
    """A practice operation could not be applied to the stored state."""


def _ensure_parent(path: Path) -> None:
    if path.parent and not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)


@contextmanager
def connect(db_path: Path):
    _ensure_parent(db_path)
    conn = sqlite3.connect(str(db_path))
    try:
        conn.row_factory = sqlite3.Row
        conn.executescript(SCHEMA_SQL)
        conn.execute("INSERT OR IGNORE INTO config (id, version) VALUES (1, ?)", (VERSION,))
        yield conn
    finally:
        conn.close()


def init_db(db_path: Path) -> None:
    """Create the schema and stamp the config row with the running version."""
    with connect(db_path) as conn:
        conn.execute("UPDATE config SET version = ? WHERE id = 1", (VERSION,))
        conn.commit()


def _now(now: Optional[int]) -> int:
    return int(time.time()) if now is None else int(now)


def _require(conn: sqlite3.Connection, name: str) -> sqlite3.Row:
    row = conn.execute("SELECT * FROM practices WHERE name = ?", (name,)).fetchone()
    if row is None:
        raise StateError(f"Practice \"{name}\" not found. (Case sensitive)")
    return row


def practice_names(db_path: Path) -> List[str]:
    with connect(db_path) as conn:
        rows = conn.execute("SELECT name FROM practices ORDER BY name ASC").fetchall()
        return [r["name"] for r in rows]


def add_practice(db_path: Path, name: str, period: int, now: Optional[int] = None) -> None:
    if not name:
        raise StateError("Practice name cannot be empty")
    ts = _now(now)
    with connect(db_path) as conn:
        if conn.execute("SELECT 1 FROM practices WHERE name = ?", (name,)).fetchone():
            raise StateError(f"Practice with name \"{name}\" already exists.")
        conn.execute(
            "INSERT INTO practices (name, created_at, logged_at, period_seconds, cumulative_seconds, notes) VALUES (?, ?, ?, ?, 0, '')",
            (name, ts, ts, formatting.duration_to_seconds(period)),
        )
        conn.commit()


def log_practice(db_path: Path, name: str, spent: int, now: Optional[int] = None) -> int:
    """Mark a practice done now and add ``spent`` to its cumulative time.

    Returns the new cumulative duration.
    """
    with connect(db_path) as conn:
        row = _require(conn, name)
        cumulative = formatting.checked_add(
            formatting.duration_from_seconds(row["cumulative_seconds"]), spent
        )
        conn.execute(
            "UPDATE practices SET logged_at = ?, cumulative_seconds = ? WHERE name = ?",
            (_now(now), formatting.duration_to_seconds(cumulative), name),
        )
        conn.commit()
        return cumulative


def get_notes(db_path: Path, name: str) -> str:
    with connect(db_path) as conn:
        return _require(conn, name)["notes"]


def set_notes(db_path: Path, name: str, notes: str) -> None:
    with connect(db_path) as conn:
        _require(conn, name)
        conn.execute("UPDATE practices SET notes = ? WHERE name = ?", (notes, name))
        conn.commit()


def remove_practice(db_path: Path, name: str) -> None:
    with connect(db_path) as conn:
        _require(conn, name)
        conn.execute("DELETE FROM practices WHERE name = ?", (name,))
        conn.commit()


def rename_practice(db_path: Path, current_name: str, new_name: str) -> None:
    if not new_name:
        raise StateError("Practice name cannot be empty")
    with connect(db_path) as conn:
        _require(conn, current_name)
        if conn.execute("SELECT 1 FROM practices WHERE name = ?", (new_name,)).fetchone():
            raise StateError(f"Practice with name \"{new_name}\" already exists.")
        conn.execute("UPDATE practices SET name = ? WHERE name = ?", (new_name, current_name))
        conn.commit()


def reset_all(db_path: Path, now: Optional[int] = None) -> int:
    """Restart every bar from now. Returns how many practices were touched."""
    with connect(db_path) as conn:
        cur = conn.execute("UPDATE practices SET logged_at = ?", (_now(now),))
        conn.commit()
        return cur.rowcount


def edit_period(db_path: Path, name: str, period: int) -> None:
    with connect(db_path) as conn:
        _require(conn, name)
        conn.execute(
            "UPDATE practices SET period_seconds = ? WHERE name = ?",
            (formatting.duration_to_seconds(period), name),
        )
        conn.commit()


def get_config(db_path: Path) -> Dict[str, Any]:
    with connect(db_path) as conn:
        row = conn.execute("SELECT version, grace_period_seconds FROM config WHERE id = 1").fetchone()
        return {
            "version": row["version"],
            "grace_period": formatting.duration_from_seconds(row["grace_period_seconds"]),
        }


def set_grace_period(db_path: Path, grace_period: int) -> None:
    if grace_period < 0:
        raise StateError("Grace period cannot be negative")
    with connect(db_path) as conn:
        conn.execute(
            "UPDATE config SET grace_period_seconds = ? WHERE id = 1",
            (formatting.duration_to_seconds(grace_period),),
        )
        conn.commit()


def list_practices(db_path: Path, now: Optional[int] = None) -> List[Dict[str, Any]]:
    """All practices ordered by name, with durations in nanoseconds."""
    ts = _now(now)
    with connect(db_path) as conn:
        rows = conn.execute("SELECT * FROM practices ORDER BY name ASC").fetchall()
        return [
            {
                "name": r["name"],
                "created_at": int(r["created_at"]),
                "logged_at": int(r["logged_at"]),
                "period": formatting.duration_from_seconds(r["period_seconds"]),
                "cumulative": formatting.duration_from_seconds(r["cumulative_seconds"]),
                "elapsed": formatting.duration_from_seconds(ts - int(r["logged_at"])),
                "notes": r["notes"],
            }
            for r in rows
        ]
