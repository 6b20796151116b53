"""SQLite helpers."""
from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional

from .config import CONFIG
from .roles import Role

_DB_PATH = CONFIG.resolved_database_path
_DB_PATH.parent.mkdir(parents=True, exist_ok=True)

_THROTTLE_COLUMNS = {
    Role.CHILD: "last_child_withdrawal",
    Role.PARENT: "last_parent_withdrawal",
}


def _now_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def initialize_db() -> None:
    with sqlite3.connect(_DB_PATH) as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS deployment (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                created_at TEXT NOT NULL
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS vault_state (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                observer1_allowance INTEGER NOT NULL DEFAULT 0,
                observer2_allowance INTEGER NOT NULL DEFAULT 0,
                parent_allowance_by_child INTEGER NOT NULL DEFAULT 0,
                last_child_withdrawal TEXT,
                last_parent_withdrawal TEXT,
                updated_at TEXT NOT NULL
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS fund_account (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                balance INTEGER NOT NULL DEFAULT 0 CHECK (balance >= 0),
                updated_at TEXT NOT NULL
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS transfers (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                direction TEXT NOT NULL,
                counterparty TEXT NOT NULL,
                amount INTEGER NOT NULL,
                created_at TEXT NOT NULL
            );
            """
        )
        conn.commit()


@contextmanager
def get_connection() -> Iterator[sqlite3.Connection]:
    conn = sqlite3.connect(_DB_PATH)
    try:
        yield conn
    finally:
        conn.close()


def ensure_deployment(now: Optional[datetime] = None) -> datetime:
    """Record the creation time on first start and return the stored value."""
    created_at = (now or datetime.now(tz=timezone.utc)).isoformat()
    with get_connection() as conn:
        conn.execute(
            "INSERT OR IGNORE INTO deployment (id, created_at) VALUES (1, ?)",
            (created_at,),
        )
        conn.execute(
            "INSERT OR IGNORE INTO fund_account (id, balance, updated_at) VALUES (1, 0, ?)",
            (created_at,),
        )
        conn.execute(
            "INSERT OR IGNORE INTO vault_state (id, updated_at) VALUES (1, ?)",
            (created_at,),
        )
        conn.commit()
        row = conn.execute("SELECT created_at FROM deployment WHERE id = 1").fetchone()
    return datetime.fromisoformat(row[0])


def get_deployment_time() -> datetime:
    with get_connection() as conn:
        row = conn.execute("SELECT created_at FROM deployment WHERE id = 1").fetchone()
    if not row:
        raise RuntimeError("Deployment missing; call ensure_deployment() first")
    return datetime.fromisoformat(row[0])


def save_throttle_stamp(tier: Role, stamp: Optional[datetime]) -> None:
    """Write one tier's last emergency withdrawal, committed on its own."""
    column = _THROTTLE_COLUMNS[tier]
    with get_connection() as conn:
        conn.execute(
            f"UPDATE vault_state SET {column} = ?, updated_at = ? WHERE id = 1",
            (stamp.isoformat() if stamp else None, _now_iso()),
        )
        conn.commit()


def load_vault_state() -> Dict[str, object]:
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        row = conn.execute("SELECT * FROM vault_state WHERE id = 1").fetchone()
    if not row:
        raise RuntimeError("Vault state missing; call ensure_deployment() first")
    return {
        "observer1_allowance": row["observer1_allowance"],
        "observer2_allowance": row["observer2_allowance"],
        "parent_allowance_by_child": row["parent_allowance_by_child"],
        "last_child_withdrawal": _parse_ts(row["last_child_withdrawal"]),
        "last_parent_withdrawal": _parse_ts(row["last_parent_withdrawal"]),
    }


def save_vault_state(
    *,
    observer1_allowance: int,
    observer2_allowance: int,
    parent_allowance_by_child: int,
    last_child_withdrawal: Optional[datetime],
    last_parent_withdrawal: Optional[datetime],
) -> None:
    with get_connection() as conn:
        conn.execute(
            """
            UPDATE vault_state
            SET observer1_allowance = ?,
                observer2_allowance = ?,
                parent_allowance_by_child = ?,
                last_child_withdrawal = ?,
                last_parent_withdrawal = ?,
                updated_at = ?
            WHERE id = 1
            """,
            (
                observer1_allowance,
                observer2_allowance,
                parent_allowance_by_child,
                last_child_withdrawal.isoformat() if last_child_withdrawal else None,
                last_parent_withdrawal.isoformat() if last_parent_withdrawal else None,
                _now_iso(),
            ),
        )
        conn.commit()


def get_balance() -> int:
    with get_connection() as conn:
        row = conn.execute("SELECT balance FROM fund_account WHERE id = 1").fetchone()
    return row[0] if row else 0


def credit_balance(sender: str, amount: int) -> int:
    now = _now_iso()
    with get_connection() as conn:
        conn.execute(
            "UPDATE fund_account SET balance = balance + ?, updated_at = ? WHERE id = 1",
            (amount, now),
        )
        conn.execute(
            "INSERT INTO transfers (direction, counterparty, amount, created_at) VALUES ('in', ?, ?, ?)",
            (sender, amount, now),
        )
        conn.commit()
        row = conn.execute("SELECT balance FROM fund_account WHERE id = 1").fetchone()
    return row[0]


def debit_balance(recipient: str, amount: int) -> bool:
    """Move ``amount`` out of the account in one statement; False if funds are short."""
    now = _now_iso()
    with get_connection() as conn:
        cursor = conn.execute(
            """
            UPDATE fund_account
            SET balance = balance - ?, updated_at = ?
            WHERE id = 1 AND balance >= ?
            """,
            (amount, now, amount),
        )
        if cursor.rowcount != 1:
            conn.rollback()
            return False
        conn.execute(
            "INSERT INTO transfers (direction, counterparty, amount, created_at) VALUES ('out', ?, ?, ?)",
            (recipient, amount, now),
        )
        conn.commit()
    return True


def list_transfers(limit: int = 100) -> List[dict]:
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        rows = conn.execute(
            "SELECT * FROM transfers ORDER BY id DESC LIMIT ?",
            (limit,),
        ).fetchall()
    return [
        {
            "id": row["id"],
            "direction": row["direction"],
            "counterparty": row["counterparty"],
            "amount": row["amount"],
            "created_at": datetime.fromisoformat(row["created_at"]),
        }
        for row in rows
    ]
