"""
SQLite storage for voucherauth.

Provides persistent recipient counters, item stages, the item registry and
the transition event log. Stores built on one Database share its
per-thread connection and its transactions: one voucher transition is one
SQLite transaction, so no other connection ever sees a consumed counter
without its item, or a raised stage without its avatar.

Compare-and-set updates use conditional UPDATE statements inside
BEGIN IMMEDIATE transactions, which makes them atomic across every process
sharing the database file.
"""

import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

from .events import EventSink, EventType, ItemAdvanced, ItemCreated, TransitionEvent
from .registry import ItemRegistry
from .replay import ReplayStore
from .util import is_zero_address, normalize_address

SQLITE_INT_MAX = 2 ** 63 - 1


def _storable(item_id: int) -> bool:
    """Item ids beyond SQLite's INTEGER range can never have been created."""
    return 0 <= item_id <= SQLITE_INT_MAX


class Database:
    """
    Thread-local SQLite connections to one database file.

    Connections are reused within the same thread for performance.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._local = threading.local()

    def connection(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.path), check_same_thread=False, isolation_level=None)
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            conn.execute("PRAGMA busy_timeout=5000;")
            conn.row_factory = sqlite3.Row
            self._local.conn = conn
        return conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Immediate-mode write transaction.

        Re-entrant within a thread: a nested scope joins the outermost one,
        which alone commits or rolls back.
        """
        conn = self.connection()
        depth = getattr(self._local, "depth", 0)
        if depth:
            self._local.depth = depth + 1
            try:
                yield conn
            finally:
                self._local.depth = depth
            return

        conn.execute("BEGIN IMMEDIATE")
        self._local.depth = 1
        committed = False
        try:
            yield conn
            conn.execute("COMMIT")
            committed = True
        finally:
            self._local.depth = 0
            if not committed:
                conn.execute("ROLLBACK")

    def init_schema(self) -> None:
        """
        Initialize database schema.
        Safe to call multiple times (uses IF NOT EXISTS).
        """
        with self.transaction() as conn:
            conn.execute("""
            CREATE TABLE IF NOT EXISTS recipient_counters (
                identity TEXT PRIMARY KEY,
                sequence INTEGER NOT NULL
            );""")
            conn.execute("""
            CREATE TABLE IF NOT EXISTS item_stages (
                item_id INTEGER PRIMARY KEY,
                stage INTEGER NOT NULL
            );""")
            conn.execute("""
            CREATE TABLE IF NOT EXISTS items (
                item_id INTEGER PRIMARY KEY,
                owner TEXT NOT NULL,
                aux_json TEXT NOT NULL DEFAULT '{}'
            );""")
            conn.execute("""
            CREATE TABLE IF NOT EXISTS events (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                event_type TEXT NOT NULL,
                item_id INTEGER NOT NULL,
                recipient TEXT,
                event_json TEXT NOT NULL
            );""")
            conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_events_item
            ON events(item_id);""")

    def reset(self) -> None:
        """
        Clear all tables but preserve schema.
        Test support only.
        """
        with self.transaction() as conn:
            for table in ("recipient_counters", "item_stages", "items", "events"):
                conn.execute(f"DELETE FROM {table}")

    def close(self) -> None:
        """Close this thread's connection."""
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None


class SqliteReplayStore(ReplayStore):
    """
    Persistent counters and stages.

    `atomic()` is a transaction on the shared Database, so registry and
    event writes made through the same Database inside it commit or roll
    back together with the counter or stage.
    """

    def __init__(self, db: Database):
        self.db = db

    def atomic(self):
        return self.db.transaction()

    def get_sequence(self, identity: str) -> int:
        cur = self.db.connection().execute(
            "SELECT sequence FROM recipient_counters WHERE identity=?", (identity,)
        )
        row = cur.fetchone()
        return row["sequence"] if row else 0

    def get_stage(self, item_id: int) -> int:
        if not _storable(item_id):
            return 0
        cur = self.db.connection().execute(
            "SELECT stage FROM item_stages WHERE item_id=?", (item_id,)
        )
        row = cur.fetchone()
        return row["stage"] if row else 0

    def compare_and_set_sequence(self, identity: str, expected: int, new: int) -> bool:
        if expected > SQLITE_INT_MAX or new > SQLITE_INT_MAX:
            return False
        with self.db.transaction() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO recipient_counters(identity, sequence) VALUES(?, 0)",
                (identity,)
            )
            cur = conn.execute(
                "UPDATE recipient_counters SET sequence=? WHERE identity=? AND sequence=?",
                (new, identity, expected)
            )
            return cur.rowcount == 1

    def compare_and_set_stage(self, item_id: int, expected: int, new: int) -> bool:
        if not _storable(item_id):
            return False
        with self.db.transaction() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO item_stages(item_id, stage) VALUES(?, 0)",
                (item_id,)
            )
            cur = conn.execute(
                "UPDATE item_stages SET stage=? WHERE item_id=? AND stage=?",
                (new, item_id, expected)
            )
            return cur.rowcount == 1


class SqliteItemRegistry(ItemRegistry):
    """Persistent item registry with sequential ids."""

    def __init__(self, db: Database, first_item_id: int = 0):
        self.db = db
        self.first_item_id = first_item_id

    def exists(self, item_id: int) -> bool:
        if not _storable(item_id):
            return False
        cur = self.db.connection().execute("SELECT 1 FROM items WHERE item_id=?", (item_id,))
        return cur.fetchone() is not None

    def create(self, owner: str) -> int:
        owner = normalize_address(owner, "owner")
        if is_zero_address(owner):
            raise ValueError("cannot create an item for the zero address")
        with self.db.transaction() as conn:
            row = conn.execute("SELECT MAX(item_id) AS last FROM items").fetchone()
            item_id = self.first_item_id if row["last"] is None else row["last"] + 1
            conn.execute(
                "INSERT INTO items(item_id, owner, aux_json) VALUES(?, ?, '{}')",
                (item_id, owner)
            )
            return item_id

    def set_auxiliary(self, item_id: int, fields: Dict[str, Any]) -> None:
        with self.db.transaction() as conn:
            cur = conn.execute(
                "UPDATE items SET aux_json=? WHERE item_id=?",
                (json.dumps(fields, sort_keys=True), item_id if _storable(item_id) else -1)
            )
            if cur.rowcount != 1:
                raise KeyError(f"Item not found: {item_id}")

    def discard(self, item_id: int) -> None:
        if not _storable(item_id):
            return
        with self.db.transaction() as conn:
            conn.execute("DELETE FROM items WHERE item_id=?", (item_id,))

    def owner_of(self, item_id: int) -> Optional[str]:
        if not _storable(item_id):
            return None
        cur = self.db.connection().execute("SELECT owner FROM items WHERE item_id=?", (item_id,))
        row = cur.fetchone()
        return row["owner"] if row else None

    def auxiliary(self, item_id: int) -> Dict[str, Any]:
        row = None
        if _storable(item_id):
            cur = self.db.connection().execute("SELECT aux_json FROM items WHERE item_id=?", (item_id,))
            row = cur.fetchone()
        if row is None:
            raise KeyError(f"Item not found: {item_id}")
        return json.loads(row["aux_json"])

    def total_items(self) -> int:
        cur = self.db.connection().execute("SELECT COUNT(*) AS cnt FROM items")
        return cur.fetchone()["cnt"]


def _event_from_row(event_type: str, data: Dict[str, Any]) -> TransitionEvent:
    timestamp = datetime.fromisoformat(data["timestamp"].replace("Z", "+00:00"))
    if event_type == EventType.ITEM_CREATED:
        return ItemCreated(
            recipient=data["recipient"],
            item_id=data["item_id"],
            sequence=data["sequence"],
            signer=data["signer"],
            timestamp=timestamp,
        )
    return ItemAdvanced(
        item_id=data["item_id"],
        stage=data["stage"],
        avatar=data["avatar"],
        signer=data["signer"],
        timestamp=timestamp,
    )


class SqliteEventLog(EventSink):
    """Append-only persistent event log."""

    def __init__(self, db: Database):
        self.db = db

    def emit(self, event: TransitionEvent) -> None:
        data = event.to_dict()
        with self.db.transaction() as conn:
            conn.execute(
                "INSERT INTO events(event_type, item_id, recipient, event_json) VALUES(?,?,?,?)",
                (event.event_type, event.item_id, data.get("recipient"), json.dumps(data, sort_keys=True))
            )

    def query(
        self,
        event_type: Optional[str] = None,
        item_id: Optional[int] = None,
        recipient: Optional[str] = None,
    ) -> List[TransitionEvent]:
        clauses = []
        params: List[Any] = []
        if event_type:
            clauses.append("event_type=?")
            params.append(event_type)
        if item_id is not None:
            if not _storable(item_id):
                return []
            clauses.append("item_id=?")
            params.append(item_id)
        if recipient:
            clauses.append("lower(recipient)=?")
            params.append(recipient.lower())

        sql = "SELECT event_type, event_json FROM events"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY seq ASC"

        cur = self.db.connection().execute(sql, params)
        return [_event_from_row(row["event_type"], json.loads(row["event_json"])) for row in cur.fetchall()]
