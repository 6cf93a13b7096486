import os
import sqlite3
import json
import threading
from pathlib import Path
from typing import List, Optional

from sequencer.core.types import Message, Process
from sequencer.core.canon import canonical_json_str
from sequencer.core.errors import DuplicateError, NotFoundError, StoreError, WriteFailure
from . import StorageBackend

MEMORY = ":memory:"


class SQLiteStorage(StorageBackend):
    """
    SQLite persistent index for messages and processes.
    One connection shared by every caller; a lock serializes access so two
    concurrent saves of the same id resolve to exactly one winner.
    """

    def __init__(self, db_path: str | Path | None = None):
        if db_path is None:
            env_path = os.environ.get("SEQUENCER_DB_PATH")
            db_path = env_path if env_path else Path.cwd() / "sequencer.db"

        if str(db_path) == MEMORY:
            self.db_path = MEMORY
        else:
            self.db_path = Path(db_path).resolve()
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StoreError(f"Cannot create index directory {self.db_path.parent}: {e.strerror}") from e

        self._lock = threading.Lock()
        self._conn: Optional[sqlite3.Connection] = None
        self._connect()

    def _connect(self):
        try:
            self._conn = sqlite3.connect(str(self.db_path), isolation_level=None, check_same_thread=False)
            if self.db_path != MEMORY:
                self._conn.execute("PRAGMA journal_mode=WAL")
            self._create_schema()
        except sqlite3.Error as e:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
            raise StoreError(f"Cannot open index {self.db_path}: {e}", meta={"path": str(self.db_path)}) from e

    def _create_schema(self):
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                id                TEXT    PRIMARY KEY,
                process_id        TEXT    NOT NULL,
                sequence_key      TEXT    NOT NULL,
                bundle_reference  TEXT    NOT NULL,
                canonical_json    TEXT    NOT NULL
            )
        """)
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS processes (
                id                         TEXT    PRIMARY KEY,
                owner_identity             TEXT    NOT NULL,
                creation_bundle_reference  TEXT    NOT NULL,
                timestamp                  INTEGER NOT NULL,
                canonical_json             TEXT    NOT NULL
            )
        """)
        self.conn.execute("CREATE INDEX IF NOT EXISTS idx_process_seq ON messages(process_id, sequence_key)")

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreError("Storage connection is closed")
        return self._conn

    def _insert(self, sql: str, params: tuple, entity_id: str) -> None:
        with self._lock:
            try:
                self.conn.execute(sql, params)
            except sqlite3.IntegrityError as e:
                raise DuplicateError(f"Entity {entity_id} already stored", meta={"id": entity_id}) from e
            except sqlite3.Error as e:
                raise WriteFailure(f"Failed to store {entity_id}: {e}", meta={"id": entity_id}) from e

    def _fetch(self, sql: str, params: tuple) -> list:
        with self._lock:
            try:
                return self.conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise StoreError(f"Storage read failed: {e}") from e

    def save_message(self, msg: Message) -> None:
        self._insert("""
            INSERT INTO messages (id, process_id, sequence_key, bundle_reference, canonical_json)
            VALUES (?, ?, ?, ?, ?)
        """, (
            msg.id, msg.process_id, msg.sequence_key, msg.bundle_reference,
            canonical_json_str(msg.to_dict())
        ), msg.id)

    def save_process(self, process: Process) -> None:
        self._insert("""
            INSERT INTO processes (id, owner_identity, creation_bundle_reference, timestamp, canonical_json)
            VALUES (?, ?, ?, ?, ?)
        """, (
            process.id, process.owner_identity, process.creation_bundle_reference,
            process.timestamp, canonical_json_str(process.to_dict())
        ), process.id)

    @staticmethod
    def _decode(entity_type, cjson: str):
        try:
            return entity_type.from_dict(json.loads(cjson))
        except (KeyError, TypeError, ValueError) as e:
            raise StoreError(f"Corrupt {entity_type.__name__.lower()} row: {e}") from e

    def get_message(self, message_id: str) -> Message:
        rows = self._fetch("SELECT canonical_json FROM messages WHERE id = ?", (message_id,))
        if not rows:
            raise NotFoundError(f"Message {message_id} not found", meta={"id": message_id})
        return self._decode(Message, rows[0][0])

    def get_messages(self, process_id: str) -> List[Message]:
        rows = self._fetch("SELECT canonical_json FROM messages WHERE process_id = ?", (process_id,))
        return [self._decode(Message, cjson) for (cjson,) in rows]

    def get_process(self, process_id: str) -> Process:
        rows = self._fetch("SELECT canonical_json FROM processes WHERE id = ?", (process_id,))
        if not rows:
            raise NotFoundError(f"Process {process_id} not found", meta={"id": process_id})
        return self._decode(Process, rows[0][0])

    def close(self) -> None:
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def list_processes(self) -> list[str]:
        """
        Every process id known locally, either as a stored process or as the
        target of stored messages, sorted by id.
        """
        rows = self._fetch("""
            SELECT id FROM processes
            UNION
            SELECT DISTINCT process_id FROM messages
            ORDER BY 1
        """, ())
        return [row[0] for row in rows]

    def get_message_count(self, process_id: str) -> int:
        rows = self._fetch("SELECT COUNT(*) FROM messages WHERE process_id = ?", (process_id,))
        return rows[0][0]

    def get_latest_sequence_key(self, process_id: str) -> Optional[str]:
        rows = self._fetch("SELECT MAX(sequence_key) FROM messages WHERE process_id = ?", (process_id,))
        return rows[0][0] if rows and rows[0][0] else None
