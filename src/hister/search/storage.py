"""SQLite-backed inverted index.

One index is a directory holding a single SQLite database:
- WAL mode so readers never block the single writer
- WITHOUT ROWID postings clustered by (field, term, doc_id)
- Binary position encoding (``array('I')``) for phrase matching
- Thread-local reader connections; every search runs inside one read
  transaction, so a reader sees either all of a write or none of it
"""

from __future__ import annotations

from array import array
from collections import defaultdict
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
import logging
from pathlib import Path
import shutil
import sqlite3
import threading
from typing import Any

import orjson

from hister.errors import StorageError
from hister.search.backend import SearchHits, SearchRequest
from hister.search.executor import QueryExecutor
from hister.search.query import SearchQuery
from hister.search.schema import Schema, create_history_schema
from hister.search.stats import FieldLengthStats


logger = logging.getLogger(__name__)

DB_FILENAME = "store.sqlite"
FORMAT_VERSION = "1"
_IN_CHUNK = 500


def apply_read_pragmas(conn: sqlite3.Connection, *, query_only: bool = True, busy_timeout_ms: int = 30000) -> None:
    conn.execute(f"PRAGMA busy_timeout = {busy_timeout_ms}")
    conn.execute("PRAGMA journal_mode = WAL")
    conn.execute("PRAGMA synchronous = NORMAL")
    conn.execute("PRAGMA cache_size = -16384")
    conn.execute("PRAGMA temp_store = MEMORY")
    if query_only:
        conn.execute("PRAGMA query_only = 1")


def apply_write_pragmas(conn: sqlite3.Connection, *, busy_timeout_ms: int = 30000) -> None:
    conn.execute(f"PRAGMA busy_timeout = {busy_timeout_ms}")
    conn.execute("PRAGMA journal_mode = WAL")
    conn.execute("PRAGMA synchronous = NORMAL")
    conn.execute("PRAGMA cache_size = -16384")
    conn.execute("PRAGMA foreign_keys = OFF")


_SCHEMA_SQL = (
    "CREATE TABLE IF NOT EXISTS metadata (key TEXT PRIMARY KEY, value TEXT NOT NULL) WITHOUT ROWID",
    """
    CREATE TABLE IF NOT EXISTS documents (
        doc_id INTEGER PRIMARY KEY,
        doc_key TEXT NOT NULL UNIQUE,
        stored TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS postings (
        field TEXT NOT NULL,
        term TEXT NOT NULL,
        doc_id INTEGER NOT NULL,
        tf INTEGER NOT NULL,
        doc_length INTEGER NOT NULL,
        positions_blob BLOB,
        PRIMARY KEY (field, term, doc_id)
    ) WITHOUT ROWID
    """,
    "CREATE INDEX IF NOT EXISTS postings_by_doc ON postings (doc_id)",
    """
    CREATE TABLE IF NOT EXISTS field_lengths (
        field TEXT NOT NULL,
        doc_id INTEGER NOT NULL,
        length INTEGER NOT NULL,
        PRIMARY KEY (field, doc_id)
    ) WITHOUT ROWID
    """,
    """
    CREATE TABLE IF NOT EXISTS numerics (
        field TEXT NOT NULL,
        doc_id INTEGER NOT NULL,
        value INTEGER NOT NULL,
        PRIMARY KEY (field, doc_id)
    ) WITHOUT ROWID
    """,
    "CREATE INDEX IF NOT EXISTS numerics_by_value ON numerics (field, value)",
    "CREATE INDEX IF NOT EXISTS numerics_by_doc ON numerics (doc_id)",
    "CREATE INDEX IF NOT EXISTS field_lengths_by_doc ON field_lengths (doc_id)",
)


@dataclass(frozen=True)
class Posting:
    doc_id: int
    tf: int
    doc_length: int
    positions: array


class SQLiteConnectionPool:
    """Thread-local reader connections, all closed together."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._local = threading.local()
        self._lock = threading.Lock()
        self._connections: list[sqlite3.Connection] = []

    def get_connection(self) -> sqlite3.Connection:
        conn = getattr(self._local, "connection", None)
        if conn is None:
            conn = self._create_connection()
            self._local.connection = conn
            with self._lock:
                self._connections.append(conn)
        return conn

    def _create_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
        apply_read_pragmas(conn)
        return conn

    def close_all(self) -> None:
        with self._lock:
            connections, self._connections = self._connections, []
        for conn in connections:
            try:
                conn.close()
            except sqlite3.Error as exc:
                logger.warning("Failed to close SQLite reader for %s: %s", self.db_path, exc)
        self._local = threading.local()


class IndexReader:
    """Read access to one snapshot of the index.

    Statistics are cached for the lifetime of the reader, which is one
    read transaction.
    """

    def __init__(self, conn: sqlite3.Connection, schema: Schema) -> None:
        self.conn = conn
        self.schema = schema
        self._doc_count: int | None = None
        self._field_stats: dict[str, FieldLengthStats] = {}

    def doc_count(self) -> int:
        if self._doc_count is None:
            self._doc_count = int(self.conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0])
        return self._doc_count

    def all_doc_ids(self) -> list[int]:
        return [row[0] for row in self.conn.execute("SELECT doc_id FROM documents ORDER BY doc_id")]

    def field_stats(self, field_name: str) -> FieldLengthStats:
        stats = self._field_stats.get(field_name)
        if stats is None:
            row = self.conn.execute(
                "SELECT COUNT(*), SUM(length) FROM field_lengths WHERE field = ?", (field_name,)
            ).fetchone()
            stats = FieldLengthStats(field=field_name, total_terms=int(row[1] or 0), document_count=int(row[0] or 0))
            self._field_stats[field_name] = stats
        return stats

    def postings(self, field_name: str, term: str, *, include_positions: bool = False) -> list[Posting]:
        columns = "doc_id, tf, doc_length, positions_blob" if include_positions else "doc_id, tf, doc_length"
        cursor = self.conn.execute(
            f"SELECT {columns} FROM postings WHERE field = ? AND term = ?",  # noqa: S608 - fixed column list
            (field_name, term),
        )
        postings: list[Posting] = []
        for row in cursor:
            positions = array("I")
            if include_positions and row[3]:
                positions.frombytes(row[3])
            postings.append(Posting(doc_id=row[0], tf=int(row[1]), doc_length=int(row[2]), positions=positions))
        return postings

    def expand_terms(self, field_name: str, glob: str, *, limit: int) -> list[str]:
        cursor = self.conn.execute(
            "SELECT DISTINCT term FROM postings WHERE field = ? AND term GLOB ? LIMIT ?",
            (field_name, glob, limit),
        )
        return [row[0] for row in cursor]

    def range_doc_ids(self, field_name: str, minimum: int | None, maximum: int | None) -> list[int]:
        sql = "SELECT doc_id FROM numerics WHERE field = ?"
        params: list[Any] = [field_name]
        if minimum is not None:
            sql += " AND value >= ?"
            params.append(minimum)
        if maximum is not None:
            sql += " AND value <= ?"
            params.append(maximum)
        return [row[0] for row in self.conn.execute(sql, params)]

    def stored_fields(self, doc_ids: Sequence[int]) -> dict[int, dict[str, Any]]:
        stored: dict[int, dict[str, Any]] = {}
        for start in range(0, len(doc_ids), _IN_CHUNK):
            chunk = doc_ids[start : start + _IN_CHUNK]
            placeholders = ",".join("?" * len(chunk))
            cursor = self.conn.execute(
                f"SELECT doc_id, stored FROM documents WHERE doc_id IN ({placeholders})",  # noqa: S608
                chunk,
            )
            for doc_id, payload in cursor:
                stored[doc_id] = orjson.loads(payload)
        return stored


class SqliteIndex:
    """Inverted index stored in ``<path>/store.sqlite``.

    Writes go through one connection guarded by a lock; reads use
    per-thread connections. ``read_only`` indexes refuse writes and never
    create files.
    """

    def __init__(self, path: str | Path, schema: Schema | None = None, *, read_only: bool = False) -> None:
        self.path = Path(path)
        self.db_path = self.path / DB_FILENAME
        self.read_only = read_only
        self._schema = schema
        self._write_lock = threading.Lock()
        self._writer: sqlite3.Connection | None = None
        self._pool: SQLiteConnectionPool | None = None

    @property
    def schema(self) -> Schema:
        if self._schema is None:
            raise StorageError(f"index at {self.path} is not open")
        return self._schema

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    def open(self) -> None:
        if self._pool is not None:
            return
        if self.read_only:
            if not self.db_path.exists():
                raise StorageError(f"no index found at {self.path}")
        else:
            created = not self.db_path.exists()
            try:
                self.path.mkdir(parents=True, exist_ok=True)
                self._writer = self._create_writer(created=created)
            except (OSError, sqlite3.Error) as exc:
                if created:
                    self._remove_partial()
                raise StorageError(f"failed to open index at {self.path}: {exc}") from exc
        self._pool = SQLiteConnectionPool(self.db_path)
        try:
            with self.reader() as reader:
                stored_schema = reader.conn.execute("SELECT value FROM metadata WHERE key = 'schema'").fetchone()
        except StorageError:
            self.close()
            raise
        if stored_schema is None:
            self.close()
            raise StorageError(f"{self.db_path} is not a history index")
        if self._schema is None:
            self._schema = Schema.from_dict(orjson.loads(stored_schema[0]))
        logger.debug("Opened index %s (read_only=%s)", self.path, self.read_only)

    def _create_writer(self, *, created: bool) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
        apply_write_pragmas(conn)
        for statement in _SCHEMA_SQL:
            conn.execute(statement)
        if created:
            schema = self._schema or create_history_schema()
            self._schema = schema
            conn.execute(
                "INSERT OR REPLACE INTO metadata (key, value) VALUES ('schema', ?), ('format_version', ?)",
                (orjson.dumps(schema.to_dict()).decode("utf-8"), FORMAT_VERSION),
            )
        return conn

    def _remove_partial(self) -> None:
        try:
            shutil.rmtree(self.path)
        except OSError as cleanup_error:
            logger.warning("Failed to remove partial index %s: %s", self.path, cleanup_error)

    def close(self) -> None:
        if self._pool is not None:
            self._pool.close_all()
            self._pool = None
        with self._write_lock:
            if self._writer is not None:
                try:
                    self._writer.execute("PRAGMA optimize")
                    self._writer.close()
                except sqlite3.Error as exc:
                    logger.warning("Failed to close SQLite writer for %s: %s", self.db_path, exc)
                self._writer = None

    def __enter__(self) -> SqliteIndex:
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @contextmanager
    def reader(self) -> Iterator[IndexReader]:
        """Yield an ``IndexReader`` bound to one read transaction."""
        if self._pool is None:
            raise StorageError(f"index at {self.path} is not open")
        try:
            conn = self._pool.get_connection()
            conn.execute("BEGIN")
        except sqlite3.Error as exc:
            raise StorageError(f"failed to read index at {self.path}: {exc}") from exc
        try:
            yield IndexReader(conn, self._schema or create_history_schema())
        except sqlite3.Error as exc:
            conn.execute("ROLLBACK")
            raise StorageError(f"failed to read index at {self.path}: {exc}") from exc
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        else:
            conn.execute("COMMIT")

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        if self.read_only:
            raise StorageError(f"index at {self.path} is read-only")
        with self._write_lock:
            conn = self._writer
            if conn is None:
                raise StorageError(f"index at {self.path} is not open")
            try:
                conn.execute("BEGIN IMMEDIATE")
                yield conn
                conn.execute("COMMIT")
            except sqlite3.Error as exc:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise StorageError(f"failed to write index at {self.path}: {exc}") from exc
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise

    def add(self, doc_id: str, fields: Mapping[str, Any]) -> None:
        schema = self.schema
        stored = {f.name: fields[f.name] for f in schema if f.stored and fields.get(f.name) is not None}
        stored[schema.unique_field] = doc_id
        with self._transaction() as conn:
            self._delete_key(conn, doc_id)
            cursor = conn.execute(
                "INSERT INTO documents (doc_key, stored) VALUES (?, ?)",
                (doc_id, orjson.dumps(stored).decode("utf-8")),
            )
            row_id = cursor.lastrowid
            for schema_field in schema.indexed_fields:
                value = doc_id if schema_field.name == schema.unique_field else fields.get(schema_field.name)
                if value in (None, ""):
                    continue
                self._store_postings(conn, row_id, schema_field.name, str(value))
            for numeric in schema.numeric_fields:
                value = fields.get(numeric.name)
                if value is None:
                    continue
                conn.execute(
                    "INSERT INTO numerics (field, doc_id, value) VALUES (?, ?, ?)",
                    (numeric.name, row_id, int(value)),
                )

    def _store_postings(self, conn: sqlite3.Connection, row_id: int, field_name: str, value: str) -> None:
        tokens = self.schema.analyzer(field_name)(value)
        if not tokens:
            return
        positions: dict[str, array] = defaultdict(lambda: array("I"))
        for token in tokens:
            positions[token.text].append(token.position)
        doc_length = len(tokens)
        conn.executemany(
            "INSERT INTO postings (field, term, doc_id, tf, doc_length, positions_blob) VALUES (?, ?, ?, ?, ?, ?)",
            [
                (field_name, term, row_id, len(term_positions), doc_length, term_positions.tobytes())
                for term, term_positions in positions.items()
            ],
        )
        conn.execute(
            "INSERT INTO field_lengths (field, doc_id, length) VALUES (?, ?, ?)",
            (field_name, row_id, doc_length),
        )

    def _delete_key(self, conn: sqlite3.Connection, doc_id: str) -> bool:
        row = conn.execute("SELECT doc_id FROM documents WHERE doc_key = ?", (doc_id,)).fetchone()
        if row is None:
            return False
        row_id = row[0]
        conn.execute("DELETE FROM postings WHERE doc_id = ?", (row_id,))
        conn.execute("DELETE FROM field_lengths WHERE doc_id = ?", (row_id,))
        conn.execute("DELETE FROM numerics WHERE doc_id = ?", (row_id,))
        conn.execute("DELETE FROM documents WHERE doc_id = ?", (row_id,))
        return True

    def delete(self, doc_id: str) -> None:
        with self._transaction() as conn:
            if not self._delete_key(conn, doc_id):
                logger.debug("Delete of missing document %s ignored", doc_id)

    def search(self, query: SearchQuery, request: SearchRequest) -> SearchHits:
        with self.reader() as reader:
            return QueryExecutor(reader).run(query, request)

    def page(self, offset: int, size: int) -> list[dict[str, Any]]:
        with self.reader() as reader:
            cursor = reader.conn.execute(
                "SELECT stored FROM documents ORDER BY doc_id LIMIT ? OFFSET ?",
                (size, offset),
            )
            return [orjson.loads(row[0]) for row in cursor]

    def count(self) -> int:
        with self.reader() as reader:
            return reader.doc_count()
