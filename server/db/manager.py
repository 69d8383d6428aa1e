# Document store on top of SQLite
# Connection management, optimistic transactions with automatic retry, and
# the integrity checks for pooling invariants

import json
import logging
import os
import random
import re
import sqlite3
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from utils.timeutils import to_iso

from .errors import NotFoundError, TransactionAbortedError

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_RETRY_BACKOFF_SECONDS = 0.01
DEFAULT_BUSY_TIMEOUT_SECONDS = 5.0

_FIELD_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_COMPARISONS = {"==": "=", "!=": "!=", "<": "<", "<=": "<=", ">": ">", ">=": ">="}

Filter = Tuple[str, str, Any]


def new_document_id() -> str:
    """Generate a random 20-character document id."""
    return uuid.uuid4().hex[:20]


@dataclass
class Document:
    """A snapshot of one stored document."""
    id: str
    data: Dict[str, Any]
    version: int

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, **self.data}


@dataclass
class _Write:
    op: str
    collection: str
    doc_id: str
    data: Optional[Dict[str, Any]] = None
    merge: bool = False


@dataclass
class _QueryRead:
    collection: str
    filters: Tuple[Filter, ...]
    order_by: Optional[str]
    descending: bool
    limit: Optional[int]
    observed: Dict[str, int] = field(default_factory=dict)


class TransactionConflict(Exception):
    """Internal signal: state read by a transaction changed before commit."""


class Transaction:
    """
    One attempt of a read-then-write transaction

    Reads go straight to the store and remember the version they saw;
    writes are buffered and applied together on commit. All reads must
    happen before the first write, as with hosted document databases.
    """

    def __init__(self, store: "DocumentStore", transaction_id: str, attempt: int):
        self.store = store
        self.transaction_id = transaction_id
        self.attempt = attempt
        self._reads: Dict[Tuple[str, str], int] = {}
        self._queries: List[_QueryRead] = []
        self._writes: List[_Write] = []

    def _ensure_reading(self):
        if self._writes:
            raise RuntimeError("Transactions require all reads to be executed before all writes")

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        """Read one document, or None when it does not exist."""
        self._ensure_reading()
        doc = self.store._fetch(collection, doc_id)
        self._reads.setdefault((collection, doc_id), doc.version if doc else 0)
        return doc

    def query(self, collection: str, filters: Iterable[Filter] = (),
              order_by: Optional[str] = None, descending: bool = False,
              limit: Optional[int] = None) -> List[Document]:
        """
        Run a filtered query

        The result set is re-checked at commit, so a document entering or
        leaving the result (or changing) counts as a conflict.
        """
        self._ensure_reading()
        filters = tuple(filters)
        docs = self.store._select(collection, filters, order_by, descending, limit)
        read = _QueryRead(collection, filters, order_by, descending, limit,
                          {doc.id: doc.version for doc in docs})
        self._queries.append(read)
        for doc in docs:
            self._reads.setdefault((collection, doc.id), doc.version)
        return docs

    def create(self, collection: str, data: Dict[str, Any], doc_id: Optional[str] = None) -> str:
        """Buffer creation of a new document and return its id."""
        doc_id = doc_id or new_document_id()
        self._writes.append(_Write("create", collection, doc_id, dict(data)))
        return doc_id

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False):
        self._writes.append(_Write("set", collection, doc_id, dict(data), merge))

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]):
        """Buffer a partial update; the document must exist at commit."""
        self._writes.append(_Write("update", collection, doc_id, dict(fields)))

    def delete(self, collection: str, doc_id: str):
        self._writes.append(_Write("delete", collection, doc_id))

    @property
    def has_writes(self) -> bool:
        return bool(self._writes)


class DocumentStore:
    """
    Transactional document store

    Documents are JSON objects grouped in collections and stored in a single
    SQLite table with a version counter. `run_transaction` gives every caller
    optimistic, all-or-nothing semantics: the body runs against fresh reads,
    the commit re-validates everything it read under SQLite's write lock, and
    a conflicting attempt is thrown away and re-run from scratch.
    """

    def __init__(self, db_path: str, auto_connect: bool = False,
                 max_attempts: int = DEFAULT_MAX_ATTEMPTS,
                 retry_backoff_seconds: float = DEFAULT_RETRY_BACKOFF_SECONDS,
                 busy_timeout_seconds: float = DEFAULT_BUSY_TIMEOUT_SECONDS):
        """
        Args:
            db_path: database file path, or ":memory:"
            auto_connect: connect and create the schema immediately
            max_attempts: transaction attempts before giving up
            retry_backoff_seconds: base delay between conflicting attempts
            busy_timeout_seconds: how long SQLite waits for another writer
        """
        self.db_path = db_path
        self.max_attempts = max_attempts
        self.retry_backoff_seconds = retry_backoff_seconds
        self.busy_timeout_seconds = busy_timeout_seconds
        self.conn = None
        self._is_connected = False
        self._lock = threading.RLock()

        self.logger = logging.getLogger(self.__class__.__name__)

        if auto_connect:
            self.connect()
            self.initialize_schema()

    @classmethod
    def from_config(cls, db_config: Dict[str, Any], auto_connect: bool = True) -> "DocumentStore":
        """Build a store from the `database` config section."""
        return cls(
            db_config["path"],
            auto_connect=auto_connect,
            max_attempts=db_config.get("max_transaction_attempts", DEFAULT_MAX_ATTEMPTS),
            retry_backoff_seconds=db_config.get("retry_backoff_seconds", DEFAULT_RETRY_BACKOFF_SECONDS),
            busy_timeout_seconds=db_config.get("busy_timeout_seconds", DEFAULT_BUSY_TIMEOUT_SECONDS),
        )

    def connect(self) -> sqlite3.Connection:
        """
        Open the SQLite connection

        Raises:
            ConnectionError: the database could not be opened
        """
        try:
            if self.conn is not None:
                self.logger.warning("Store already connected, closing the existing connection first")
                self.close()

            db_dir = os.path.dirname(self.db_path)
            if db_dir and not os.path.exists(db_dir):
                os.makedirs(db_dir, exist_ok=True)
                self.logger.info(f"Created database directory: {db_dir}")

            self.conn = sqlite3.connect(
                self.db_path,
                check_same_thread=False,
                isolation_level=None,
                timeout=self.busy_timeout_seconds,
            )
            self._is_connected = True
            self.logger.info(f"Connected to document store: {self.db_path}")

            self._configure_database()
            return self.conn

        except sqlite3.Error as e:
            self.logger.error(f"Failed to connect to document store: {str(e)}")
            raise ConnectionError(f"Cannot open document store {self.db_path}: {str(e)}")

    def close(self):
        if self.conn is not None:
            try:
                self.conn.close()
                self.logger.info("Document store connection closed")
            except sqlite3.Error as e:
                self.logger.error(f"Error while closing document store: {str(e)}")
            finally:
                self.conn = None
                self._is_connected = False

    def _configure_database(self):
        pragmas = [
            "PRAGMA journal_mode = WAL",
            "PRAGMA synchronous = NORMAL",
            f"PRAGMA busy_timeout = {int(self.busy_timeout_seconds * 1000)}",
            "PRAGMA temp_store = MEMORY",
        ]
        for pragma in pragmas:
            try:
                self.conn.execute(pragma)
            except sqlite3.Error as e:
                self.logger.warning(f"Could not apply {pragma}: {str(e)}")

    def initialize_schema(self):
        """Create the documents table if it is missing."""
        self.ensure_connected()
        with self._lock:
            self.conn.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    collection VARCHAR(64) NOT NULL,
                    doc_id VARCHAR(64) NOT NULL,
                    data TEXT NOT NULL,
                    version INTEGER NOT NULL DEFAULT 1,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (collection, doc_id)
                )
            """)
        self.logger.debug("Document schema ready")

    def is_connected(self) -> bool:
        return self._is_connected and self.conn is not None

    def ensure_connected(self):
        """
        Raises:
            ConnectionError: connect() has not been called
        """
        if not self.is_connected():
            raise ConnectionError("Document store is not connected, call connect() first")

    # Low-level reads

    def _json_path(self, field_name: str) -> str:
        if not _FIELD_PATTERN.match(field_name):
            raise ValueError(f"Invalid field name: {field_name!r}")
        return f"$.{field_name}"

    @staticmethod
    def _bind(value: Any) -> Any:
        if isinstance(value, Enum):
            return value.value
        if isinstance(value, datetime):
            return to_iso(value)
        return value

    @staticmethod
    def _json_default(value: Any) -> Any:
        if isinstance(value, (Enum, datetime)):
            return DocumentStore._bind(value)
        raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")

    def _fetch(self, collection: str, doc_id: str) -> Optional[Document]:
        self.ensure_connected()
        with self._lock:
            row = self.conn.execute(
                "SELECT doc_id, data, version FROM documents WHERE collection = ? AND doc_id = ?",
                [collection, doc_id],
            ).fetchone()
        if not row:
            return None
        return Document(row[0], json.loads(row[1]), row[2])

    def _select(self, collection: str, filters: Sequence[Filter],
                order_by: Optional[str], descending: bool,
                limit: Optional[int]) -> List[Document]:
        self.ensure_connected()
        clauses = ["collection = ?"]
        params: List[Any] = [collection]

        for field_name, op, value in filters:
            path = self._json_path(field_name)
            if op in ("==", "!=") and value is None:
                clauses.append(f"json_extract(data, ?) IS {'NOT ' if op == '!=' else ''}NULL")
                params.append(path)
            elif op in _COMPARISONS:
                clauses.append(f"json_extract(data, ?) {_COMPARISONS[op]} ?")
                params.extend([path, self._bind(value)])
            elif op == "in":
                values = [self._bind(v) for v in value]
                if not values:
                    clauses.append("0")
                    continue
                placeholders = ",".join("?" for _ in values)
                clauses.append(f"json_extract(data, ?) IN ({placeholders})")
                params.append(path)
                params.extend(values)
            elif op == "array-contains":
                clauses.append(
                    "EXISTS (SELECT 1 FROM json_each(documents.data, ?) WHERE json_each.value = ?)"
                )
                params.extend([path, self._bind(value)])
            else:
                raise ValueError(f"Unsupported query operator: {op}")

        sql = "SELECT doc_id, data, version FROM documents WHERE " + " AND ".join(clauses)
        if order_by:
            sql += f" ORDER BY json_extract(data, ?) {'DESC' if descending else 'ASC'}, doc_id"
            params.append(self._json_path(order_by))
        else:
            sql += " ORDER BY doc_id"
        if limit:
            sql += " LIMIT ?"
            params.append(int(limit))

        with self._lock:
            rows = self.conn.execute(sql, params).fetchall()
        return [Document(row[0], json.loads(row[1]), row[2]) for row in rows]

    # Transactions

    def _next_transaction_id(self) -> str:
        return f"{datetime.now().strftime('%Y%m%d%H%M%S%f')}-{uuid.uuid4().hex[:6]}"

    def _find_conflict(self, txn: Transaction) -> Optional[str]:
        for (collection, doc_id), seen_version in txn._reads.items():
            current = self._fetch(collection, doc_id)
            current_version = current.version if current else 0
            if current_version != seen_version:
                return f"{collection}/{doc_id} changed (v{seen_version} -> v{current_version})"

        for read in txn._queries:
            docs = self._select(read.collection, read.filters, read.order_by,
                                read.descending, read.limit)
            if {doc.id: doc.version for doc in docs} != read.observed:
                return f"query on {read.collection} {list(read.filters)} changed"
        return None

    def _apply_write(self, write: _Write):
        current = self._fetch(write.collection, write.doc_id)

        if write.op == "delete":
            self.conn.execute(
                "DELETE FROM documents WHERE collection = ? AND doc_id = ?",
                [write.collection, write.doc_id],
            )
            return

        if write.op == "create":
            if current is not None:
                raise TransactionConflict(f"{write.collection}/{write.doc_id} already exists")
            data = write.data
        elif write.op == "update":
            if current is None:
                raise NotFoundError(f"{write.collection}/{write.doc_id} does not exist")
            data = {**current.data, **write.data}
        elif write.merge and current is not None:
            data = {**current.data, **write.data}
        else:
            data = write.data

        payload = json.dumps(data, ensure_ascii=False, default=self._json_default)
        if current is None:
            self.conn.execute(
                "INSERT INTO documents (collection, doc_id, data, version) VALUES (?, ?, ?, 1)",
                [write.collection, write.doc_id, payload],
            )
        else:
            self.conn.execute("""
                UPDATE documents
                SET data = ?, version = version + 1, updated_at = CURRENT_TIMESTAMP
                WHERE collection = ? AND doc_id = ?
            """, [payload, write.collection, write.doc_id])

    def _commit(self, txn: Transaction):
        """
        Validate and apply one attempt atomically

        Raises:
            TransactionConflict: something the attempt read has changed
        """
        if not txn.has_writes:
            return

        with self._lock:
            self.conn.execute("BEGIN IMMEDIATE")
            try:
                conflict = self._find_conflict(txn)
                if conflict:
                    raise TransactionConflict(conflict)
                for write in txn._writes:
                    self._apply_write(write)
                self.conn.execute("COMMIT")
            except BaseException:
                self.conn.execute("ROLLBACK")
                raise

    def _backoff(self, attempt: int):
        if self.retry_backoff_seconds > 0:
            time.sleep(self.retry_backoff_seconds * attempt * (0.5 + random.random()))

    def run_transaction(self, fn: Callable[[Transaction], Any],
                        max_attempts: Optional[int] = None) -> Any:
        """
        Run `fn` as an all-or-nothing transaction

        `fn` receives a fresh Transaction on every attempt and must re-check
        its preconditions from the reads it makes; it may be invoked several
        times. Exceptions raised by `fn` abort the transaction without
        writing anything and are not retried.

        Args:
            fn: transaction body
            max_attempts: overrides the store-wide retry budget

        Returns:
            The value returned by the committed attempt

        Raises:
            TransactionAbortedError: every attempt hit a write conflict
        """
        self.ensure_connected()
        attempts = max_attempts or self.max_attempts
        label = getattr(fn, "__name__", "transaction")

        for attempt in range(1, attempts + 1):
            txn = Transaction(self, self._next_transaction_id(), attempt)
            result = fn(txn)
            try:
                self._commit(txn)
            except TransactionConflict as conflict:
                self.logger.info(
                    f"Transaction {txn.transaction_id} ({label}) conflict on attempt "
                    f"{attempt}/{attempts}: {conflict}"
                )
                self._backoff(attempt)
                continue

            self.logger.debug(f"Transaction {txn.transaction_id} ({label}) committed")
            return result

        self.logger.warning(f"Transaction {label} aborted after {attempts} conflicting attempts")
        raise TransactionAbortedError(f"Transaction {label} aborted after repeated conflicts")

    # Non-transactional helpers

    def get_document(self, collection: str, doc_id: str) -> Optional[Document]:
        return self._fetch(collection, doc_id)

    def query_documents(self, collection: str, filters: Iterable[Filter] = (),
                        order_by: Optional[str] = None, descending: bool = False,
                        limit: Optional[int] = None) -> List[Document]:
        return self._select(collection, tuple(filters), order_by, descending, limit)

    def set_document(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = True):
        """Write one document unconditionally (last write wins)."""
        def write_document(txn: Transaction):
            txn.set(collection, doc_id, data, merge=merge)

        self.run_transaction(write_document)

    # Integrity checks

    def find_integrity_issues(self) -> List[str]:
        """
        Check the pooling invariants across the whole store

        Returns:
            Human-readable descriptions of every violation found
        """
        issues = []
        open_groups: Dict[Tuple[str, str], List[str]] = {}

        for group in self.query_documents("pair_groups"):
            filled = group.get("filled_count", 0)
            target = group.get("target_size", 0)
            if not 0 <= filled <= target:
                issues.append(f"pair group {group.id} has filled_count {filled} outside 0..{target}")
            if group.get("status") == "open":
                key = (group.get("hall_id"), group.get("window_type"))
                open_groups.setdefault(key, []).append(group.id)
            else:
                runs = self.query_documents("runs", [("pair_group_id", "==", group.id)])
                if len(runs) != 1:
                    issues.append(f"filled pair group {group.id} has {len(runs)} runs")

        for (hall_id, window_type), group_ids in open_groups.items():
            if len(group_ids) > 1:
                issues.append(
                    f"{len(group_ids)} open pair groups for {hall_id}/{window_type}: {group_ids}"
                )

        payments_per_run: Dict[str, int] = {}
        for payment in self.query_documents("payments", [("run_id", "!=", None)]):
            run_id = payment.get("run_id")
            payments_per_run[run_id] = payments_per_run.get(run_id, 0) + 1
        for run_id, count in payments_per_run.items():
            if count > 1:
                issues.append(f"run {run_id} has {count} payment records")

        return issues

    def check_integrity(self):
        """
        Raises:
            RuntimeError: at least one invariant is violated
        """
        self.ensure_connected()
        self.logger.info("Starting document store integrity check")
        issues = self.find_integrity_issues()
        if issues:
            error_msg = "Integrity check found problems:\n" + "\n".join(issues)
            self.logger.error(error_msg)
            raise RuntimeError(error_msg)
        self.logger.info("Integrity check passed")

    def __enter__(self):
        if not self.is_connected():
            self.connect()
            self.initialize_schema()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def __del__(self):
        if self.is_connected():
            self.close()
