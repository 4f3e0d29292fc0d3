import os
import sqlite3
import threading
from concurrent.futures import CancelledError, ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import List, Optional

from codecube.config import DEFAULT_STORE_TIMEOUT, SQLITE_BUSY_TIMEOUT, STORE_WORKERS
from codecube.utils import iso_now, log_error


class StoreError(Exception):
    """Base class for paste store failures."""


class NotFound(StoreError):
    def __init__(self, key: str):
        super().__init__(f"paste {key!r} not found")
        self.key = key


class StoreUnavailable(StoreError):
    pass


class PasteStore:
    """Key-value contract shared by every paste backend.

    Implementations must be safe to call from many threads at once.
    ``sync`` must be called before a read that has to observe writes made
    through another handle or process.
    """

    def get(self, key: str) -> str:
        raise NotImplementedError

    def set(self, key: str, content: str) -> None:
        raise NotImplementedError

    def sync(self) -> None:
        raise NotImplementedError

    def contains(self, key: str) -> bool:
        try:
            self.get(key)
        except NotFound:
            return False
        return True

    def close(self) -> None:
        pass


SCHEMA = (
    "CREATE TABLE IF NOT EXISTS pastes ("
    " id TEXT PRIMARY KEY,"
    " content TEXT NOT NULL,"
    " created_at TEXT NOT NULL"
    ")"
)


class SqliteStore(PasteStore):
    """Pastes in a SQLite database running in WAL mode.

    Each thread gets its own connection. Writes are single statements in
    their own transaction, so a reader sees either the old value or the new
    one and never a partial row.
    """

    def __init__(self, path: str, busy_timeout: float = SQLITE_BUSY_TIMEOUT):
        self.path = path
        self.busy_timeout = busy_timeout
        self._local = threading.local()
        self._lock = threading.Lock()
        self._connections: List[sqlite3.Connection] = []
        self._closed = False

        parent = os.path.dirname(os.path.abspath(path))
        try:
            os.makedirs(parent, exist_ok=True)
            conn = self._connection()
            with conn:
                conn.execute(SCHEMA)
        except (OSError, sqlite3.Error) as exc:
            self.close()
            raise StoreUnavailable(f"cannot open store at {path}: {exc}") from exc

    def _connection(self) -> sqlite3.Connection:
        if self._closed:
            raise StoreUnavailable("store is closed")
        conn: Optional[sqlite3.Connection] = getattr(self._local, "conn", None)
        if conn is not None:
            return conn
        conn = sqlite3.connect(self.path, timeout=self.busy_timeout, check_same_thread=False)
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
        except sqlite3.Error:
            conn.close()
            raise
        with self._lock:
            self._connections.append(conn)
        self._local.conn = conn
        return conn

    def get(self, key: str) -> str:
        try:
            row = self._connection().execute(
                "SELECT content FROM pastes WHERE id = ?", (key,)
            ).fetchone()
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"get failed: {exc}") from exc
        if row is None:
            raise NotFound(key)
        return row[0]

    def set(self, key: str, content: str) -> None:
        try:
            conn = self._connection()
            with conn:
                conn.execute(
                    "INSERT OR REPLACE INTO pastes (id, content, created_at) VALUES (?, ?, ?)",
                    (key, content, iso_now()),
                )
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"set failed: {exc}") from exc

    def contains(self, key: str) -> bool:
        try:
            row = self._connection().execute(
                "SELECT 1 FROM pastes WHERE id = ?", (key,)
            ).fetchone()
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"lookup failed: {exc}") from exc
        return row is not None

    def sync(self) -> None:
        # Ending any open transaction makes the next read start from the
        # latest commit of every other connection.
        try:
            conn = self._connection()
            conn.commit()
            conn.execute("SELECT count(*) FROM pastes WHERE 0").fetchone()
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"sync failed: {exc}") from exc

    def close(self) -> None:
        self._closed = True
        with self._lock:
            connections = list(self._connections)
            self._connections.clear()
        for conn in connections:
            try:
                conn.close()
            except sqlite3.Error as exc:
                log_error(f"store close error: {exc}")


class TimedStore(PasteStore):
    """Bounds every call on ``inner`` by ``timeout`` seconds.

    Calls run on a shared worker pool. On expiry the caller gets
    ``StoreUnavailable``; the abandoned call keeps running and either
    commits entirely or not at all.
    """

    def __init__(self, inner: PasteStore, timeout: float = DEFAULT_STORE_TIMEOUT, max_workers: int = STORE_WORKERS):
        self.inner = inner
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="codecube-store")

    def _call(self, name: str, *args):
        try:
            future = self._executor.submit(getattr(self.inner, name), *args)
        except RuntimeError as exc:
            raise StoreUnavailable(f"{name} rejected: {exc}") from exc
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeout as exc:
            raise StoreUnavailable(f"{name} timed out after {self.timeout:.1f}s") from exc
        except CancelledError as exc:
            raise StoreUnavailable(f"{name} cancelled, store is closing") from exc

    def get(self, key: str) -> str:
        return self._call("get", key)

    def set(self, key: str, content: str) -> None:
        self._call("set", key, content)

    def sync(self) -> None:
        self._call("sync")

    def contains(self, key: str) -> bool:
        return self._call("contains", key)

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
        self.inner.close()
