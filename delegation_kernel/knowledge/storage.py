"""
Storage backends for the Knowledge Store.

Every backend offers the same small capability set: upsert, select by
equality filter, count, case-insensitive substring search and an atomic-ish
counter increment. Records are flat dicts; JSON-valued columns are stored as
JSON text so that both backends share one record shape.

- LocalStorage: in-process SQLite, used as the fallback (and in local-only mode)
- RemoteStorage: PostgREST-style REST backend over httpx
- FallbackStorage: tries the remote first, degrades to local on BackendUnavailable
"""

import json
import logging
import sqlite3
import threading
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

import httpx

logger = logging.getLogger(__name__)

# (column, descending)
OrderBy = Sequence[Tuple[str, bool]]


class BackendUnavailable(Exception):
    """Raised when a storage backend cannot be reached or rejects a call."""
    pass


# --- Record schema shared by all backends ---

TABLES: Dict[str, Dict[str, str]] = {
    "knowledge_base": {
        "id": "TEXT PRIMARY KEY",
        "category": "TEXT NOT NULL",
        "key": "TEXT NOT NULL",
        "value": "TEXT NOT NULL",
        "confidence_score": "REAL NOT NULL DEFAULT 1.0",
        "source_agent": "TEXT",
        "created_at": "TEXT NOT NULL",
        "updated_at": "TEXT NOT NULL",
        "access_count": "INTEGER NOT NULL DEFAULT 0",
        "tags": "TEXT NOT NULL DEFAULT '[]'",
        "relationships": "TEXT NOT NULL DEFAULT '{}'",
    },
    "agent_memory": {
        "id": "TEXT PRIMARY KEY",
        "agent_id": "TEXT NOT NULL",
        "memory_type": "TEXT NOT NULL",
        "memory_data": "TEXT NOT NULL",
        "priority": "INTEGER NOT NULL DEFAULT 5",
        "created_at": "TEXT NOT NULL",
        "last_accessed": "TEXT NOT NULL",
        "access_frequency": "INTEGER NOT NULL DEFAULT 1",
    },
    "learning_patterns": {
        "id": "TEXT PRIMARY KEY",
        "user_id": "TEXT NOT NULL",
        "pattern_type": "TEXT NOT NULL",
        "pattern_data": "TEXT NOT NULL",
        "effectiveness_score": "REAL NOT NULL DEFAULT 0.5",
        "usage_count": "INTEGER NOT NULL DEFAULT 1",
        "created_at": "TEXT NOT NULL",
        "updated_at": "TEXT NOT NULL",
    },
    "activity_logs": {
        "id": "TEXT PRIMARY KEY",
        "agent_id": "TEXT",
        "activity": "TEXT",
        "details": "TEXT NOT NULL DEFAULT '{}'",
        "timestamp": "TEXT NOT NULL",
    },
    "agents": {
        "id": "TEXT PRIMARY KEY",
        "name": "TEXT NOT NULL",
        "type": "TEXT NOT NULL",
        "status": "TEXT NOT NULL DEFAULT 'idle'",
        "config": "TEXT NOT NULL DEFAULT '{}'",
        "memory_allocated": "INTEGER NOT NULL DEFAULT 0",
        "updated_at": "TEXT NOT NULL",
    },
}

JSON_COLUMNS: Dict[str, Tuple[str, ...]] = {
    "knowledge_base": ("value", "tags", "relationships"),
    "agent_memory": ("memory_data",),
    "learning_patterns": ("pattern_data",),
    "activity_logs": ("details",),
    "agents": ("config",),
}


def _check_columns(table: str, columns) -> None:
    """Reject unknown tables/columns. This is a caller bug, not a backend outage."""
    schema = TABLES.get(table)
    if schema is None:
        raise ValueError(f"Unknown table: {table}")
    for column in columns:
        if column not in schema:
            raise ValueError(f"Unknown column {column!r} for table {table}")


def encode_record(table: str, record: dict) -> dict:
    """Serialize JSON-valued columns to text."""
    _check_columns(table, record.keys())
    encoded = dict(record)
    for column in JSON_COLUMNS.get(table, ()):
        if column in encoded:
            encoded[column] = json.dumps(
                encoded[column], ensure_ascii=False, default=str
            )
    return encoded


def escape_like(term: str) -> str:
    """Make LIKE wildcards in a search term match literally (escape char: backslash)."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def contains_term(row: dict, term: str, columns: Sequence[str]) -> bool:
    """Case-insensitive substring test over the stored text of a row."""
    needle = term.lower()
    return any(needle in str(row.get(c, "")).lower() for c in columns)


def decode_record(table: str, row: dict) -> dict:
    """Inverse of encode_record."""
    decoded = dict(row)
    for column in JSON_COLUMNS.get(table, ()):
        raw = decoded.get(column)
        if isinstance(raw, str):
            decoded[column] = json.loads(raw)
    return decoded


class Storage(Protocol):
    """Persistence capability required by the Knowledge Store."""

    def upsert(self, table: str, record: dict) -> None: ...

    def select(
        self,
        table: str,
        filters: Optional[dict] = None,
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> List[dict]: ...

    def count(self, table: str, filters: Optional[dict] = None) -> int: ...

    def search(
        self,
        table: str,
        term: str,
        columns: Sequence[str],
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> List[dict]: ...

    def increment(self, table: str, record_id: str, column: str) -> Optional[int]: ...


class LocalStorage:
    """
    In-process SQLite storage.
    Non-durable by default (":memory:"); pass a file path to keep data.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._init_schema()

    def _init_schema(self) -> None:
        """Create all tables if they don't exist."""
        with self._lock:
            for table, columns in TABLES.items():
                body = ",\n".join(f"{name} {ddl}" for name, ddl in columns.items())
                self._conn.execute(f"CREATE TABLE IF NOT EXISTS {table} ({body})")
            self._conn.execute(
                "CREATE UNIQUE INDEX IF NOT EXISTS idx_knowledge_category_key "
                "ON knowledge_base(category, key)"
            )
            self._conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_memory_agent ON agent_memory(agent_id)"
            )
            self._conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_patterns_user ON learning_patterns(user_id)"
            )
            self._conn.commit()

    def upsert(self, table: str, record: dict) -> None:
        encoded = encode_record(table, record)
        columns = list(encoded.keys())
        placeholders = ", ".join("?" for _ in columns)
        with self._lock:
            self._conn.execute(
                f"INSERT OR REPLACE INTO {table} ({', '.join(columns)}) "
                f"VALUES ({placeholders})",
                [encoded[c] for c in columns],
            )
            self._conn.commit()

    def select(
        self,
        table: str,
        filters: Optional[dict] = None,
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> List[dict]:
        filters = filters or {}
        _check_columns(table, filters.keys())
        where, params = self._where(filters)
        sql = f"SELECT * FROM {table}{where}{self._order(table, order_by)}"
        return self._fetch(table, sql, params, limit)

    def count(self, table: str, filters: Optional[dict] = None) -> int:
        filters = filters or {}
        _check_columns(table, filters.keys())
        where, params = self._where(filters)
        with self._lock:
            row = self._conn.execute(
                f"SELECT COUNT(*) FROM {table}{where}", params
            ).fetchone()
        return row[0]

    def search(
        self,
        table: str,
        term: str,
        columns: Sequence[str],
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> List[dict]:
        _check_columns(table, columns)
        pattern = f"%{escape_like(term)}%"
        where = " OR ".join(f"{c} LIKE ? ESCAPE '\\'" for c in columns)
        sql = f"SELECT * FROM {table} WHERE ({where}){self._order(table, order_by)}"
        return self._fetch(table, sql, [pattern] * len(columns), limit)

    def increment(self, table: str, record_id: str, column: str) -> Optional[int]:
        _check_columns(table, [column])
        with self._lock:
            cursor = self._conn.execute(
                f"UPDATE {table} SET {column} = {column} + 1 WHERE id = ?",
                (record_id,),
            )
            self._conn.commit()
            if cursor.rowcount == 0:
                return None
            row = self._conn.execute(
                f"SELECT {column} FROM {table} WHERE id = ?", (record_id,)
            ).fetchone()
        return row[0]

    def close(self) -> None:
        self._conn.close()

    @staticmethod
    def _where(filters: dict) -> Tuple[str, list]:
        if not filters:
            return "", []
        clause = " AND ".join(f"{c} = ?" for c in filters)
        return f" WHERE {clause}", list(filters.values())

    @staticmethod
    def _order(table: str, order_by: Optional[OrderBy]) -> str:
        if not order_by:
            return ""
        _check_columns(table, [c for c, _ in order_by])
        parts = [f"{c} {'DESC' if desc else 'ASC'}" for c, desc in order_by]
        return " ORDER BY " + ", ".join(parts)

    def _fetch(self, table: str, sql: str, params: list, limit: Optional[int]) -> List[dict]:
        if limit is not None:
            sql += " LIMIT ?"
            params = list(params) + [int(limit)]
        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [decode_record(table, dict(row)) for row in rows]


class RemoteStorage:
    """
    REST storage speaking the PostgREST dialect (as exposed by Supabase).

    Any transport error or non-2xx response surfaces as BackendUnavailable.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 5.0,
        client: Optional[httpx.Client] = None,
    ):
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["apikey"] = api_key
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = client or httpx.Client(
            base_url=base_url.rstrip("/"), headers=headers, timeout=timeout
        )

    def _request(self, method: str, table: str, **kwargs) -> httpx.Response:
        try:
            response = self._client.request(method, f"/rest/v1/{table}", **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise BackendUnavailable(f"{method} {table} failed: {e}") from e
        return response

    def _rows(
        self,
        response: httpx.Response,
        table: str,
        keep: Optional[Callable[[dict], bool]] = None,
    ) -> List[dict]:
        """
        Decode a row-list body, optionally filtering the raw rows first.
        A body that is not a list of rows means the remote is unusable.
        """
        try:
            rows = response.json()
            if not isinstance(rows, list):
                raise ValueError(f"expected a list of rows, got {type(rows).__name__}")
            if keep is not None:
                rows = [row for row in rows if keep(row)]
            return [decode_record(table, row) for row in rows]
        except (ValueError, TypeError, AttributeError) as e:
            raise BackendUnavailable(f"Malformed response from {table}: {e}") from e

    def upsert(self, table: str, record: dict) -> None:
        self._request(
            "POST",
            table,
            json=encode_record(table, record),
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )

    def select(
        self,
        table: str,
        filters: Optional[dict] = None,
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> List[dict]:
        params = self._params(table, filters, order_by, limit)
        response = self._request("GET", table, params=params)
        return self._rows(response, table)

    def count(self, table: str, filters: Optional[dict] = None) -> int:
        params = self._params(table, filters, None, 1)
        params["select"] = "id"
        response = self._request(
            "GET", table, params=params, headers={"Prefer": "count=exact"}
        )
        content_range = response.headers.get("content-range", "")
        total = content_range.rpartition("/")[2]
        if total.isdigit():
            return int(total)
        return len(self._rows(response, table))

    def search(
        self,
        table: str,
        term: str,
        columns: Sequence[str],
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> List[dict]:
        _check_columns(table, columns)
        params = self._params(table, None, order_by, limit)
        # "*" is the PostgREST wildcard and cannot be escaped; it is widened
        # to "_" here and the rows are re-checked for the literal term below.
        pattern = escape_like(term).replace("*", "_")
        quoted = pattern.replace("\\", "\\\\").replace('"', '\\"')
        params["or"] = "(" + ",".join(f'{c}.ilike."*{quoted}*"' for c in columns) + ")"
        response = self._request("GET", table, params=params)
        return self._rows(response, table, lambda row: contains_term(row, term, columns))

    def increment(self, table: str, record_id: str, column: str) -> Optional[int]:
        _check_columns(table, [column])
        rows = self.select(table, {"id": record_id}, limit=1)
        if not rows:
            return None
        new_value = int(rows[0].get(column) or 0) + 1
        self._request(
            "PATCH",
            table,
            params={"id": f"eq.{record_id}"},
            json={column: new_value},
            headers={"Prefer": "return=minimal"},
        )
        return new_value

    def close(self) -> None:
        self._client.close()

    @staticmethod
    def _params(
        table: str,
        filters: Optional[dict],
        order_by: Optional[OrderBy],
        limit: Optional[int],
    ) -> Dict[str, Any]:
        filters = filters or {}
        _check_columns(table, filters.keys())
        params: Dict[str, Any] = {"select": "*"}
        for column, value in filters.items():
            params[column] = f"eq.{value}"
        if order_by:
            _check_columns(table, [c for c, _ in order_by])
            params["order"] = ",".join(
                f"{c}.{'desc' if desc else 'asc'}" for c, desc in order_by
            )
        if limit is not None:
            params["limit"] = int(limit)
        return params


class FallbackStorage:
    """
    Remote-first storage that degrades to local storage.

    Behavioral Contract:
    - Every call tries the remote first (unless running local-only)
    - Only BackendUnavailable triggers the fallback; other errors propagate
    - A write lands in exactly one backend, never both
    - select() and increment() also fall back on a remote miss
    - Data written locally during an outage is not synced back to the remote
    """

    def __init__(self, local: LocalStorage, remote: Optional[RemoteStorage] = None):
        self.local = local
        self.remote = remote
        self.degraded = remote is None

    @property
    def local_only(self) -> bool:
        return self.remote is None

    def _remote_call(self, operation: str, call):
        """Run a remote call. Returns (ok, result)."""
        if self.remote is None:
            return False, None
        try:
            result = call(self.remote)
        except BackendUnavailable as e:
            if not self.degraded:
                logger.warning("Remote storage unavailable, using local storage: %s", e)
            self.degraded = True
            logger.debug("Remote %s failed: %s", operation, e)
            return False, None
        if self.degraded:
            logger.info("Remote storage reachable again")
        self.degraded = False
        return True, result

    def upsert(self, table: str, record: dict) -> None:
        ok, _ = self._remote_call("upsert", lambda r: r.upsert(table, record))
        if not ok:
            self.local.upsert(table, record)

    def select(
        self,
        table: str,
        filters: Optional[dict] = None,
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> List[dict]:
        ok, rows = self._remote_call(
            "select", lambda r: r.select(table, filters, order_by, limit)
        )
        if ok and rows:
            return rows
        return self.local.select(table, filters, order_by, limit)

    def count(self, table: str, filters: Optional[dict] = None) -> int:
        ok, total = self._remote_call("count", lambda r: r.count(table, filters))
        if ok:
            return total
        return self.local.count(table, filters)

    def search(
        self,
        table: str,
        term: str,
        columns: Sequence[str],
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> List[dict]:
        ok, rows = self._remote_call(
            "search", lambda r: r.search(table, term, columns, order_by, limit)
        )
        if ok:
            return rows
        return self.local.search(table, term, columns, order_by, limit)

    def increment(self, table: str, record_id: str, column: str) -> Optional[int]:
        ok, value = self._remote_call(
            "increment", lambda r: r.increment(table, record_id, column)
        )
        if ok and value is not None:
            return value
        return self.local.increment(table, record_id, column)
