from __future__ import annotations

import copy
from collections import defaultdict
from contextlib import contextmanager
from typing import Any, DefaultDict, Dict, List, Mapping, Optional, Protocol

try:
    import psycopg2
    from psycopg2 import pool as psycopg2_pool
    from psycopg2.extras import Json
except ImportError:  # pragma: no cover - optional dependency
    psycopg2 = None  # type: ignore
    psycopg2_pool = None  # type: ignore
    Json = None  # type: ignore

Document = Dict[str, Any]


class DocumentStore(Protocol):
    def insert_many(self, collection: str, documents: List[Document]) -> int:
        ...

    def find(self, collection: str, filter: Optional[Mapping[str, Any]] = None, sort_key: Optional[str] = None) -> List[Document]:
        ...

    def find_one(self, collection: str, filter: Mapping[str, Any]) -> Optional[Document]:
        ...

    def update_one(self, collection: str, filter: Mapping[str, Any], values: Mapping[str, Any], upsert: bool = False) -> bool:
        ...


def _matches(doc: Document, filter: Optional[Mapping[str, Any]]) -> bool:
    if not filter:
        return True
    return all(key in doc and doc[key] == value for key, value in filter.items())


def _sort_value(doc: Document, key: str):
    value = doc.get(key)
    return (value is None, "" if value is None else str(value))


class InMemoryDocumentStore:
    """Process-local collections of JSON-like documents. Used by default and in tests."""

    def __init__(self):
        self._collections: DefaultDict[str, List[Document]] = defaultdict(list)

    def insert_many(self, collection: str, documents: List[Document]) -> int:
        self._collections[collection].extend(copy.deepcopy(d) for d in documents)
        return len(documents)

    def find(self, collection: str, filter: Optional[Mapping[str, Any]] = None, sort_key: Optional[str] = None) -> List[Document]:
        docs = [copy.deepcopy(d) for d in self._collections.get(collection, []) if _matches(d, filter)]
        if sort_key:
            docs.sort(key=lambda d: _sort_value(d, sort_key))
        return docs

    def find_one(self, collection: str, filter: Mapping[str, Any]) -> Optional[Document]:
        for doc in self._collections.get(collection, []):
            if _matches(doc, filter):
                return copy.deepcopy(doc)
        return None

    def update_one(self, collection: str, filter: Mapping[str, Any], values: Mapping[str, Any], upsert: bool = False) -> bool:
        for doc in self._collections.get(collection, []):
            if _matches(doc, filter):
                doc.update(copy.deepcopy(dict(values)))
                return True
        if upsert:
            self._collections[collection].append({**copy.deepcopy(dict(filter)), **copy.deepcopy(dict(values))})
            return True
        return False


class PostgresDocumentStore:
    """Postgres-backed document store: one JSONB row per document, keyed by collection."""

    def __init__(self, dsn: str, table: str = "documents", create_table: bool = True, minconn: int = 1, maxconn: int = 5):
        if psycopg2 is None or psycopg2_pool is None:
            raise ImportError("psycopg2-binary is required for PostgresDocumentStore")
        self.dsn = dsn
        self.table = table
        self._pool = psycopg2_pool.SimpleConnectionPool(minconn, maxconn, dsn)
        if create_table:
            self._ensure_table()

    @contextmanager
    def _connection(self):
        conn = self._pool.getconn()
        try:
            yield conn
        finally:
            self._pool.putconn(conn)

    def close(self) -> None:
        if self._pool:
            self._pool.closeall()

    def _ensure_table(self) -> None:
        ddl = f"""
        CREATE TABLE IF NOT EXISTS {self.table} (
            id BIGSERIAL PRIMARY KEY,
            collection TEXT NOT NULL,
            doc JSONB NOT NULL
        );
        CREATE INDEX IF NOT EXISTS {self.table}_collection_idx ON {self.table} (collection);
        """
        with self._connection() as conn, conn.cursor() as cur:
            cur.execute(ddl)
            conn.commit()

    def insert_many(self, collection: str, documents: List[Document]) -> int:
        if not documents:
            return 0
        sql = f"INSERT INTO {self.table} (collection, doc) VALUES (%s, %s)"
        with self._connection() as conn, conn.cursor() as cur:
            cur.executemany(sql, [(collection, Json(d)) for d in documents])
            conn.commit()
        return len(documents)

    def find(self, collection: str, filter: Optional[Mapping[str, Any]] = None, sort_key: Optional[str] = None) -> List[Document]:
        query = f"SELECT doc FROM {self.table} WHERE collection = %(collection)s AND doc @> %(filter)s"
        params: Dict[str, object] = {"collection": collection, "filter": Json(dict(filter or {}))}
        if sort_key:
            query += " ORDER BY doc->>%(sort_key)s NULLS LAST, id"
            params["sort_key"] = sort_key
        else:
            query += " ORDER BY id"
        with self._connection() as conn, conn.cursor() as cur:
            cur.execute(query, params)
            rows = cur.fetchall()
        return [r[0] for r in rows]

    def find_one(self, collection: str, filter: Mapping[str, Any]) -> Optional[Document]:
        query = f"SELECT doc FROM {self.table} WHERE collection = %s AND doc @> %s ORDER BY id LIMIT 1"
        with self._connection() as conn, conn.cursor() as cur:
            cur.execute(query, (collection, Json(dict(filter))))
            row = cur.fetchone()
        return row[0] if row else None

    def update_one(self, collection: str, filter: Mapping[str, Any], values: Mapping[str, Any], upsert: bool = False) -> bool:
        sql = f"""
        UPDATE {self.table} SET doc = doc || %(values)s
        WHERE id = (
            SELECT id FROM {self.table}
            WHERE collection = %(collection)s AND doc @> %(filter)s
            ORDER BY id LIMIT 1
        )
        """
        params = {"collection": collection, "filter": Json(dict(filter)), "values": Json(dict(values))}
        with self._connection() as conn, conn.cursor() as cur:
            cur.execute(sql, params)
            updated = cur.rowcount > 0
            if not updated and upsert:
                cur.execute(
                    f"INSERT INTO {self.table} (collection, doc) VALUES (%s, %s)",
                    (collection, Json({**dict(filter), **dict(values)})),
                )
                updated = True
            conn.commit()
        return updated
