import json
import os
import sqlite3

from shared.clients.store.StoreClientInterface import OrderBy, StoreClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.document import VectorDocument, VectorMetadata
from shared.models.search import VectorFilter

TABLE = "vectors"

_SCHEMA = f"""
CREATE TABLE IF NOT EXISTS {TABLE} (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    content TEXT NOT NULL,
    embedding TEXT NOT NULL,
    normalized_embedding TEXT,
    norm REAL,
    type TEXT NOT NULL,
    session_id TEXT,
    file_id TEXT,
    url TEXT,
    message_id TEXT,
    timestamp INTEGER NOT NULL,
    metadata TEXT NOT NULL
)
"""

_INDEXED_COLUMNS = ("type", "session_id", "file_id", "url", "message_id", "timestamp")

_COLUMNS = "id, content, embedding, normalized_embedding, norm, metadata"


class StoreClientSqlite(StoreClientInterface):
    """Durable store backed by a single SQLite file.

    Filterable metadata fields are mirrored into indexed columns; the full
    metadata and the embeddings are kept as JSON. AUTOINCREMENT guarantees
    that ids are never reused.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._path = self.get_config_val("PATH", default="data/vectors.db", val_type="string")
        self._conn: sqlite3.Connection | None = None

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Sqlite"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="PATH", val_type="string", default="data/vectors.db"),
        ]

    ##########################################
    ############### LIFECYCLE ################
    ##########################################

    async def boot(self) -> None:
        if self._conn is not None:
            return
        if self._path != ":memory:":
            parent = os.path.dirname(os.path.abspath(self._path))
            os.makedirs(parent, exist_ok=True)
        self._conn = sqlite3.connect(self._path, timeout=10.0)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")
        self._conn.execute(_SCHEMA)
        for column in _INDEXED_COLUMNS:
            self._conn.execute(f"CREATE INDEX IF NOT EXISTS idx_{TABLE}_{column} ON {TABLE} ({column})")
        self._conn.commit()
        self.logging.info("SQLite vector store opened at '%s'.", self._path)

    async def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    async def do_healthcheck(self) -> bool:
        try:
            self._connection().execute("SELECT 1").fetchone()
        except (sqlite3.Error, RuntimeError) as e:
            self.logging.warning("SQLite healthcheck failed: %s", e)
            return False
        return True

    ##########################################
    ################ HELPERS #################
    ##########################################

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("SQLite store not initialised. Call boot() before making requests.")
        return self._conn

    @staticmethod
    def _where(filters: VectorFilter | None) -> tuple[str, list]:
        if filters is None or filters.is_empty():
            return "", []
        clauses: list[str] = []
        params: list = []
        for column in ("type", "session_id", "url", "message_id"):
            value = getattr(filters, column)
            if value is not None:
                clauses.append(f"{column} = ?")
                params.append(value)
        if isinstance(filters.file_id, list):
            if not filters.file_id:
                clauses.append("0")
            else:
                clauses.append(f"file_id IN ({', '.join('?' for _ in filters.file_id)})")
                params.extend(filters.file_id)
        elif filters.file_id is not None:
            clauses.append("file_id = ?")
            params.append(filters.file_id)
        return " WHERE " + " AND ".join(clauses), params

    @staticmethod
    def _row_to_doc(row: tuple) -> VectorDocument:
        doc_id, content, embedding, normalized, norm, metadata = row
        return VectorDocument(
            id=doc_id,
            content=content,
            embedding=json.loads(embedding),
            normalized_embedding=json.loads(normalized) if normalized else None,
            norm=norm,
            metadata=VectorMetadata.model_validate_json(metadata),
        )

    def _delete_ids(self, ids: list[int]) -> int:
        if not ids:
            return 0
        conn = self._connection()
        cursor = conn.executemany(f"DELETE FROM {TABLE} WHERE id = ?", [(i,) for i in ids])
        conn.commit()
        return cursor.rowcount

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_add(self, doc: VectorDocument) -> int:
        meta = doc.metadata
        conn = self._connection()
        cursor = conn.execute(
            f"""
            INSERT INTO {TABLE}
                (content, embedding, normalized_embedding, norm, type, session_id, file_id, url, message_id, timestamp, metadata)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                doc.content,
                json.dumps(doc.embedding),
                json.dumps(doc.normalized_embedding) if doc.normalized_embedding is not None else None,
                doc.norm,
                meta.type,
                meta.session_id,
                meta.file_id,
                meta.url,
                meta.message_id,
                meta.timestamp,
                meta.model_dump_json(),
            ),
        )
        conn.commit()
        return int(cursor.lastrowid)

    async def do_get(self, doc_id: int) -> VectorDocument | None:
        row = self._connection().execute(f"SELECT {_COLUMNS} FROM {TABLE} WHERE id = ?", (doc_id,)).fetchone()
        return self._row_to_doc(row) if row else None

    async def do_find(
        self,
        filters: VectorFilter | None = None,
        order_by: OrderBy = "id",
        offset: int = 0,
        limit: int | None = None,
        after_id: int | None = None,
        after_timestamp: int | None = None,
    ) -> list[VectorDocument]:
        where, params = self._where(filters)
        cursor = self._cursor_key(order_by, after_id, after_timestamp)
        if cursor is not None:
            clause = "(timestamp, id) > (?, ?)" if order_by == "timestamp" else "id > ?"
            where = f"{where} AND {clause}" if where else f" WHERE {clause}"
            params = [*params, *cursor]
        order = "timestamp ASC, id ASC" if order_by == "timestamp" else "id ASC"
        sql = f"SELECT {_COLUMNS} FROM {TABLE}{where} ORDER BY {order} LIMIT ? OFFSET ?"
        params = [*params, -1 if limit is None else limit, offset]
        rows = self._connection().execute(sql, params).fetchall()
        return [self._row_to_doc(row) for row in rows]

    async def do_count(self, filters: VectorFilter | None = None) -> int:
        where, params = self._where(filters)
        return int(self._connection().execute(f"SELECT COUNT(*) FROM {TABLE}{where}", params).fetchone()[0])

    async def do_delete(self, doc_id: int) -> bool:
        return self._delete_ids([doc_id]) > 0

    async def do_bulk_delete(self, doc_ids: list[int]) -> int:
        return self._delete_ids(sorted(set(doc_ids)))

    async def do_clear(self) -> int:
        conn = self._connection()
        cursor = conn.execute(f"DELETE FROM {TABLE}")
        conn.commit()
        return cursor.rowcount
