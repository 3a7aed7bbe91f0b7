"""Embedding record storage: in-memory and PostgreSQL + pgvector."""

import logging
import os
import threading
from collections import Counter
from dataclasses import dataclass
from typing import Iterable, Optional

import numpy as np
import psycopg
from pgvector.psycopg import register_vector

from ..exceptions import NodeNotFoundError

logger = logging.getLogger(__name__)

MAX_SNIPPET_CHARS = 10000


def truncate_snippet(source: Optional[str], limit: int = MAX_SNIPPET_CHARS) -> Optional[str]:
    """Cap source text at limit characters, marking truncation with '...'."""
    if source is None or len(source) <= limit:
        return source
    return source[:limit] + "..."


@dataclass
class EmbeddingRecord:
    """One embedded element with the metadata needed to show it."""

    node_key: str
    file_path: str
    kind: str
    name: str
    package: str
    snippet: Optional[str]
    description: str
    vector: np.ndarray

    def to_dict(self) -> dict:
        """Convert to dictionary (without the vector)."""
        return {
            "nodeKey": self.node_key,
            "filePath": self.file_path,
            "type": self.kind,
            "name": self.name,
            "packageName": self.package,
            "sourceCodeSnippet": self.snippet,
            "description": self.description,
        }


class InMemoryVectorStore:
    """Embedding records keyed by element key, held in process memory."""

    def __init__(self, records: Optional[Iterable[EmbeddingRecord]] = None):
        self._records: dict[str, EmbeddingRecord] = {}
        self._lock = threading.Lock()
        for record in records or []:
            self.add(record)

    def __len__(self) -> int:
        return len(self._records)

    def delete_all(self) -> int:
        with self._lock:
            deleted = len(self._records)
            self._records.clear()
        return deleted

    def add(self, record: EmbeddingRecord) -> None:
        with self._lock:
            self._records[record.node_key] = record

    def get(self, node_key: str) -> EmbeddingRecord:
        """Look up a record by element key.

        Raises:
            NodeNotFoundError: if no record exists for the key
        """
        record = self._records.get(node_key)
        if record is None:
            raise NodeNotFoundError(node_key)
        return record

    def all(self) -> list[EmbeddingRecord]:
        with self._lock:
            return list(self._records.values())

    def list_by(
        self,
        kind: Optional[str] = None,
        package_prefix: Optional[str] = None,
    ) -> list[EmbeddingRecord]:
        """Records filtered by kind and/or package prefix."""
        return [
            r
            for r in self.all()
            if (kind is None or r.kind == kind)
            and (not package_prefix or r.package.startswith(package_prefix))
        ]

    def count(self) -> int:
        return len(self._records)

    def get_stats(self) -> dict:
        records = self.all()
        return {
            "total_records": len(records),
            "by_type": dict(Counter(r.kind for r in records)),
            "file_count": len({r.file_path for r in records}),
        }


class PgVectorStore:
    """Persist embedding records in PostgreSQL using pgvector."""

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        database: Optional[str] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        table_name: str = "code_embeddings",
        embedding_dimensions: int = 768,
    ):
        """Initialize the vector store.

        Args:
            host: PostgreSQL host (defaults to PGHOST env var or localhost)
            port: PostgreSQL port (defaults to PGPORT env var or 5432)
            database: Database name (defaults to PGDATABASE env var or javagraph)
            user: Database user (defaults to PGUSER env var or postgres)
            password: Database password (defaults to PGPASSWORD env var)
            table_name: Table name for storing records
            embedding_dimensions: Dimensions of embedding vectors
        """
        self.host = host or os.environ.get("PGHOST", "localhost")
        self.port = port or int(os.environ.get("PGPORT", "5432"))
        self.database = database or os.environ.get("PGDATABASE", "javagraph")
        self.user = user or os.environ.get("PGUSER", "postgres")
        self.password = password or os.environ.get("PGPASSWORD", "")
        self.table_name = table_name
        self.embedding_dimensions = embedding_dimensions

        self._conn = None

    @property
    def connection_string(self) -> str:
        return f"host={self.host} port={self.port} dbname={self.database} user={self.user} password={self.password}"

    def connect(self) -> None:
        """Establish database connection and register the vector type."""
        self._conn = psycopg.connect(self.connection_string)
        with self._conn.cursor() as cur:
            cur.execute("CREATE EXTENSION IF NOT EXISTS vector")
            self._conn.commit()
        register_vector(self._conn)

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def create_table(self) -> None:
        """Create the records table if missing."""
        with self._conn.cursor() as cur:
            cur.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.table_name} (
                    node_key TEXT PRIMARY KEY,
                    file_path TEXT NOT NULL,
                    kind TEXT NOT NULL,
                    name TEXT NOT NULL,
                    package_name TEXT NOT NULL,
                    source_snippet TEXT,
                    description TEXT,
                    embedding vector({self.embedding_dimensions}),
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            cur.execute(f"""
                CREATE INDEX IF NOT EXISTS {self.table_name}_package_idx
                ON {self.table_name} (package_name)
            """)
            self._conn.commit()

    def drop_table(self) -> None:
        with self._conn.cursor() as cur:
            cur.execute(f"DROP TABLE IF EXISTS {self.table_name}")
            self._conn.commit()

    def delete_all(self) -> int:
        """Delete every stored record.

        Returns:
            Number of rows deleted
        """
        with self._conn.cursor() as cur:
            cur.execute(f"DELETE FROM {self.table_name}")
            deleted = cur.rowcount
            self._conn.commit()
        return deleted

    def add(self, record: EmbeddingRecord) -> None:
        self.add_many([record])

    def add_many(self, records: list[EmbeddingRecord]) -> int:
        """Insert records, replacing any with the same key.

        Returns:
            Number of rows written
        """
        with self._conn.cursor() as cur:
            for record in records:
                cur.execute(
                    f"""
                    INSERT INTO {self.table_name}
                    (node_key, file_path, kind, name, package_name,
                     source_snippet, description, embedding)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    ON CONFLICT (node_key) DO UPDATE SET
                        file_path = EXCLUDED.file_path,
                        kind = EXCLUDED.kind,
                        name = EXCLUDED.name,
                        package_name = EXCLUDED.package_name,
                        source_snippet = EXCLUDED.source_snippet,
                        description = EXCLUDED.description,
                        embedding = EXCLUDED.embedding
                    """,
                    (
                        record.node_key,
                        record.file_path,
                        record.kind,
                        record.name,
                        record.package,
                        record.snippet,
                        record.description,
                        np.asarray(record.vector, dtype=np.float32),
                    ),
                )
            self._conn.commit()
        return len(records)

    def get(self, node_key: str) -> EmbeddingRecord:
        """Look up a record by element key.

        Raises:
            NodeNotFoundError: if no record exists for the key
        """
        rows = self._select("WHERE node_key = %s", [node_key])
        if not rows:
            raise NodeNotFoundError(node_key)
        return rows[0]

    def all(self) -> list[EmbeddingRecord]:
        return self._select("", [])

    def list_by(
        self,
        kind: Optional[str] = None,
        package_prefix: Optional[str] = None,
    ) -> list[EmbeddingRecord]:
        conditions = []
        params = []
        if kind:
            conditions.append("kind = %s")
            params.append(kind)
        if package_prefix:
            conditions.append("package_name LIKE %s")
            params.append(f"{package_prefix}%")
        where_clause = "WHERE " + " AND ".join(conditions) if conditions else ""
        return self._select(where_clause, params)

    def count(self) -> int:
        with self._conn.cursor() as cur:
            cur.execute(f"SELECT COUNT(*) FROM {self.table_name}")
            return cur.fetchone()[0]

    def get_stats(self) -> dict:
        with self._conn.cursor() as cur:
            cur.execute(f"SELECT COUNT(*) FROM {self.table_name}")
            total = cur.fetchone()[0]

            cur.execute(f"""
                SELECT kind, COUNT(*)
                FROM {self.table_name}
                GROUP BY kind
            """)
            by_type = dict(cur.fetchall())

            cur.execute(f"SELECT COUNT(DISTINCT file_path) FROM {self.table_name}")
            file_count = cur.fetchone()[0]

        return {
            "total_records": total,
            "by_type": by_type,
            "file_count": file_count,
        }

    def replace_all(self, records: list[EmbeddingRecord]) -> int:
        """Replace the stored set with records in one transaction."""
        with self._conn.cursor() as cur:
            cur.execute(f"DELETE FROM {self.table_name}")
        written = self.add_many(records)
        logger.info("Persisted %d embedding records to %s", written, self.table_name)
        return written

    def _select(self, where_clause: str, params: list) -> list[EmbeddingRecord]:
        with self._conn.cursor() as cur:
            cur.execute(
                f"""
                SELECT node_key, file_path, kind, name, package_name,
                       source_snippet, description, embedding
                FROM {self.table_name}
                {where_clause}
                ORDER BY node_key
                """,
                params,
            )
            rows = cur.fetchall()

        return [
            EmbeddingRecord(
                node_key=row[0],
                file_path=row[1],
                kind=row[2],
                name=row[3],
                package=row[4],
                snippet=row[5],
                description=row[6] or "",
                vector=np.asarray(row[7], dtype=np.float32),
            )
            for row in rows
        ]


def create_store(
    host: str = "localhost",
    port: int = 5432,
    database: str = "javagraph",
    user: str = "postgres",
    password: Optional[str] = None,
    table_name: str = "code_embeddings",
    embedding_dimensions: int = 768,
) -> PgVectorStore:
    """Factory function to create a PostgreSQL vector store.

    Args:
        host: PostgreSQL host
        port: PostgreSQL port
        database: Database name
        user: Database user
        password: Database password
        table_name: Table holding the records
        embedding_dimensions: Dimensions of embedding vectors

    Returns:
        Configured PgVectorStore instance
    """
    return PgVectorStore(
        host=host,
        port=port,
        database=database,
        user=user,
        password=password,
        table_name=table_name,
        embedding_dimensions=embedding_dimensions,
    )
