"""
PostgreSQL + pgvector client.

Translates record operations into SQL against one table per index:

    id TEXT PRIMARY KEY, payload JSONB, tags JSONB,
    embedding VECTOR(n), timestamp TIMESTAMPTZ

Statements are built with SQLAlchemy Core so they can be inspected and
compiled without a live database. Every operation checks a connection out of
the engine pool with ``async with`` and returns it on exit, including when
the caller cancels or abandons a stream.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, List, Optional, Sequence, Tuple

from pgvector.sqlalchemy import Vector
from sqlalchemy import Column, DateTime, MetaData, Select, Table, Text, delete, select, text
from sqlalchemy.dialects.postgresql import JSONB, insert
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine
from sqlalchemy.schema import CreateSchema, CreateTable, DropTable

from memory_vectordb.errors import ConnectionFailureError, DimensionMismatchError, IndexNotFoundError
from memory_vectordb.models import MemoryFilter, MemoryRecord

logger = logging.getLogger(__name__)

UNDEFINED_TABLE = "42P01"

SIMILARITY_COLUMN = "cosine_similarity"

_LIST_TABLES_SQL = text(
    """
    SELECT c.table_name
    FROM information_schema.columns c
    JOIN information_schema.tables t
        ON t.table_schema = c.table_schema AND t.table_name = c.table_name
    WHERE c.table_schema = :schema
        AND t.table_type = 'BASE TABLE'
        AND c.column_name = 'embedding'
        AND c.udt_name = 'vector'
    ORDER BY c.table_name
    """
)

# pgvector stores the dimension in the column typmod (-1 when unbounded)
_VECTOR_SIZE_SQL = text(
    """
    SELECT a.atttypmod
    FROM pg_attribute a
    WHERE a.attrelid = to_regclass(:qualified_name)
        AND a.attname = 'embedding'
        AND NOT a.attisdropped
    """
)


def build_table(schema: str, table_name: str, vector_size: Optional[int] = None) -> Table:
    """Table definition for an index, detached from any shared MetaData."""
    return Table(
        table_name,
        MetaData(schema=schema),
        Column("id", Text, primary_key=True),
        Column("payload", JSONB),
        Column("tags", JSONB),
        Column("embedding", Vector(vector_size)),
        Column("timestamp", DateTime(timezone=True)),
    )


def query_columns(table: Table, with_embeddings: bool) -> List[Column]:
    columns = [table.c.id, table.c.payload, table.c.tags, table.c.timestamp]
    if with_embeddings:
        columns.append(table.c.embedding)
    return columns


def tag_conditions(tags_column, filter: Optional[MemoryFilter]) -> list:
    """One JSONB containment predicate per filter pair: tags @> {"key": ["value"]}."""
    if filter is None:
        return []
    return [tags_column.contains({key: [value]}) for key, value in filter.pairs]


def build_list_statement(
    table: Table, filter: Optional[MemoryFilter], limit: Optional[int], with_embeddings: bool
) -> Select:
    stmt = (
        select(*query_columns(table, with_embeddings))
        .where(*tag_conditions(table.c.tags, filter))
        .order_by(table.c.timestamp.desc().nulls_last())
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    return stmt


def build_search_statement(
    table: Table,
    embedding: Sequence[float],
    filter: Optional[MemoryFilter],
    min_relevance: float,
    limit: Optional[int],
    with_embeddings: bool,
) -> Select:
    similarity = (1 - table.c.embedding.cosine_distance(list(embedding))).label(SIMILARITY_COLUMN)
    scored = select(*query_columns(table, with_embeddings), similarity).subquery("scored")

    stmt = (
        select(scored)
        .where(scored.c[SIMILARITY_COLUMN] >= min_relevance)
        .where(*tag_conditions(scored.c.tags, filter))
        .order_by(scored.c[SIMILARITY_COLUMN].desc())
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    return stmt


def build_upsert_statement(table: Table, record: MemoryRecord, timestamp: datetime):
    stmt = insert(table).values(
        id=record.id,
        payload=record.payload,
        tags=record.tags,
        embedding=record.vector.to_list() if record.vector is not None else None,
        timestamp=timestamp,
    )
    return stmt.on_conflict_do_update(
        index_elements=[table.c.id],
        set_={
            "payload": stmt.excluded.payload,
            "tags": stmt.excluded.tags,
            "embedding": stmt.excluded.embedding,
            "timestamp": stmt.excluded.timestamp,
        },
    )


def row_to_record(row: Any, with_embeddings: bool) -> MemoryRecord:
    data = row._mapping
    vector = None
    if with_embeddings and data.get("embedding") is not None:
        vector = [float(x) for x in data["embedding"]]

    return MemoryRecord(
        id=data["id"],
        payload=data["payload"] or {},
        tags=data["tags"] or {},
        vector=vector,
        timestamp=data["timestamp"],
    )


def _sqlstate(error: DBAPIError) -> Optional[str]:
    for candidate in (error.orig, getattr(error.orig, "__cause__", None)):
        if candidate is None:
            continue
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code:
            return code
    return None


class PostgresDbClient:
    """Async Postgres client for pgvector-backed index tables."""

    def __init__(
        self,
        engine: AsyncEngine,
        schema: str = "public",
        table_prefix: str = "",
        create_extension: bool = True,
    ):
        """
        Initialize the client.

        Args:
            engine: SQLAlchemy async engine (owns the connection pool)
            schema: Schema holding the index tables
            table_prefix: Prefix prepended to index names to form table names
            create_extension: Run CREATE EXTENSION IF NOT EXISTS vector before creating tables
        """
        self.engine = engine
        self.schema = schema
        self.table_prefix = table_prefix
        self.create_extension = create_extension

    def table_name(self, index: str) -> str:
        return f"{self.table_prefix}{index}"

    def table(self, index: str, vector_size: Optional[int] = None) -> Table:
        return build_table(self.schema, self.table_name(index), vector_size)

    def _qualified_name(self, index: str) -> str:
        return f'"{self.schema}"."{self.table_name(index)}"'

    @asynccontextmanager
    async def _connect(self, index: Optional[str] = None) -> AsyncIterator[AsyncConnection]:
        """Check out a pooled connection, translating backend errors."""
        try:
            async with self.engine.connect() as connection:
                yield connection
        except DBAPIError as e:
            if _sqlstate(e) == UNDEFINED_TABLE and index is not None:
                raise IndexNotFoundError(index) from e
            if isinstance(e, (OperationalError, InterfaceError)) or e.connection_invalidated:
                logger.error(f"Postgres connection failure: {e}")
                raise ConnectionFailureError(str(e)) from e
            raise
        except (OSError, asyncio.TimeoutError) as e:
            logger.error(f"Postgres connection failure: {e}")
            raise ConnectionFailureError(str(e)) from e

    async def _get_vector_size(self, connection: AsyncConnection, index: str) -> Optional[int]:
        """
        Read the embedding dimension of an index table from the catalog.

        Raises:
            IndexNotFoundError: If the table does not exist
        """
        result = await connection.execute(
            _VECTOR_SIZE_SQL, {"qualified_name": self._qualified_name(index)}
        )
        typmod = result.scalar_one_or_none()
        if typmod is None:
            raise IndexNotFoundError(index)
        return typmod if typmod > 0 else None

    async def create_table(self, index: str, vector_size: int) -> None:
        table = self.table(index, vector_size)
        async with self._connect(index) as connection:
            if self.create_extension:
                await connection.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
            if self.schema != "public":
                await connection.execute(CreateSchema(self.schema, if_not_exists=True))
            await connection.execute(CreateTable(table, if_not_exists=True))

            existing_size = await self._get_vector_size(connection, index)
            if existing_size is not None and existing_size != vector_size:
                await connection.rollback()
                raise DimensionMismatchError(
                    expected=existing_size,
                    actual=vector_size,
                    message=f"Index '{index}' already exists with vector size {existing_size}",
                )
            await connection.commit()

        logger.info(f"Created/verified table {self._qualified_name(index)} (vector_size={vector_size})")

    async def get_tables(self) -> AsyncIterator[str]:
        async with self._connect() as connection:
            result = await connection.stream(_LIST_TABLES_SQL, {"schema": self.schema})
            async for (table_name,) in result:
                if table_name.startswith(self.table_prefix):
                    yield table_name[len(self.table_prefix):]

    async def delete_table(self, index: str) -> None:
        async with self._connect(index) as connection:
            await connection.execute(DropTable(self.table(index), if_exists=True))
            await connection.commit()

        logger.info(f"Dropped table {self._qualified_name(index)}")

    async def upsert(self, index: str, record: MemoryRecord, timestamp: datetime) -> None:
        table = self.table(index)
        async with self._connect(index) as connection:
            vector_size = await self._get_vector_size(connection, index)
            if vector_size is not None and record.vector is not None and record.vector.size != vector_size:
                raise DimensionMismatchError(expected=vector_size, actual=record.vector.size)

            await connection.execute(build_upsert_statement(table, record, timestamp))
            await connection.commit()

    async def delete(self, index: str, key: str) -> int:
        table = self.table(index)
        async with self._connect(index) as connection:
            result = await connection.execute(delete(table).where(table.c.id == key))
            await connection.commit()
            return result.rowcount

    async def delete_batch(self, index: str, keys: Sequence[str]) -> int:
        if not keys:
            return 0

        table = self.table(index)
        async with self._connect(index) as connection:
            result = await connection.execute(delete(table).where(table.c.id.in_(list(keys))))
            await connection.commit()
            return result.rowcount

    async def read(self, index: str, key: str, with_embeddings: bool = False) -> Optional[MemoryRecord]:
        table = self.table(index)
        stmt = select(*query_columns(table, with_embeddings)).where(table.c.id == key)
        async with self._connect(index) as connection:
            row = (await connection.execute(stmt)).first()

        if row is None:
            return None
        return row_to_record(row, with_embeddings)

    async def read_batch(
        self, index: str, keys: Sequence[str], with_embeddings: bool = False
    ) -> AsyncIterator[MemoryRecord]:
        if not keys:
            return

        table = self.table(index)
        stmt = select(*query_columns(table, with_embeddings)).where(table.c.id.in_(list(keys)))
        async with self._connect(index) as connection:
            result = await connection.stream(stmt)
            async for row in result:
                yield row_to_record(row, with_embeddings)

    async def get_list(
        self,
        index: str,
        filter: Optional[MemoryFilter] = None,
        limit: Optional[int] = None,
        with_embeddings: bool = False,
    ) -> AsyncIterator[MemoryRecord]:
        stmt = build_list_statement(self.table(index), filter, limit, with_embeddings)
        async with self._connect(index) as connection:
            result = await connection.stream(stmt)
            async for row in result:
                yield row_to_record(row, with_embeddings)

    async def get_nearest_matches(
        self,
        index: str,
        embedding: Sequence[float],
        filter: Optional[MemoryFilter] = None,
        min_relevance: float = 0.0,
        limit: Optional[int] = None,
        with_embeddings: bool = False,
    ) -> AsyncIterator[Tuple[MemoryRecord, float]]:
        stmt = build_search_statement(
            self.table(index), embedding, filter, min_relevance, limit, with_embeddings
        )
        async with self._connect(index) as connection:
            vector_size = await self._get_vector_size(connection, index)
            if vector_size is not None and len(embedding) != vector_size:
                raise DimensionMismatchError(expected=vector_size, actual=len(embedding))

            result = await connection.stream(stmt)
            async for row in result:
                yield row_to_record(row, with_embeddings), float(row._mapping[SIMILARITY_COLUMN])
