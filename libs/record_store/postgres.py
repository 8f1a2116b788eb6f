"""PostgreSQL implementation of the model record store.

Records live in the ``ai_model`` table (see ``SCHEMA_STATEMENTS``). Model ids
are stored as ``UUID``; ids that do not parse as UUIDs can never match a row
and are treated as absent without a round trip.

Connection management
- A shared asyncpg pool is created on demand and reused across calls
- Queries are funneled through ``_execute_query`` for uniform error handling
"""

import uuid
from typing import Any, List, Optional

import asyncpg
import structlog
from asyncpg import Pool

from .base import (
    ModelRecord,
    ModelRecordStore,
    ModelStatus,
    RecordStoreConflictError,
    RecordStoreConnectionError,
    RecordStoreNotFoundError,
    RecordStoreQueryError,
)

logger = structlog.get_logger("record_store.postgres")

SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS ai_model (
        id UUID PRIMARY KEY,
        name VARCHAR(255) NOT NULL,
        model_path VARCHAR(1024) NOT NULL,
        status VARCHAR(32) NOT NULL,
        backup_model_path VARCHAR(1024),
        metadata TEXT,
        created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP WITH TIME ZONE
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_ai_model_created_at ON ai_model(created_at);",
]

_COLUMNS = "id, name, model_path, status, backup_model_path, metadata, created_at, updated_at"


def _parse_id(model_id: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(model_id))
    except ValueError:
        return None


def _row_to_record(row: Any) -> ModelRecord:
    return ModelRecord(
        id=str(row["id"]),
        name=row["name"],
        artifact_location=row["model_path"],
        status=ModelStatus(row["status"]),
        backup_artifact_location=row["backup_model_path"],
        metadata=row["metadata"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class PostgresModelRecordStore(ModelRecordStore):
    """asyncpg-backed record store."""

    def __init__(
        self,
        dsn: str,
        pool_size: int = 10,
        command_timeout: int = 60,
    ):
        """Configure a PostgreSQL-backed record store.

        Parameters
        - dsn: PostgreSQL DSN including database and credentials
        - pool_size: Max size of asyncpg connection pool
        - command_timeout: Seconds to allow per DB command
        """
        self.dsn = dsn
        self.pool_size = pool_size
        self.command_timeout = command_timeout
        self._pool: Optional[Pool] = None

    async def _get_pool(self) -> Pool:
        """Get or create connection pool.

        Lazily initializes an asyncpg pool so callers don't pay startup cost
        unless/until they make a call that requires the database.
        """
        if self._pool is None:
            try:
                self._pool = await asyncpg.create_pool(
                    self.dsn,
                    min_size=1,
                    max_size=self.pool_size,
                    command_timeout=self.command_timeout,
                )
                logger.info("Created record store connection pool", pool_size=self.pool_size)
            except Exception as e:
                logger.error("Failed to create record store connection pool", error=str(e))
                raise RecordStoreConnectionError(f"Failed to create connection pool: {e}") from e

        return self._pool

    async def _execute_query(
        self,
        query: str,
        *args: Any,
        fetch: bool = False,
        fetch_one: bool = False
    ) -> Any:
        """Execute a query with error handling.

        The ``fetch``/``fetch_one`` flags control how results are retrieved.
        Unique violations become ``RecordStoreConflictError``; every other
        failure is wrapped in ``RecordStoreQueryError``.
        """
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                if fetch_one:
                    return await conn.fetchrow(query, *args)
                if fetch:
                    return await conn.fetch(query, *args)
                return await conn.execute(query, *args)
        except asyncpg.UniqueViolationError as e:
            raise RecordStoreConflictError(str(e)) from e
        except Exception as e:
            logger.error("Query execution failed", query=query, error=str(e))
            raise RecordStoreQueryError(f"Query failed: {e}") from e

    async def ensure_schema(self) -> None:
        """Create the ``ai_model`` table and indexes if missing."""
        for statement in SCHEMA_STATEMENTS:
            await self._execute_query(statement)
        logger.info("Record store schema ensured")

    async def create(self, record: ModelRecord) -> ModelRecord:
        model_uuid = _parse_id(record.id)
        if model_uuid is None:
            raise RecordStoreQueryError(f"Model id {record.id!r} is not a UUID")

        row = await self._execute_query(
            f"""
                INSERT INTO ai_model ({_COLUMNS})
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                RETURNING {_COLUMNS}
            """,
            model_uuid,
            record.name,
            record.artifact_location,
            record.status.value,
            record.backup_artifact_location,
            record.metadata,
            record.created_at,
            record.updated_at,
            fetch_one=True,
        )
        logger.info("Stored model record", model_id=record.id)
        return _row_to_record(row)

    async def get(self, model_id: str) -> Optional[ModelRecord]:
        model_uuid = _parse_id(model_id)
        if model_uuid is None:
            return None

        row = await self._execute_query(
            f"SELECT {_COLUMNS} FROM ai_model WHERE id = $1",
            model_uuid,
            fetch_one=True,
        )
        return _row_to_record(row) if row else None

    async def list_all(self) -> List[ModelRecord]:
        rows = await self._execute_query(
            f"SELECT {_COLUMNS} FROM ai_model ORDER BY created_at, id",
            fetch=True,
        )
        return [_row_to_record(row) for row in rows]

    async def update(self, record: ModelRecord) -> ModelRecord:
        model_uuid = _parse_id(record.id)
        row = None
        if model_uuid is not None:
            row = await self._execute_query(
                f"""
                    UPDATE ai_model
                    SET name = $2,
                        model_path = $3,
                        status = $4,
                        backup_model_path = $5,
                        metadata = $6,
                        updated_at = $7
                    WHERE id = $1
                    RETURNING {_COLUMNS}
                """,
                model_uuid,
                record.name,
                record.artifact_location,
                record.status.value,
                record.backup_artifact_location,
                record.metadata,
                record.updated_at,
                fetch_one=True,
            )
        if row is None:
            raise RecordStoreNotFoundError(f"Model record {record.id} not found")
        return _row_to_record(row)

    async def delete(self, model_id: str) -> bool:
        model_uuid = _parse_id(model_id)
        if model_uuid is None:
            return False

        row = await self._execute_query(
            "DELETE FROM ai_model WHERE id = $1 RETURNING id",
            model_uuid,
            fetch_one=True,
        )
        return row is not None

    async def health_check(self) -> bool:
        try:
            await self._execute_query("SELECT 1", fetch_one=True)
            return True
        except Exception as e:
            logger.warning("Record store health check failed", error=str(e))
            return False

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("Closed record store connection pool")
