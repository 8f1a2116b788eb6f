"""In-memory implementation of the model record store.

Used for local development and tests. State lives in a process-local dict
guarded by an ``asyncio.Lock``; nothing survives a restart.
"""

import asyncio
from dataclasses import replace
from typing import Dict, List, Optional

import structlog

from .base import (
    ModelRecord,
    ModelRecordStore,
    RecordStoreConflictError,
    RecordStoreNotFoundError,
)

logger = structlog.get_logger("record_store.memory")


class InMemoryModelRecordStore(ModelRecordStore):
    """Dict-backed record store."""

    def __init__(self):
        self._records: Dict[str, ModelRecord] = {}
        self._lock = asyncio.Lock()

    async def create(self, record: ModelRecord) -> ModelRecord:
        async with self._lock:
            if record.id in self._records:
                raise RecordStoreConflictError(f"Model record {record.id} already exists")
            self._records[record.id] = replace(record)
        logger.debug("Stored model record", model_id=record.id)
        return replace(record)

    async def get(self, model_id: str) -> Optional[ModelRecord]:
        async with self._lock:
            record = self._records.get(model_id)
            return replace(record) if record else None

    async def list_all(self) -> List[ModelRecord]:
        async with self._lock:
            records = sorted(self._records.values(), key=lambda r: r.created_at)
            return [replace(r) for r in records]

    async def update(self, record: ModelRecord) -> ModelRecord:
        async with self._lock:
            if record.id not in self._records:
                raise RecordStoreNotFoundError(f"Model record {record.id} not found")
            self._records[record.id] = replace(record)
        return replace(record)

    async def delete(self, model_id: str) -> bool:
        async with self._lock:
            return self._records.pop(model_id, None) is not None

    async def health_check(self) -> bool:
        return True
