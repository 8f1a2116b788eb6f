"""Model record store interface.

Defines the record type describing one predictor instance and the abstract
contract the lifecycle service depends on, independent of the backing
implementation (PostgreSQL, in-memory).

All methods are asynchronous to support the async service runtime.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class ModelStatus(str, Enum):
    """Training status of a model record."""
    NOT_TRAINED = "not-trained"
    TRAINED = "trained"


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


@dataclass
class ModelRecord:
    """Identity and status of one predictor instance.

    ``backup_artifact_location`` is part of the persisted schema but no
    lifecycle operation populates it.
    """
    id: str
    name: str
    artifact_location: str
    status: ModelStatus = ModelStatus.NOT_TRAINED
    backup_artifact_location: Optional[str] = None
    metadata: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert the record to a plain dictionary."""
        data = asdict(self)
        data["status"] = self.status.value
        return data


class ModelRecordStore(ABC):
    """Abstract base class for model record stores.

    Implementations must return copies so callers can never mutate stored
    state without going through ``update``.
    """

    @abstractmethod
    async def create(self, record: ModelRecord) -> ModelRecord:
        """Persist a new record.

        Raises ``RecordStoreConflictError`` if the id already exists.
        """
        pass

    @abstractmethod
    async def get(self, model_id: str) -> Optional[ModelRecord]:
        """Get a record by id, ``None`` when absent."""
        pass

    @abstractmethod
    async def list_all(self) -> List[ModelRecord]:
        """List every record ordered by creation time."""
        pass

    @abstractmethod
    async def update(self, record: ModelRecord) -> ModelRecord:
        """Replace the stored record with the same id.

        Raises ``RecordStoreNotFoundError`` if the id does not exist.
        """
        pass

    @abstractmethod
    async def delete(self, model_id: str) -> bool:
        """Delete a record. Returns ``True`` if a record was deleted."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the record store is healthy."""
        pass

    async def close(self) -> None:
        """Release backend resources."""
        return None


class RecordStoreError(Exception):
    """Base exception for record store operations."""
    pass


class RecordStoreConnectionError(RecordStoreError):
    """Connection error to record store."""
    pass


class RecordStoreQueryError(RecordStoreError):
    """Query error in record store."""
    pass


class RecordStoreNotFoundError(RecordStoreError):
    """Record not found in store."""
    pass


class RecordStoreConflictError(RecordStoreError):
    """Record id already present in store."""
    pass
