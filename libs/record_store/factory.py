"""Record store factory.

Centralizes creation of concrete ``ModelRecordStore`` backends so callers
don't depend on implementation details.
"""

from enum import Enum
from typing import Any, Dict

import structlog

from libs.common.config import BaseConfig
from .base import ModelRecordStore
from .memory import InMemoryModelRecordStore
from .postgres import PostgresModelRecordStore

logger = structlog.get_logger("record_store.factory")


class RecordStoreType(Enum):
    """Supported record store types."""
    POSTGRES = "postgres"
    MEMORY = "memory"


def create_record_store(store_type: str, config: Dict[str, Any]) -> ModelRecordStore:
    """Create a record store instance.

    Parameters
    - store_type: ``postgres`` or ``memory``
    - config: Backend‑specific parameters (e.g., DSN for postgres)
    """
    try:
        store_type_enum = RecordStoreType(store_type)
    except ValueError:
        raise ValueError(f"Unsupported record store type: {store_type}")

    if store_type_enum == RecordStoreType.POSTGRES:
        dsn = config.get("dsn")
        if not dsn:
            raise ValueError("Postgres record store requires 'dsn' in config")
        return PostgresModelRecordStore(
            dsn=dsn,
            pool_size=config.get("pool_size", 10),
            command_timeout=config.get("command_timeout", 60),
        )

    return InMemoryModelRecordStore()


def create_record_store_from_config(config: BaseConfig) -> ModelRecordStore:
    """Create the record store selected by ``ML_RECORD_STORE_BACKEND``."""
    store = create_record_store(
        config.ml_record_store_backend,
        {
            "dsn": config.ml_record_store_dsn,
            "pool_size": config.ml_record_store_pool_size,
            "command_timeout": config.ml_record_store_command_timeout,
        },
    )
    logger.info("Record store created", backend=config.ml_record_store_backend)
    return store
