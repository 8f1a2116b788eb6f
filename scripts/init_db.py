#!/usr/bin/env python3
"""Initialize the model record table in PostgreSQL."""

import asyncio

from libs.common.config import NodeScoringConfig
from libs.common.logging import configure_logging
from libs.record_store.postgres import PostgresModelRecordStore


async def init_database():
    """Create the ``ai_model`` table and its indexes."""
    config = NodeScoringConfig()
    configure_logging(config, "init-db")

    store = PostgresModelRecordStore(
        dsn=config.ml_record_store_dsn,
        pool_size=1,
        command_timeout=config.ml_record_store_command_timeout,
    )
    try:
        await store.ensure_schema()
        print("✓ ai_model table ready")
    finally:
        await store.close()


if __name__ == "__main__":
    asyncio.run(init_database())
