"""Model record store adapters.

Primary components:
- ``base``: ``ModelRecord``, ``ModelStatus``, the abstract ``ModelRecordStore``
  interface and common exceptions.
- ``postgres``: asyncpg implementation backed by the ``ai_model`` table.
- ``memory``: process-local implementation for development and tests.
- ``factory``: helpers to construct a store from typed config.

Guidance:
- Prefer constructing via ``factory.create_record_store_from_config`` so the
  service stays decoupled from specific backends.
"""
