"""Utility scripts for operating the node scoring platform.

Scripts include:
- ``init_db.py``: create the ``ai_model`` record table in PostgreSQL.
"""
