"""Tests for the node scoring platform.

Unit tests run against the in-memory record store and temporary artifact
roots. Tests marked ``integration`` need a live PostgreSQL.
"""
