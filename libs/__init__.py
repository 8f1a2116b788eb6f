"""Shared libraries for the node scoring platform.

Subpackages:
- ``libs.common``: configuration, logging, and metrics.
- ``libs.record_store``: model record store abstraction and backends.
- ``libs.node_scoring``: model lifecycle, encoding, predictor and ranking.

Usage:
- Import stable, reusable functionality from here to keep service code lean.
"""
