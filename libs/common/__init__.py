"""Common utilities shared across the platform.

Includes:
- ``config``: Pydantic-based service configuration from environment variables.
- ``logging``: structured logging setup with structlog.
- ``metrics``: Prometheus metrics helpers.

Import pattern:
- from libs.common.config import NodeScoringConfig
- from libs.common.logging import configure_logging
"""
