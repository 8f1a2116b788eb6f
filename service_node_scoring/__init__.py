"""Node scoring service package.

Layout:
- ``api``: REST endpoints for the model lifecycle and ranking.
- ``main``: application factory, lifespan wiring and service endpoints.

Import convenience:
- from service_node_scoring.main import create_app
"""
