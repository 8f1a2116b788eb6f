"""Node scoring service main application."""

import time
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog

from .api.routes import router as api_router
from libs.common.config import NodeScoringConfig
from libs.common.logging import configure_logging
from libs.common.metrics import MetricsCollector
from libs.node_scoring.artifact_store import ArtifactStore
from libs.node_scoring.concurrency import ModelLockRegistry
from libs.node_scoring.lifecycle import ModelLifecycleManager
from libs.node_scoring.ranking import RankingEngine
from libs.record_store.factory import create_record_store_from_config

logger = structlog.get_logger("node_scoring")

SERVICE_NAME = "node-scoring"


def create_app(config: Optional[NodeScoringConfig] = None) -> FastAPI:
    """Build the FastAPI application.

    The record store, artifact store and lock registry are created once in
    the lifespan and shared by every request.
    """
    config = config or NodeScoringConfig()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        configure_logging(config, SERVICE_NAME)
        logger.info("Starting node scoring service", env=config.ml_env)

        record_store = create_record_store_from_config(config)
        artifact_store = ArtifactStore(config.ml_artifact_root)
        metrics_collector = MetricsCollector(SERVICE_NAME)

        app.state.config = config
        app.state.record_store = record_store
        app.state.metrics_collector = metrics_collector
        app.state.lifecycle_manager = ModelLifecycleManager(
            record_store=record_store,
            artifact_store=artifact_store,
            locks=ModelLockRegistry(),
            hidden_units=config.ml_hidden_units,
            epochs=config.ml_training_epochs,
            batch_size=config.ml_training_batch_size,
            learning_rate=config.ml_learning_rate,
            training_timeout=config.ml_training_timeout_seconds,
            io_timeout=config.ml_artifact_io_timeout_seconds,
            metrics=metrics_collector,
        )
        app.state.ranking_engine = RankingEngine(
            record_store=record_store,
            artifact_store=artifact_store,
            inference_timeout=config.ml_inference_timeout_seconds,
            max_batch_size=config.ml_max_batch_size,
            metrics=metrics_collector,
        )

        logger.info("Node scoring service started successfully", artifact_root=config.ml_artifact_root)

        yield

        logger.info("Shutting down node scoring service")
        await record_store.close()
        logger.info("Node scoring service shutdown complete")

    app = FastAPI(
        title="Node Scoring Service",
        description="Create, incrementally train and rank with node priority models",
        version="0.1.0",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix="/api/v1")

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        """Collect metrics for HTTP requests."""
        start_time = time.time()

        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception as e:
            logger.exception("Unhandled error", path=request.url.path)
            status_code = 500
            response = JSONResponse(
                status_code=500,
                content={"detail": {"kind": "error", "message": f"Internal server error: {e}"}}
            )

        duration = time.time() - start_time
        response.headers["X-Process-Time"] = str(duration)

        if hasattr(app.state, "metrics_collector"):
            route = request.scope.get("route")
            app.state.metrics_collector.record_http_request(
                method=request.method,
                endpoint=getattr(route, "path", request.url.path),
                status=status_code,
                duration=duration
            )

        return response

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        try:
            store_health = await app.state.record_store.health_check()
        except Exception as e:
            logger.error("Health check failed", error=str(e))
            store_health = False

        if store_health:
            return {"status": "healthy", "service": SERVICE_NAME}
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "service": SERVICE_NAME}
        )

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics endpoint."""
        return Response(content=app.state.metrics_collector.get_metrics(), media_type="text/plain")

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "service": SERVICE_NAME,
            "version": "0.1.0",
            "status": "running",
            "endpoints": {
                "health": "/health",
                "metrics": "/metrics",
                "models": "/api/v1/models",
                "train": "/api/v1/models/{id}/train",
                "rank": "/api/v1/models/{id}/rank",
                "download": "/api/v1/models/{id}/download",
            }
        }

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "service_node_scoring.main:app",
        host="0.0.0.0",
        port=NodeScoringConfig().ml_node_scoring_port,
        log_level="info"
    )
