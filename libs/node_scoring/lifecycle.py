"""Model lifecycle manager.

Orchestrates creation, incremental training and deletion of node priority
models, coordinating the record store, the artifact store and the predictor.

State machine
- ``create_model`` writes a bootstrapped artifact and a ``not-trained`` record
- ``train_incrementally`` is the only transition to ``trained``
- ``delete_model`` removes artifact directory and record; it is terminal

Writers for one model id are serialized through ``ModelLockRegistry``;
blocking predictor and filesystem work runs in worker threads with timeouts.
"""

import asyncio
import time
import uuid
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, List, Mapping, Optional, Sequence

import structlog

from libs.common.logging import log_performance
from libs.common.metrics import MetricsCollector
from libs.record_store.base import ModelRecord, ModelRecordStore, ModelStatus, RecordStoreError, utcnow
from . import encoding
from .artifact_store import ArtifactStore
from .concurrency import ModelLockRegistry, run_blocking
from .errors import NotFoundError, PersistenceError, TrainingError
from .predictor import NodePriorityPredictor

logger = structlog.get_logger("node_scoring.lifecycle")


@dataclass
class DeletionResult:
    """Outcome of ``delete_model``.

    The record removal is authoritative; ``artifact_removed`` is ``False``
    with a ``warning`` when the artifact directory could not be cleaned up.
    """
    model_id: str
    artifact_removed: bool
    warning: Optional[str] = None


class ModelLifecycleManager:
    """Creates, trains and deletes node priority models."""

    def __init__(
        self,
        record_store: ModelRecordStore,
        artifact_store: ArtifactStore,
        locks: Optional[ModelLockRegistry] = None,
        hidden_units: int = 10,
        epochs: int = 10,
        batch_size: int = 32,
        learning_rate: float = 0.001,
        training_timeout: Optional[float] = None,
        io_timeout: Optional[float] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        """Create a lifecycle manager.

        Parameters
        - record_store: Shared, long-lived ``ModelRecordStore``
        - artifact_store: ``ArtifactStore`` rooted at the artifact directory
        - locks: Registry shared with any other writer of the same artifacts
        - hidden_units: Width of the hidden layer for new models
        - epochs / batch_size / learning_rate: Incremental training recipe
        - training_timeout: Seconds allowed for one fit
        - io_timeout: Seconds allowed for one artifact load or save
        - metrics: Optional ``MetricsCollector``
        """
        self.record_store = record_store
        self.artifact_store = artifact_store
        self.locks = locks or ModelLockRegistry()
        self.hidden_units = hidden_units
        self.epochs = epochs
        self.batch_size = batch_size
        self.learning_rate = learning_rate
        self.training_timeout = training_timeout
        self.io_timeout = io_timeout
        self.metrics = metrics

    def _record_outcome(self, operation: str, outcome: str) -> None:
        if self.metrics is not None:
            self.metrics.record_lifecycle_operation(operation, outcome)

    async def _require_record(self, model_id: str) -> ModelRecord:
        try:
            record = await self.record_store.get(model_id)
        except RecordStoreError as e:
            raise PersistenceError(f"Failed to read model {model_id}: {e}") from e
        if record is None:
            raise NotFoundError(f"Model {model_id} not found")
        return record

    def _bootstrap_artifact(self, model_id: str) -> str:
        predictor = NodePriorityPredictor(hidden_units=self.hidden_units)
        predictor.bootstrap(learning_rate=self.learning_rate)
        return self.artifact_store.save(model_id, predictor)

    def _discard_artifact(self, model_id: str) -> None:
        """Compensating cleanup; failures are logged, never raised."""
        try:
            self.artifact_store.remove(model_id)
        except OSError as e:
            logger.error("Failed to remove orphaned artifact", model_id=model_id, error=str(e))

    def _discard_when_done(self, model_id: str, task: "asyncio.Future[Any]") -> None:
        # A timed-out bootstrap may still write after the immediate cleanup
        task.add_done_callback(lambda _: self._discard_artifact(model_id))

    async def create_model(self, name: Any, metadata: Optional[str] = None) -> ModelRecord:
        """Create a model with a bootstrapped, untrained artifact."""
        name = encoding.validate_name(name)
        model_id = str(uuid.uuid4())

        try:
            location = await run_blocking(
                self._bootstrap_artifact,
                model_id,
                timeout=self.io_timeout,
                on_abandon=lambda task: self._discard_when_done(model_id, task),
            )
        except Exception as e:
            self._discard_artifact(model_id)
            self._record_outcome("create", "failure")
            logger.error("Failed to initialize model artifact", model_id=model_id, error=str(e))
            raise PersistenceError(f"Failed to initialize model artifact: {e}") from e

        record = ModelRecord(
            id=model_id,
            name=name,
            artifact_location=location,
            status=ModelStatus.NOT_TRAINED,
            metadata=metadata,
            created_at=utcnow(),
        )
        try:
            saved = await self.record_store.create(record)
        except Exception as e:
            self._discard_artifact(model_id)
            self._record_outcome("create", "failure")
            logger.error("Failed to save model record", model_id=model_id, error=str(e))
            if isinstance(e, RecordStoreError):
                raise PersistenceError(f"Failed to save model record: {e}") from e
            raise

        self._record_outcome("create", "success")
        logger.info("Model created", model_id=model_id, name=name, artifact_location=location)
        return saved

    async def list_models(self) -> List[ModelRecord]:
        try:
            return await self.record_store.list_all()
        except RecordStoreError as e:
            raise PersistenceError(f"Failed to list models: {e}") from e

    async def get_model(self, model_id: str) -> ModelRecord:
        return await self._require_record(model_id)

    def _fit(self, predictor: NodePriorityPredictor, features, labels) -> List[float]:
        predictor.compile(learning_rate=self.learning_rate)
        return predictor.fit(features, labels, epochs=self.epochs, batch_size=self.batch_size)

    async def train_incrementally(self, model_id: str, dataset: Sequence[Mapping[str, Any]]) -> ModelRecord:
        """Continue training a model's current weights on ``dataset``.

        The artifact is overwritten in place only after a successful fit; on
        any failure the previous artifact and record are left untouched.
        """
        encoding.validate_dataset(dataset)
        features = encoding.encode(dataset)
        labels = encoding.encode_labels(dataset)

        await self._require_record(model_id)

        async with self.locks.hold(model_id):
            record = await self._require_record(model_id)
            start_time = time.time()
            stage = "load"
            try:
                predictor = await self.locks.run(
                    model_id, self.artifact_store.load, record.artifact_location, timeout=self.io_timeout
                )
                stage = "fit"
                history = await self.locks.run(
                    model_id, self._fit, predictor, features, labels, timeout=self.training_timeout
                )
                stage = "save"
                location = await self.locks.run(
                    model_id, self.artifact_store.save, model_id, predictor, timeout=self.io_timeout
                )
            except asyncio.TimeoutError as e:
                self._record_outcome("train", "timeout")
                logger.error("Training timed out", model_id=model_id, stage=stage)
                raise TrainingError(f"Training model {model_id} timed out during {stage}") from e
            except Exception as e:
                self._record_outcome("train", "failure")
                logger.error("Training failed", model_id=model_id, stage=stage, error=str(e))
                raise TrainingError(f"Training model {model_id} failed during {stage}: {e}") from e

            duration = time.time() - start_time
            updated = replace(
                record,
                status=ModelStatus.TRAINED,
                artifact_location=location,
                updated_at=utcnow(),
            )
            try:
                saved = await self.record_store.update(updated)
            except RecordStoreError as e:
                self._record_outcome("train", "failure")
                logger.error("Failed to update model record after training", model_id=model_id, error=str(e))
                raise PersistenceError(f"Failed to update model record {model_id}: {e}") from e

        self._record_outcome("train", "success")
        if self.metrics is not None:
            self.metrics.record_training(duration, len(dataset))
        log_performance(
            "train_incrementally",
            duration * 1000,
            model_id=model_id,
            samples=len(dataset),
            final_loss=history[-1] if history else None,
        )
        return saved

    async def delete_model(self, model_id: str) -> DeletionResult:
        """Remove a model's artifact directory and record."""
        await self._require_record(model_id)

        async with self.locks.hold(model_id):
            await self._require_record(model_id)
            warning = None
            try:
                await self.locks.run(model_id, self.artifact_store.remove, model_id, timeout=self.io_timeout)
                artifact_removed = True
            except (OSError, asyncio.TimeoutError) as e:
                artifact_removed = False
                warning = f"Artifact cleanup failed: {str(e) or 'timed out'}"
                logger.warning("Failed to remove model artifact", model_id=model_id, error=str(e))

            try:
                deleted = await self.record_store.delete(model_id)
            except RecordStoreError as e:
                self._record_outcome("delete", "failure")
                raise PersistenceError(f"Failed to delete model record {model_id}: {e}") from e
            if not deleted:
                raise NotFoundError(f"Model {model_id} not found")

        self.locks.discard(model_id)
        self._record_outcome("delete", "success")
        logger.info("Model deleted", model_id=model_id, artifact_removed=artifact_removed)
        return DeletionResult(model_id=model_id, artifact_removed=artifact_removed, warning=warning)

    async def fetch_artifact(self, model_id: str) -> Path:
        """Path of the serialized predictor for download."""
        record = await self._require_record(model_id)
        if not self.artifact_store.exists(record.artifact_location):
            raise NotFoundError(f"Artifact for model {model_id} not found")
        return self.artifact_store.artifact_file(record.artifact_location)
