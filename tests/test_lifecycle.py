"""Tests for the model lifecycle manager."""

import asyncio
import threading
import time
from pathlib import Path

import pytest
import torch

from libs.node_scoring.artifact_store import ARTIFACT_FILENAME
from libs.node_scoring.errors import (
    NotFoundError,
    PersistenceError,
    TrainingError,
    ValidationError,
)
from libs.node_scoring.lifecycle import ModelLifecycleManager
from libs.node_scoring.predictor import NodePriorityPredictor
from libs.record_store.base import ModelStatus, RecordStoreQueryError
from libs.record_store.memory import InMemoryModelRecordStore


class FailingCreateStore(InMemoryModelRecordStore):
    async def create(self, record):
        raise RecordStoreQueryError("insert failed")


class FailingUpdateStore(InMemoryModelRecordStore):
    async def update(self, record):
        raise RecordStoreQueryError("update failed")


class BrokenCreateStore(InMemoryModelRecordStore):
    async def create(self, record):
        raise RuntimeError("driver bug")


def _artifact_bytes(record) -> bytes:
    return (Path(record.artifact_location) / ARTIFACT_FILENAME).read_bytes()


@pytest.mark.asyncio
async def test_create_model_writes_untrained_record_and_artifact(manager, artifact_root):
    record = await manager.create_model("M1", metadata='{"createdBy": "admin"}')

    assert record.name == "M1"
    assert record.status is ModelStatus.NOT_TRAINED
    assert record.metadata == '{"createdBy": "admin"}'
    assert record.backup_artifact_location is None
    assert Path(record.artifact_location) == (artifact_root / record.id).resolve()
    assert isinstance(manager.artifact_store.load(record.artifact_location), NodePriorityPredictor)
    assert (await manager.get_model(record.id)) == record


@pytest.mark.asyncio
async def test_create_model_assigns_unique_ids(manager):
    first = await manager.create_model("A")
    second = await manager.create_model("B")
    assert first.id != second.id
    assert [r.id for r in await manager.list_models()] == [first.id, second.id]


@pytest.mark.asyncio
@pytest.mark.parametrize("name", ["", "  ", None])
async def test_create_model_requires_name(manager, artifact_root, name):
    with pytest.raises(ValidationError):
        await manager.create_model(name)
    assert list(artifact_root.iterdir()) == []


@pytest.mark.asyncio
async def test_create_model_removes_orphaned_artifact_when_record_write_fails(artifact_store, artifact_root):
    manager = ModelLifecycleManager(record_store=FailingCreateStore(), artifact_store=artifact_store)

    with pytest.raises(PersistenceError, match="insert failed") as excinfo:
        await manager.create_model("M1")

    assert isinstance(excinfo.value.__cause__, RecordStoreQueryError)
    assert list(artifact_root.iterdir()) == []


@pytest.mark.asyncio
async def test_create_model_removes_artifact_when_store_raises_unexpectedly(artifact_store, artifact_root):
    manager = ModelLifecycleManager(record_store=BrokenCreateStore(), artifact_store=artifact_store)

    with pytest.raises(RuntimeError, match="driver bug"):
        await manager.create_model("M1")

    assert list(artifact_root.iterdir()) == []


@pytest.mark.asyncio
async def test_create_model_bootstrap_timeout_leaves_no_artifact(record_store, artifact_store, artifact_root, monkeypatch):
    manager = ModelLifecycleManager(record_store, artifact_store, io_timeout=0.05)
    finished = threading.Event()
    original_bootstrap = manager._bootstrap_artifact

    def slow_bootstrap(model_id):
        time.sleep(0.3)
        try:
            return original_bootstrap(model_id)
        finally:
            finished.set()

    monkeypatch.setattr(manager, "_bootstrap_artifact", slow_bootstrap)

    with pytest.raises(PersistenceError, match="initialize"):
        await manager.create_model("M1")

    assert await asyncio.to_thread(finished.wait, 5)
    for _ in range(40):
        if not any(artifact_root.iterdir()):
            break
        await asyncio.sleep(0.05)
    assert list(artifact_root.iterdir()) == []
    assert await manager.list_models() == []


@pytest.mark.asyncio
async def test_create_model_bootstrap_failure_is_persistence_error(manager, artifact_root, monkeypatch):
    def broken_save(model_id, predictor):
        (artifact_root / model_id).mkdir()
        raise OSError("disk full")

    monkeypatch.setattr(manager.artifact_store, "save", broken_save)

    with pytest.raises(PersistenceError, match="disk full"):
        await manager.create_model("M1")
    assert list(artifact_root.iterdir()) == []
    assert await manager.list_models() == []


@pytest.mark.asyncio
async def test_train_transitions_to_trained(manager):
    record = await manager.create_model("M1")
    dataset = [{"age": 5, "depth": 2, "noise_level": 0.4, "node_type": 1, "label": 0.9}]

    trained = await manager.train_incrementally(record.id, dataset)

    assert record.status is ModelStatus.NOT_TRAINED
    assert trained.status is ModelStatus.TRAINED
    assert trained.updated_at is not None
    assert trained.artifact_location == record.artifact_location
    assert (await manager.get_model(record.id)).status is ModelStatus.TRAINED


@pytest.mark.asyncio
async def test_repeated_training_accumulates(manager, dataset):
    record = await manager.create_model("M1")

    first = await manager.train_incrementally(record.id, dataset)
    after_first = manager.artifact_store.load(first.artifact_location).state()
    second = await manager.train_incrementally(record.id, dataset)
    after_second = manager.artifact_store.load(second.artifact_location).state()

    assert second.status is ModelStatus.TRAINED
    assert second.updated_at >= first.updated_at
    assert any(not torch.equal(after_first[name], after_second[name]) for name in after_first)


@pytest.mark.asyncio
async def test_train_unknown_model_creates_nothing(manager, artifact_root, dataset):
    with pytest.raises(NotFoundError):
        await manager.train_incrementally("missing", dataset)
    assert list(artifact_root.iterdir()) == []


@pytest.mark.asyncio
async def test_train_validates_before_lookup(manager):
    with pytest.raises(ValidationError, match="non-empty"):
        await manager.train_incrementally("missing", [])


@pytest.mark.asyncio
async def test_train_rejects_records_without_label(manager):
    record = await manager.create_model("M1")
    before = _artifact_bytes(record)

    with pytest.raises(ValidationError, match="label"):
        await manager.train_incrementally(record.id, [{"age": 5, "depth": 2, "noise_level": 0.4, "node_type": 1}])

    assert _artifact_bytes(record) == before
    assert (await manager.get_model(record.id)).status is ModelStatus.NOT_TRAINED


@pytest.mark.asyncio
async def test_fit_failure_leaves_artifact_and_record_untouched(manager, dataset, monkeypatch):
    record = await manager.create_model("M1")
    before = _artifact_bytes(record)

    def broken_fit(self, *args, **kwargs):
        raise RuntimeError("exploding gradients")

    monkeypatch.setattr(NodePriorityPredictor, "fit", broken_fit)

    with pytest.raises(TrainingError, match="exploding gradients") as excinfo:
        await manager.train_incrementally(record.id, dataset)

    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert _artifact_bytes(record) == before
    assert (await manager.get_model(record.id)) == record


@pytest.mark.asyncio
async def test_load_failure_is_training_error(manager, dataset):
    record = await manager.create_model("M1")
    (Path(record.artifact_location) / ARTIFACT_FILENAME).write_bytes(b"not a model")

    with pytest.raises(TrainingError, match="during load"):
        await manager.train_incrementally(record.id, dataset)
    assert (await manager.get_model(record.id)).status is ModelStatus.NOT_TRAINED


@pytest.mark.asyncio
async def test_fit_timeout_is_training_error(record_store, artifact_store, dataset, monkeypatch):
    manager = ModelLifecycleManager(record_store, artifact_store, training_timeout=0.05)
    record = await manager.create_model("M1")
    before = _artifact_bytes(record)

    def slow_fit(predictor, features, labels):
        time.sleep(0.5)
        return [0.0]

    monkeypatch.setattr(manager, "_fit", slow_fit)

    with pytest.raises(TrainingError, match="timed out during fit"):
        await manager.train_incrementally(record.id, dataset)
    assert _artifact_bytes(record) == before


@pytest.mark.asyncio
async def test_save_timeout_keeps_next_writer_out_until_worker_finishes(
    manager, record_store, artifact_store, dataset, monkeypatch
):
    record = await manager.create_model("M1")
    writer = ModelLifecycleManager(record_store, artifact_store, io_timeout=0.3)
    events = []
    guard = threading.Lock()
    original_save = NodePriorityPredictor.save

    def slow_first_save(predictor, path):
        with guard:
            first = not events
            events.append("start")
        if first:
            with open(path, "wb") as handle:
                handle.write(b"\0" * 64)
            time.sleep(0.6)
        original_save(predictor, path)
        with guard:
            events.append("end")

    monkeypatch.setattr(NodePriorityPredictor, "save", slow_first_save)

    with pytest.raises(TrainingError, match="timed out during save"):
        await writer.train_incrementally(record.id, dataset)
    assert writer.locks.is_busy(record.id)

    trained = await writer.train_incrementally(record.id, dataset)

    assert events == ["start", "end", "start", "end"]
    assert trained.status is ModelStatus.TRAINED
    assert isinstance(artifact_store.load(trained.artifact_location), NodePriorityPredictor)
    assert [p.name for p in Path(trained.artifact_location).iterdir()] == [ARTIFACT_FILENAME]
    assert not writer.locks.is_busy(record.id)


@pytest.mark.asyncio
async def test_record_update_failure_is_persistence_error(artifact_store, dataset):
    manager = ModelLifecycleManager(FailingUpdateStore(), artifact_store)
    record = await manager.create_model("M1")

    with pytest.raises(PersistenceError, match="update failed"):
        await manager.train_incrementally(record.id, dataset)
    assert (await manager.get_model(record.id)).status is ModelStatus.NOT_TRAINED


@pytest.mark.asyncio
async def test_training_is_serialized_per_model(manager, dataset, monkeypatch):
    record = await manager.create_model("M1")
    events = []
    guard = threading.Lock()
    original_fit = manager._fit

    def tracking_fit(predictor, features, labels):
        with guard:
            events.append("start")
        time.sleep(0.05)
        history = original_fit(predictor, features, labels)
        with guard:
            events.append("end")
        return history

    monkeypatch.setattr(manager, "_fit", tracking_fit)

    results = await asyncio.gather(
        manager.train_incrementally(record.id, dataset),
        manager.train_incrementally(record.id, dataset),
    )

    assert events == ["start", "end", "start", "end"]
    assert all(r.status is ModelStatus.TRAINED for r in results)


@pytest.mark.asyncio
async def test_training_different_models_runs_concurrently(manager, dataset, monkeypatch):
    first = await manager.create_model("A")
    second = await manager.create_model("B")
    both_running = threading.Barrier(2, timeout=5)
    original_fit = manager._fit

    def rendezvous_fit(predictor, features, labels):
        both_running.wait()
        return original_fit(predictor, features, labels)

    monkeypatch.setattr(manager, "_fit", rendezvous_fit)

    results = await asyncio.gather(
        manager.train_incrementally(first.id, dataset),
        manager.train_incrementally(second.id, dataset),
    )
    assert [r.status for r in results] == [ModelStatus.TRAINED, ModelStatus.TRAINED]


@pytest.mark.asyncio
async def test_delete_removes_record_and_artifact(manager):
    record = await manager.create_model("M1")

    result = await manager.delete_model(record.id)

    assert result.artifact_removed is True
    assert result.warning is None
    assert not Path(record.artifact_location).exists()
    with pytest.raises(NotFoundError):
        await manager.get_model(record.id)
    assert len(manager.locks) == 0


@pytest.mark.asyncio
async def test_delete_with_missing_artifact_directory_succeeds(manager):
    record = await manager.create_model("M1")
    manager.artifact_store.remove(record.id)

    result = await manager.delete_model(record.id)

    assert result.warning is None
    assert await manager.list_models() == []


@pytest.mark.asyncio
async def test_delete_reports_artifact_cleanup_failure(manager, monkeypatch):
    record = await manager.create_model("M1")

    def broken_remove(model_id):
        raise PermissionError("read-only filesystem")

    monkeypatch.setattr(manager.artifact_store, "remove", broken_remove)

    result = await manager.delete_model(record.id)

    assert result.artifact_removed is False
    assert "read-only filesystem" in result.warning
    assert await manager.list_models() == []


@pytest.mark.asyncio
async def test_delete_unknown_model(manager):
    with pytest.raises(NotFoundError):
        await manager.delete_model("missing")


@pytest.mark.asyncio
async def test_fetch_artifact(manager):
    record = await manager.create_model("M1")

    path = await manager.fetch_artifact(record.id)
    assert path.name == ARTIFACT_FILENAME
    assert path.read_bytes()

    manager.artifact_store.remove(record.id)
    with pytest.raises(NotFoundError, match="Artifact"):
        await manager.fetch_artifact(record.id)
    with pytest.raises(NotFoundError):
        await manager.fetch_artifact("missing")


@pytest.mark.asyncio
async def test_lifecycle_metrics_recorded(manager, metrics, dataset):
    record = await manager.create_model("M1")
    await manager.train_incrementally(record.id, dataset)

    exposition = metrics.get_metrics()
    assert 'ml_lifecycle_operations_total{operation="create",outcome="success"} 1.0' in exposition
    assert 'ml_lifecycle_operations_total{operation="train",outcome="success"} 1.0' in exposition
    assert "ml_training_samples_total 4.0" in exposition
