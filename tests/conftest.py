"""Shared fixtures for node scoring tests."""

import pytest

from libs.common.metrics import MetricsCollector
from libs.node_scoring.artifact_store import ArtifactStore
from libs.node_scoring.lifecycle import ModelLifecycleManager
from libs.node_scoring.ranking import RankingEngine
from libs.record_store.memory import InMemoryModelRecordStore


@pytest.fixture
def artifact_root(tmp_path):
    return tmp_path / "trained"


@pytest.fixture
def artifact_store(artifact_root):
    return ArtifactStore(artifact_root)


@pytest.fixture
def record_store():
    return InMemoryModelRecordStore()


@pytest.fixture
def metrics():
    return MetricsCollector("test-service")


@pytest.fixture
def manager(record_store, artifact_store, metrics):
    return ModelLifecycleManager(
        record_store=record_store,
        artifact_store=artifact_store,
        metrics=metrics,
    )


@pytest.fixture
def engine(record_store, artifact_store, metrics):
    return RankingEngine(
        record_store=record_store,
        artifact_store=artifact_store,
        metrics=metrics,
    )


@pytest.fixture
def dataset():
    """Small labeled dataset: old shallow noisy parents score high."""
    return [
        {"age": 5, "depth": 2, "noise_level": 0.4, "node_type": 1, "label": 0.9},
        {"age": 1, "depth": 6, "noise_level": 0.1, "node_type": 0, "label": 0.1},
        {"age": 7, "depth": 1, "noise_level": 0.8, "node_type": 1, "label": 1.0},
        {"age": 2, "depth": 4, "noise_level": 0.2, "node_type": 0, "label": 0.2},
    ]


@pytest.fixture
def candidates():
    return [
        {"age": 3, "depth": 1, "noise_level": 0.5, "node_type": 1, "node_id": "a"},
        {"age": 0, "depth": 5, "noise_level": 0.0, "node_type": 0, "node_id": "b"},
        {"age": 9, "depth": 2, "noise_level": 0.9, "node_type": 1, "node_id": "c"},
    ]
