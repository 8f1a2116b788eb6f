"""Ranking engine.

Scores a candidate batch with a model and returns the ``top_k`` best nodes.

Ordering is deterministic: scores descending, ties resolved by input order
(Python's sort is stable). Candidates are copied, never mutated; each result
is the candidate mapping plus a ``score`` key.

Ranking does not take the per-model training lock. A concurrent training run
may or may not be visible, but because artifact saves are atomic replaces a
ranking never reads a partially written artifact.
"""

import asyncio
import time
from typing import Any, Dict, List, Mapping, Optional, Sequence

import structlog

from libs.common.logging import log_performance
from libs.common.metrics import MetricsCollector
from libs.record_store.base import ModelRecordStore, RecordStoreError
from . import encoding
from .artifact_store import ArtifactStore
from .concurrency import run_blocking
from .errors import InferenceError, NotFoundError, PersistenceError

logger = structlog.get_logger("node_scoring.ranking")


def select_top_k(candidates: Sequence[Mapping[str, Any]], scores: Sequence[float], top_k: int) -> List[Dict[str, Any]]:
    """Attach scores, order by score descending (stable), keep ``top_k``."""
    order = sorted(range(len(candidates)), key=lambda index: -scores[index])
    return [
        {**candidates[index], "score": float(scores[index])}
        for index in order[:top_k]
    ]


class RankingEngine:
    """Top-K ranking of candidate nodes by predicted priority."""

    def __init__(
        self,
        record_store: ModelRecordStore,
        artifact_store: ArtifactStore,
        inference_timeout: Optional[float] = None,
        max_batch_size: Optional[int] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.record_store = record_store
        self.artifact_store = artifact_store
        self.inference_timeout = inference_timeout
        self.max_batch_size = max_batch_size
        self.metrics = metrics

    def _score(self, location: str, features):
        predictor = self.artifact_store.load(location)
        return predictor.predict(features)

    def _record(self, outcome: str, duration: Optional[float] = None, candidates: int = 0) -> None:
        if self.metrics is not None:
            self.metrics.record_inference(outcome, duration, candidates)

    async def rank(
        self,
        model_id: str,
        candidates: Sequence[Mapping[str, Any]],
        top_k: int,
    ) -> List[Dict[str, Any]]:
        """Rank ``candidates`` with model ``model_id`` and return the best ``top_k``.

        The model's status is not checked: an untrained model ranks with its
        bootstrap weights.
        """
        encoding.validate_candidate_batch(candidates, top_k, self.max_batch_size)
        features = encoding.encode(candidates)

        try:
            record = await self.record_store.get(model_id)
        except RecordStoreError as e:
            raise PersistenceError(f"Failed to read model {model_id}: {e}") from e
        if record is None:
            raise NotFoundError(f"Model {model_id} not found")

        start_time = time.time()
        try:
            scores = await run_blocking(
                self._score, record.artifact_location, features, timeout=self.inference_timeout
            )
        except asyncio.TimeoutError as e:
            self._record("timeout")
            logger.error("Inference timed out", model_id=model_id, candidates=len(candidates))
            raise InferenceError(f"Inference with model {model_id} timed out") from e
        except Exception as e:
            self._record("failure")
            logger.error("Inference failed", model_id=model_id, error=str(e))
            raise InferenceError(f"Inference with model {model_id} failed: {e}") from e

        if len(scores) != len(candidates):
            self._record("failure")
            raise InferenceError(
                f"Model {model_id} returned {len(scores)} scores for {len(candidates)} candidates"
            )

        top_nodes = select_top_k(candidates, scores.tolist(), top_k)
        duration = time.time() - start_time
        self._record("success", duration, len(candidates))
        log_performance(
            "rank",
            duration * 1000,
            model_id=model_id,
            status=record.status.value,
            candidates=len(candidates),
            top_k=top_k,
        )
        return top_nodes
