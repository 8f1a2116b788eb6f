"""Per-model serialization and worker-thread execution.

Training is a load -> fit -> save sequence against one mutable artifact, so
writers for the same model id must never overlap. ``ModelLockRegistry``
hands out one ``asyncio.Lock`` per id; writers for different ids proceed
independently.

``run_blocking`` moves CPU-bound torch and filesystem work off the event
loop and bounds it with a timeout. A worker thread cannot be interrupted,
so a timed-out worker keeps running. ``ModelLockRegistry.run`` hands such a
worker to the registry, and the next holder of that model's lock waits for
it before entering.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

import structlog

logger = structlog.get_logger("node_scoring.concurrency")


def _consume_result(task: "asyncio.Future[Any]") -> None:
    # Marks the exception of an abandoned worker as retrieved
    if not task.cancelled():
        task.exception()


class ModelLockRegistry:
    """Registry of named locks, one per model id."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._stragglers: Dict[str, List["asyncio.Future[Any]"]] = {}

    def get_lock(self, model_id: str) -> asyncio.Lock:
        """Get or create the lock for ``model_id``."""
        if model_id not in self._locks:
            self._locks[model_id] = asyncio.Lock()
        return self._locks[model_id]

    @asynccontextmanager
    async def hold(self, model_id: str) -> AsyncIterator[None]:
        """Hold the model's lock for the duration of the block.

        Workers abandoned by an earlier holder are awaited first, so the
        block never runs alongside a thread still touching the artifact.
        """
        lock = self.get_lock(model_id)
        if lock.locked():
            logger.info("Waiting for in-flight operation on model", model_id=model_id)
        async with lock:
            await self._settle(model_id)
            yield

    async def _settle(self, model_id: str) -> None:
        stragglers = self._stragglers.pop(model_id, None)
        if stragglers:
            logger.warning(
                "Waiting for timed-out worker to finish",
                model_id=model_id,
                workers=len(stragglers),
            )
            await asyncio.gather(*stragglers, return_exceptions=True)

    def _abandon(self, model_id: str, task: "asyncio.Future[Any]") -> None:
        self._stragglers.setdefault(model_id, []).append(task)

    async def run(
        self,
        model_id: str,
        func: Callable[..., Any],
        *args: Any,
        timeout: Optional[float] = None,
    ) -> Any:
        """``run_blocking`` for a writer holding ``model_id``'s lock.

        On timeout the still-running worker stays attached to the model id
        until it finishes.
        """
        return await run_blocking(
            func, *args, timeout=timeout, on_abandon=lambda task: self._abandon(model_id, task)
        )

    def is_busy(self, model_id: str) -> bool:
        """Whether the lock is held or an abandoned worker is still running."""
        lock = self._locks.get(model_id)
        if lock is not None and lock.locked():
            return True
        return any(not task.done() for task in self._stragglers.get(model_id, ()))

    def discard(self, model_id: str) -> None:
        """Forget the lock of a deleted model."""
        if not self.is_busy(model_id):
            self._locks.pop(model_id, None)
            self._stragglers.pop(model_id, None)

    def __len__(self) -> int:
        return len(self._locks)


async def run_blocking(
    func: Callable[..., Any],
    *args: Any,
    timeout: Optional[float] = None,
    on_abandon: Optional[Callable[["asyncio.Future[Any]"], None]] = None,
) -> Any:
    """Run ``func(*args)`` in a worker thread.

    Raises ``asyncio.TimeoutError`` when ``timeout`` seconds elapse. The
    thread itself cannot be interrupted: if the caller stops waiting, the
    worker's future is passed to ``on_abandon`` and its result discarded.
    """
    task = asyncio.ensure_future(asyncio.to_thread(func, *args))
    try:
        return await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
    except (asyncio.TimeoutError, asyncio.CancelledError):
        task.add_done_callback(_consume_result)
        if not task.done() and on_abandon is not None:
            on_abandon(task)
        raise
