"""Filesystem artifact store.

One directory per model id under a configured root::

    <root>/<model_id>/model.pth

The location of a model is derived from its id alone. Each save writes
its own uniquely named temporary file next to the artifact and
``os.replace``s it into place, so readers see either the previous weights
or the new ones, never a partial file. All methods are blocking; async
callers run them in worker threads.
"""

import os
import shutil
import tempfile
from pathlib import Path
from typing import Union

import structlog

from .predictor import NodePriorityPredictor

logger = structlog.get_logger("node_scoring.artifact_store")

ARTIFACT_FILENAME = "model.pth"


class ArtifactStore:
    """Reads and writes serialized predictors keyed by model id."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def location_for(self, model_id: str) -> Path:
        location = (self.root / model_id).resolve()
        if location.parent != self.root.resolve():
            raise ValueError(f"Invalid model id for artifact location: {model_id!r}")
        return location

    @staticmethod
    def artifact_file(location: Union[str, Path]) -> Path:
        return Path(location) / ARTIFACT_FILENAME

    def save(self, model_id: str, predictor: NodePriorityPredictor) -> str:
        """Persist ``predictor`` for ``model_id`` and return its location."""
        location = self.location_for(model_id)
        location.mkdir(parents=True, exist_ok=True)

        target = self.artifact_file(location)
        fd, name = tempfile.mkstemp(dir=location, prefix=f".{ARTIFACT_FILENAME}.", suffix=".tmp")
        os.close(fd)
        temporary = Path(name)
        try:
            predictor.save(temporary)
            os.replace(temporary, target)
        finally:
            if temporary.exists():
                temporary.unlink()

        logger.debug("Saved artifact", model_id=model_id, path=str(target))
        return str(location)

    def load(self, location: Union[str, Path]) -> NodePriorityPredictor:
        """Load the predictor stored at ``location``."""
        return NodePriorityPredictor.load(self.artifact_file(location))

    def exists(self, location: Union[str, Path]) -> bool:
        return self.artifact_file(location).is_file()

    def remove(self, model_id: str) -> bool:
        """Recursively remove the model's directory.

        Returns ``False`` if there was nothing to remove. Other filesystem
        errors propagate.
        """
        location = self.location_for(model_id)
        if not location.exists():
            return False
        shutil.rmtree(location)
        logger.debug("Removed artifact directory", model_id=model_id, path=str(location))
        return True
