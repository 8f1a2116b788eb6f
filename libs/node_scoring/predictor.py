"""Node priority predictor.

A small feed-forward network mapping the 4-feature node vector to a priority
score in ``[0, 1]``:

    Linear(4, hidden) -> ReLU -> Linear(hidden, 1) -> Sigmoid

The predictor follows a compile/fit/predict/save/load lifecycle. Optimizer
state is never serialized, so ``compile`` must be called again after ``load``
before ``fit``.

Artifact format: a ``torch.save`` dictionary holding the topology and the
network ``state_dict``. It contains only tensors and primitives so it loads
with ``weights_only=True``.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import numpy as np
import structlog
import torch
from torch import nn
from torch.utils.data import DataLoader, TensorDataset

from .encoding import FEATURE_FIELDS

logger = structlog.get_logger("node_scoring.predictor")

ARTIFACT_FORMAT_VERSION = 1


class NodePriorityPredictor:
    """Trainable scalar scorer over the fixed node feature vector."""

    def __init__(self, hidden_units: int = 10, input_dim: int = len(FEATURE_FIELDS)):
        self.input_dim = input_dim
        self.hidden_units = hidden_units
        self.network = nn.Sequential(
            nn.Linear(input_dim, hidden_units),
            nn.ReLU(),
            nn.Linear(hidden_units, 1),
            nn.Sigmoid(),
        )
        self.optimizer: Optional[torch.optim.Optimizer] = None
        self.loss_fn: Optional[nn.Module] = None

    @property
    def topology(self) -> Dict[str, Any]:
        return {
            "input_dim": self.input_dim,
            "hidden_units": self.hidden_units,
            "hidden_activation": "relu",
            "output_activation": "sigmoid",
        }

    def compile(self, learning_rate: float = 0.001) -> "NodePriorityPredictor":
        """Attach a fresh Adam optimizer and binary cross-entropy loss."""
        self.optimizer = torch.optim.Adam(self.network.parameters(), lr=learning_rate)
        self.loss_fn = nn.BCELoss()
        return self

    def fit(
        self,
        features: np.ndarray,
        labels: np.ndarray,
        epochs: int = 10,
        batch_size: int = 32,
    ) -> List[float]:
        """Fit on the full dataset for ``epochs`` passes.

        Returns the mean loss of each epoch.
        """
        if self.optimizer is None or self.loss_fn is None:
            raise RuntimeError("Predictor must be compiled before fit")

        inputs = torch.as_tensor(np.asarray(features, dtype=np.float32))
        targets = torch.as_tensor(np.asarray(labels, dtype=np.float32)).reshape(-1, 1)
        if inputs.ndim != 2 or inputs.shape[1] != self.input_dim:
            raise ValueError(f"Expected features of shape (N, {self.input_dim}), got {tuple(inputs.shape)}")
        if inputs.shape[0] != targets.shape[0]:
            raise ValueError("Features and labels must have the same number of rows")

        dataloader = DataLoader(TensorDataset(inputs, targets), batch_size=batch_size, shuffle=True)

        history = []
        self.network.train()
        for epoch in range(epochs):
            epoch_loss = 0.0
            batch_count = 0
            for batch_inputs, batch_targets in dataloader:
                self.optimizer.zero_grad()
                loss = self.loss_fn(self.network(batch_inputs), batch_targets)
                loss.backward()
                self.optimizer.step()
                epoch_loss += loss.item()
                batch_count += 1
            history.append(epoch_loss / batch_count)
            logger.debug(f"Epoch {epoch + 1}/{epochs}", loss=history[-1])
        self.network.eval()
        return history

    def predict(self, features: np.ndarray) -> np.ndarray:
        """Score a batch; returns an ``(N,)`` float array."""
        inputs = torch.as_tensor(np.asarray(features, dtype=np.float32))
        self.network.eval()
        with torch.no_grad():
            outputs = self.network(inputs)
        return outputs.reshape(-1).numpy()

    def bootstrap(self, samples: int = 10, learning_rate: float = 0.001) -> "NodePriorityPredictor":
        """Give a fresh network concrete weights from random placeholder data.

        This is a structural step so the artifact can be serialized; the
        result has learned nothing.
        """
        features = torch.randn(samples, self.input_dim).numpy()
        labels = torch.rand(samples).numpy()
        self.compile(learning_rate)
        self.fit(features, labels, epochs=1, batch_size=samples)
        return self

    def state(self) -> Dict[str, torch.Tensor]:
        """A detached copy of the network weights."""
        return {name: tensor.detach().clone() for name, tensor in self.network.state_dict().items()}

    def save(self, path: Union[str, Path]) -> None:
        """Serialize topology and weights to ``path``."""
        torch.save(
            {
                "format_version": ARTIFACT_FORMAT_VERSION,
                "topology": self.topology,
                "state_dict": self.network.state_dict(),
            },
            str(path),
        )

    @classmethod
    def load(cls, path: Union[str, Path]) -> "NodePriorityPredictor":
        """Rebuild a predictor from an artifact written by ``save``."""
        payload = torch.load(str(path), map_location="cpu", weights_only=True)
        if payload.get("format_version") != ARTIFACT_FORMAT_VERSION:
            raise ValueError(f"Unsupported artifact format: {payload.get('format_version')!r}")

        topology = payload["topology"]
        predictor = cls(hidden_units=topology["hidden_units"], input_dim=topology["input_dim"])
        predictor.network.load_state_dict(payload["state_dict"])
        predictor.network.eval()
        return predictor
