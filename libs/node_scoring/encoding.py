"""Validation and feature encoding for node records.

Everything here is pure: no I/O, no model access. Lifecycle and ranking
operations call these first so malformed input is rejected before any
artifact is loaded or written.

The feature order is fixed and shared by training and inference:
``[age, depth, noise_level, node_type]``. Fields are read by name, so the
key order of the incoming mapping never matters.
"""

import math
from numbers import Real
from typing import Any, Mapping, Optional, Sequence

import numpy as np

from .errors import EncodingError, ValidationError

FEATURE_FIELDS = ("age", "depth", "noise_level", "node_type")
LABEL_FIELD = "label"


def _numeric(value: Any) -> bool:
    # bool is an int subclass but never a meaningful feature value
    if isinstance(value, bool) or not isinstance(value, (Real, np.integer, np.floating)):
        return False
    return math.isfinite(float(value))


def encode(records: Sequence[Mapping[str, Any]]) -> np.ndarray:
    """Encode feature records into an ``(N, 4)`` float32 matrix.

    Raises
    - ``EncodingError`` if a record is not a mapping or a feature is
      missing, non-numeric or non-finite.
    """
    rows = []
    for index, record in enumerate(records):
        if not isinstance(record, Mapping):
            raise EncodingError(f"Record {index} is not an object")
        row = []
        for name in FEATURE_FIELDS:
            if name not in record:
                raise EncodingError(f"Record {index} is missing required field '{name}'")
            value = record[name]
            if not _numeric(value):
                raise EncodingError(f"Record {index} field '{name}' must be a finite number, got {value!r}")
            row.append(float(value))
        rows.append(row)
    return np.asarray(rows, dtype=np.float32).reshape(len(rows), len(FEATURE_FIELDS))


def encode_labels(dataset: Sequence[Mapping[str, Any]]) -> np.ndarray:
    """Extract the ``label`` column as an ``(N,)`` float32 vector."""
    return np.asarray([float(record[LABEL_FIELD]) for record in dataset], dtype=np.float32)


def validate_name(name: Any) -> str:
    """Validate a model name and return it stripped."""
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Model name is required")
    return name.strip()


def _validate_records(records: Any, what: str) -> None:
    if isinstance(records, (str, bytes, Mapping)) or not isinstance(records, Sequence):
        raise ValidationError(f"{what} must be an array of objects")
    if len(records) == 0:
        raise ValidationError(f"{what} is required and must be a non-empty array")
    for index, record in enumerate(records):
        if not isinstance(record, Mapping):
            raise ValidationError(f"{what} item {index} is not an object")


def validate_dataset(dataset: Any) -> None:
    """Validate a labeled training dataset.

    Labels are targets of a binary cross-entropy loss and must lie in
    ``[0, 1]``.
    """
    _validate_records(dataset, "Dataset")
    for index, record in enumerate(dataset):
        if LABEL_FIELD not in record:
            raise ValidationError(f"Dataset item {index} is missing '{LABEL_FIELD}'")
        label = record[LABEL_FIELD]
        if not _numeric(label):
            raise ValidationError(f"Dataset item {index} label must be a finite number, got {label!r}")
        if not 0.0 <= float(label) <= 1.0:
            raise ValidationError(f"Dataset item {index} label must be between 0 and 1, got {label!r}")


def validate_candidate_batch(
    candidates: Any,
    top_k: Any,
    max_batch_size: Optional[int] = None,
) -> None:
    """Validate a ranking request: non-empty batch and ``1 <= top_k <= len``."""
    _validate_records(candidates, "Candidates")
    if max_batch_size is not None and len(candidates) > max_batch_size:
        raise ValidationError(
            f"Candidate batch of {len(candidates)} exceeds the maximum of {max_batch_size}"
        )
    if isinstance(top_k, bool) or not isinstance(top_k, int):
        raise ValidationError("Invalid number of nodes specified")
    if top_k <= 0 or top_k > len(candidates):
        raise ValidationError(
            f"Invalid number of nodes specified: expected 1..{len(candidates)}, got {top_k}"
        )
