"""Error taxonomy for the node scoring core.

Every error carries a stable ``kind`` so transports can map it to a status
code and clients can branch on it without parsing messages.
"""


class NodeScoringError(Exception):
    """Base exception for node scoring operations."""
    kind = "error"

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": str(self)}


class ValidationError(NodeScoringError):
    """Malformed or missing input. Raised before any state change."""
    kind = "validation_error"


class EncodingError(ValidationError):
    """A feature record could not be turned into a numeric vector."""
    kind = "encoding_error"


class NotFoundError(NodeScoringError):
    """Unknown model id."""
    kind = "not_found"


class PersistenceError(NodeScoringError):
    """Record store or artifact persistence failure."""
    kind = "persistence_error"


class TrainingError(NodeScoringError):
    """Predictor load, fit or save failure during training."""
    kind = "training_error"


class InferenceError(NodeScoringError):
    """Predictor load or predict failure during ranking."""
    kind = "inference_error"
