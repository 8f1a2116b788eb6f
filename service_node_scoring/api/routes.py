"""API routes for the node scoring service."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import FileResponse
from pydantic import BaseModel, ConfigDict, Field
import structlog

from libs.node_scoring import errors
from libs.node_scoring.lifecycle import ModelLifecycleManager
from libs.node_scoring.ranking import RankingEngine
from libs.record_store.base import ModelRecord

logger = structlog.get_logger("node_scoring.api")

router = APIRouter()


class NodeFeatures(BaseModel):
    """Features of one candidate node. Unknown fields are kept and echoed back."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    age: int = Field(..., ge=0, description="The age of the node in the system", examples=[5])
    depth: int = Field(..., ge=0, description="The depth of the node in the tree", examples=[2])
    noise_level: float = Field(..., alias="noiseLevel", description="Noise level when removed from the system", examples=[0.4])
    node_type: int = Field(..., alias="nodeType", description="Node type (0 for child, 1 for parent)", examples=[1])


class LabeledNodeFeatures(NodeFeatures):
    """Training sample: node features plus the target priority."""
    label: float = Field(..., ge=0.0, le=1.0, description="Target priority for removal", examples=[0.9])


class ScoredNode(NodeFeatures):
    """Candidate node with its predicted score."""
    score: float = Field(..., description="Predicted priority score")


class CreateModelRequest(BaseModel):
    """Request model for model creation."""
    name: str = Field(..., min_length=1, description="The name of the model", examples=["NodePriorityModel"])
    metadata: Optional[str] = Field(None, description="Opaque metadata stored with the model")


class TrainRequest(BaseModel):
    """Request model for incremental training."""
    dataset: List[LabeledNodeFeatures] = Field(..., min_length=1, description="Labeled training samples")


class RankRequest(BaseModel):
    """Request model for ranking candidates."""
    candidates: List[NodeFeatures] = Field(..., min_length=1, description="Candidate nodes to score")
    top_k: int = Field(..., description="Number of top nodes to return")


class RankResponse(BaseModel):
    """Response model for ranking."""
    model_config = ConfigDict(protected_namespaces=())

    model_id: str = Field(..., description="Model used for scoring")
    top_nodes: List[ScoredNode] = Field(..., description="Top nodes by descending score")


class ModelInfo(BaseModel):
    """Model record as exposed by the API."""
    id: str
    name: str
    artifact_location: str
    status: str
    backup_artifact_location: Optional[str] = None
    metadata: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: ModelRecord) -> "ModelInfo":
        return cls(**record.to_dict())


class DeleteResponse(BaseModel):
    """Response model for model deletion."""
    model_config = ConfigDict(protected_namespaces=())

    message: str
    model_id: str
    artifact_removed: bool
    warning: Optional[str] = None


_STATUS_CODES = {
    errors.ValidationError: 400,
    errors.NotFoundError: 404,
}


def to_http_exception(error: errors.NodeScoringError) -> HTTPException:
    """Map a core error to an ``HTTPException`` with a stable body."""
    status_code = 500
    for error_type, code in _STATUS_CODES.items():
        if isinstance(error, error_type):
            status_code = code
            break
    return HTTPException(status_code=status_code, detail=error.to_dict())


def _dump(items: List[BaseModel]) -> List[Dict[str, Any]]:
    return [item.model_dump() for item in items]


def get_lifecycle_manager(request: Request) -> ModelLifecycleManager:
    """Get lifecycle manager from application state."""
    return request.app.state.lifecycle_manager


def get_ranking_engine(request: Request) -> RankingEngine:
    """Get ranking engine from application state."""
    return request.app.state.ranking_engine


@router.post("/models", response_model=ModelInfo, status_code=201)
async def create_model(
    request: CreateModelRequest,
    manager: ModelLifecycleManager = Depends(get_lifecycle_manager)
):
    """Create and initialize a new, untrained model."""
    try:
        record = await manager.create_model(request.name, metadata=request.metadata)
    except errors.NodeScoringError as e:
        logger.error("Failed to create model", name=request.name, error=str(e))
        raise to_http_exception(e) from e
    return ModelInfo.from_record(record)


@router.get("/models", response_model=List[ModelInfo])
async def list_models(
    manager: ModelLifecycleManager = Depends(get_lifecycle_manager)
):
    """List all models."""
    try:
        records = await manager.list_models()
    except errors.NodeScoringError as e:
        logger.error("Failed to list models", error=str(e))
        raise to_http_exception(e) from e

    logger.info("Models listed", count=len(records))
    return [ModelInfo.from_record(record) for record in records]


@router.get("/models/{model_id}", response_model=ModelInfo)
async def get_model(
    model_id: str,
    manager: ModelLifecycleManager = Depends(get_lifecycle_manager)
):
    """Get a single model record."""
    try:
        record = await manager.get_model(model_id)
    except errors.NodeScoringError as e:
        raise to_http_exception(e) from e
    return ModelInfo.from_record(record)


@router.put("/models/{model_id}/train", response_model=ModelInfo)
async def train_model(
    model_id: str,
    request: TrainRequest,
    manager: ModelLifecycleManager = Depends(get_lifecycle_manager)
):
    """Incrementally train an existing model, overwriting its artifact."""
    try:
        record = await manager.train_incrementally(model_id, _dump(request.dataset))
    except errors.NodeScoringError as e:
        logger.error("Failed to train model", model_id=model_id, error=str(e))
        raise to_http_exception(e) from e

    logger.info("Model trained", model_id=model_id, samples=len(request.dataset))
    return ModelInfo.from_record(record)


@router.post("/models/{model_id}/rank", response_model=RankResponse)
async def rank_candidates(
    model_id: str,
    request: RankRequest,
    engine: RankingEngine = Depends(get_ranking_engine)
):
    """Score candidate nodes and return the ``top_k`` highest."""
    try:
        top_nodes = await engine.rank(model_id, _dump(request.candidates), request.top_k)
    except errors.NodeScoringError as e:
        logger.error("Failed to rank candidates", model_id=model_id, error=str(e))
        raise to_http_exception(e) from e

    return RankResponse(model_id=model_id, top_nodes=[ScoredNode(**node) for node in top_nodes])


@router.get("/models/{model_id}/download")
async def download_model(
    model_id: str,
    manager: ModelLifecycleManager = Depends(get_lifecycle_manager)
):
    """Download the serialized predictor."""
    try:
        path = await manager.fetch_artifact(model_id)
    except errors.NodeScoringError as e:
        raise to_http_exception(e) from e

    logger.info("Model artifact downloaded", model_id=model_id)
    return FileResponse(path, media_type="application/octet-stream", filename=f"{model_id}.pth")


@router.delete("/models/{model_id}", response_model=DeleteResponse)
async def delete_model(
    model_id: str,
    manager: ModelLifecycleManager = Depends(get_lifecycle_manager)
):
    """Delete a model record and its artifact directory."""
    try:
        result = await manager.delete_model(model_id)
    except errors.NodeScoringError as e:
        logger.error("Failed to delete model", model_id=model_id, error=str(e))
        raise to_http_exception(e) from e

    return DeleteResponse(
        message="Model deleted successfully",
        model_id=result.model_id,
        artifact_removed=result.artifact_removed,
        warning=result.warning,
    )
