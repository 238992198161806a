"""Pydantic request/response schemas for the SnapClass API."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from snapclass.session import SessionState

if TYPE_CHECKING:
    from snapclass.ml.ranking import RankedPrediction
    from snapclass.session import ClassificationSession


class Prediction(BaseModel):
    """A single ranked label with its probability."""

    label: str
    probability: float = Field(ge=0.0, le=1.0)
    percentage: str = Field(description="Probability as a percentage with two decimals, e.g. '87.12%'")

    @classmethod
    def from_ranked(cls, ranked: RankedPrediction) -> Prediction:
        probability = min(max(ranked.probability, 0.0), 1.0)
        return cls(label=ranked.label, probability=probability, percentage=ranked.percentage)


class ClassifyImageResponse(BaseModel):
    """Response for the stateless classification endpoint."""

    model: str
    predictions: list[Prediction]


class SessionView(BaseModel):
    """Rendered state of a classification session."""

    id: str
    state: SessionState
    can_classify: bool = Field(description="Whether the classify action is enabled")
    loading: bool = Field(description="Whether a classification is in flight")
    filename: str | None = None
    predictions: list[Prediction]

    @classmethod
    def from_session(cls, session: ClassificationSession) -> SessionView:
        return cls(
            id=session.id,
            state=session.state,
            can_classify=session.can_classify,
            loading=session.loading,
            filename=session.filename,
            predictions=[Prediction.from_ranked(p) for p in session.predictions],
        )


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    gpu: bool
    model_loaded: bool
    labels_count: int
    labels_source: str | None
    concurrent_requests: int
    queue_depth: int


class ModelInfo(BaseModel):
    """Information about the configured classification model."""

    name: str
    repo_id: str
    task: str = "image_classification"
    status: str = Field(description="Model status: 'active' or 'unavailable'")


class ModelsResponse(BaseModel):
    """Response for the models listing endpoint."""

    models: list[ModelInfo]


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
