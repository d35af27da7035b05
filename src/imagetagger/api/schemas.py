"""Pydantic response schemas for the ImageTagger API."""

from __future__ import annotations

from pydantic import BaseModel, Field

from imagetagger.ml.tagger import TaggingResult


class TagScore(BaseModel):
    """A single tag with its model confidence."""

    name: str
    score: float = Field(ge=0.0, le=1.0)


class TagImageResponse(BaseModel):
    """Tags predicted for an uploaded image."""

    caption: str = Field(description="General tags joined with ', ', highest score first")
    rating: TagScore | None
    character: list[TagScore] = Field(description="Character tags in catalog order")
    general: list[TagScore] = Field(description="General tags sorted by descending score")

    @classmethod
    def from_result(cls, result: TaggingResult) -> TagImageResponse:
        return cls(
            caption=result.caption,
            rating=None if result.rating is None else TagScore(name=result.rating[0], score=result.rating[1]),
            character=[TagScore(name=name, score=score) for name, score in result.character],
            general=[TagScore(name=name, score=score) for name, score in result.general],
        )


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    gpu: bool
    model: str
    model_state: str = Field(description="Tagger state: 'unloaded', 'loading', or 'loaded'")
    concurrent_requests: int
    queue_depth: int


class ModelInfo(BaseModel):
    """Information about an available tagger model."""

    name: str
    repo_id: str
    architecture: str
    status: str = Field(description="Model status: 'active' or 'available'")


class ModelsResponse(BaseModel):
    """Response for the models listing endpoint."""

    models: list[ModelInfo]


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
