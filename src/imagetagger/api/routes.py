"""API route definitions."""

from __future__ import annotations

import logging
from functools import partial
from typing import TYPE_CHECKING, Annotated, Any

from fastapi import APIRouter, HTTPException, Query, Request, UploadFile, status

from imagetagger.api.schemas import (
    ErrorResponse,
    HealthResponse,
    ModelInfo,
    ModelsResponse,
    TagImageResponse,
)
from imagetagger.errors import InvalidImage, PredictError, PredictStage
from imagetagger.ml.model_manager import MODEL_REGISTRY
from imagetagger.ml.preprocessing import decode_image

if TYPE_CHECKING:
    from imagetagger.config import Settings
    from imagetagger.ml.inference import InferencePool
    from imagetagger.ml.tagger import Tagger, TaggingResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1")

Threshold = Annotated[float | None, Query(ge=0.0, le=1.0)]


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_inference_pool(request: Request) -> InferencePool:
    pool: InferencePool = request.app.state.inference_pool
    return pool


def _get_tagger(request: Request) -> Tagger:
    tagger: Tagger = request.app.state.tagger
    return tagger


def _decode_and_predict(tagger: Tagger, data: bytes, max_pixels: int, **thresholds: Any) -> TaggingResult:
    # Called on an inference worker thread.
    image = decode_image(data, max_pixels=max_pixels)
    return tagger.predict(image, **thresholds)


@router.post(
    "/tag-image",
    response_model=TagImageResponse,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
    summary="Tag an image",
)
async def tag_image(
    request: Request,
    file: UploadFile,
    general_threshold: Threshold = None,
    general_mcut: bool | None = None,
    character_threshold: Threshold = None,
    character_mcut: bool | None = None,
) -> TagImageResponse:
    """Predict rating, character and general tags for an uploaded image.

    Threshold parameters left unset fall back to the configured defaults.
    """
    settings = _get_settings(request)
    pool = _get_inference_pool(request)
    tagger = _get_tagger(request)

    data = await file.read()
    if len(data) > settings.max_file_size:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds {settings.max_file_size} bytes",
        )

    predict = partial(
        _decode_and_predict,
        tagger,
        data,
        settings.max_image_pixels,
        general_threshold=settings.general_threshold if general_threshold is None else general_threshold,
        general_mcut=settings.general_mcut if general_mcut is None else general_mcut,
        character_threshold=settings.character_threshold if character_threshold is None else character_threshold,
        character_mcut=settings.character_mcut if character_mcut is None else character_mcut,
    )
    try:
        result = await pool.run(predict)
    except InvalidImage as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except TimeoutError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Tagger is busy, try again later",
        ) from exc
    except PredictError as exc:
        logger.warning("Tagging %s failed: %s", file.filename, exc)
        code = (
            status.HTTP_400_BAD_REQUEST
            if exc.stage is PredictStage.PREPROCESS
            else status.HTTP_503_SERVICE_UNAVAILABLE
        )
        raise HTTPException(status_code=code, detail=str(exc)) from exc

    return TagImageResponse.from_result(result)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    settings = _get_settings(request)
    pool = _get_inference_pool(request)
    tagger = _get_tagger(request)
    return HealthResponse(
        status="ok",
        gpu=settings.device == "cuda",
        model=settings.model_name,
        model_state=tagger.state.value,
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
    )


@router.get(
    "/models",
    response_model=ModelsResponse,
    summary="List available models",
)
async def list_models(request: Request) -> ModelsResponse:
    """Return the known tagger models and which one is active."""
    settings = _get_settings(request)
    return ModelsResponse(
        models=[
            ModelInfo(
                name=spec.name,
                repo_id=spec.repo_id,
                architecture=spec.architecture,
                status="active" if spec.name == settings.model_name else "available",
            )
            for spec in MODEL_REGISTRY.values()
        ]
    )
