"""API route definitions."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Response, UploadFile, status

from snapclass.api.dependencies import (
    get_app_state,
    get_classifier,
    get_inference_pool,
    get_session,
    get_session_store,
    get_settings,
    verify_api_key,
)
from snapclass.api.schemas import (
    ClassifyImageResponse,
    ErrorResponse,
    HealthResponse,
    ModelInfo,
    ModelsResponse,
    Prediction,
    SessionView,
)
from snapclass.config import Settings
from snapclass.ml.image_classifier import ImageClassifier
from snapclass.ml.inference import InferencePool, PoolSaturatedError
from snapclass.ml.model_manager import ModelUnavailableError
from snapclass.ml.preprocessing import InvalidImageError, decode_image
from snapclass.session import (
    CLASSIFY_FAILED,
    NOT_AN_IMAGE,
    ClassificationFailedError,
    ClassificationInProgressError,
    ClassificationSession,
    NoImageSelectedError,
    SessionStore,
    StaleClassificationError,
    UnsupportedMediaTypeError,
    is_image_media_type,
)
from snapclass.state import AppState

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", dependencies=[Depends(verify_api_key)])

SettingsDep = Annotated[Settings, Depends(get_settings)]
ClassifierDep = Annotated[ImageClassifier, Depends(get_classifier)]
SessionDep = Annotated[ClassificationSession, Depends(get_session)]


async def _read_upload(file: UploadFile, settings: Settings) -> bytes:
    """Validate the declared media type and size of an upload and return its bytes."""
    if not is_image_media_type(file.content_type):
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail=NOT_AN_IMAGE,
        )
    data = await file.read(settings.max_file_size + 1)
    if len(data) > settings.max_file_size:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds {settings.max_file_size} bytes",
        )
    return data


def _model_unavailable(exc: ModelUnavailableError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))


# ---------------------------------------------------------------------------
# Stateless classification
# ---------------------------------------------------------------------------


@router.post(
    "/classify-image",
    response_model=ClassifyImageResponse,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: {"model": ErrorResponse},
        status.HTTP_415_UNSUPPORTED_MEDIA_TYPE: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
    summary="Classify an image and return the top-5 labels",
)
async def classify_image(file: UploadFile, settings: SettingsDep, classifier: ClassifierDep) -> ClassifyImageResponse:
    """Decode, preprocess and classify an uploaded image in one call."""
    data = await _read_upload(file, settings)
    try:
        image = decode_image(data, settings.max_image_pixels)
    except InvalidImageError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    try:
        ranked = await classifier.classify(image)
    except ModelUnavailableError as exc:
        raise _model_unavailable(exc) from exc
    except PoolSaturatedError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Error classifying uploaded image %s", file.filename)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=CLASSIFY_FAILED) from exc

    return ClassifyImageResponse(
        model=classifier.model_name or "",
        predictions=[Prediction.from_ranked(p) for p in ranked],
    )


# ---------------------------------------------------------------------------
# Interactive sessions
# ---------------------------------------------------------------------------


@router.post(
    "/sessions",
    response_model=SessionView,
    status_code=status.HTTP_201_CREATED,
    summary="Start a classification session",
)
async def create_session(store: Annotated[SessionStore, Depends(get_session_store)]) -> SessionView:
    return SessionView.from_session(store.create())


@router.get(
    "/sessions/{session_id}",
    response_model=SessionView,
    responses={status.HTTP_404_NOT_FOUND: {"model": ErrorResponse}},
    summary="Get the state of a classification session",
)
async def read_session(session: SessionDep) -> SessionView:
    return SessionView.from_session(session)


@router.put(
    "/sessions/{session_id}/image",
    response_model=SessionView,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: {"model": ErrorResponse},
        status.HTTP_415_UNSUPPORTED_MEDIA_TYPE: {"model": ErrorResponse},
    },
    summary="Select the image to classify",
)
async def select_image(file: UploadFile, session: SessionDep, settings: SettingsDep) -> SessionView:
    """Replace the session's image. Rejected uploads leave the session unchanged."""
    data = await _read_upload(file, settings)
    try:
        session.select_image(file.content_type, data, filename=file.filename)
    except UnsupportedMediaTypeError as exc:
        raise HTTPException(status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE, detail=str(exc)) from exc
    except InvalidImageError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return SessionView.from_session(session)


@router.post(
    "/sessions/{session_id}/classify",
    response_model=SessionView,
    responses={
        status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
        status.HTTP_409_CONFLICT: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
    summary="Classify the session's selected image",
)
async def classify_session(session: SessionDep, classifier: ClassifierDep) -> SessionView:
    try:
        await session.classify(classifier)
    except ModelUnavailableError as exc:
        raise _model_unavailable(exc) from exc
    except PoolSaturatedError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except (NoImageSelectedError, ClassificationInProgressError, StaleClassificationError) as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except ClassificationFailedError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return SessionView.from_session(session)


@router.delete(
    "/sessions/{session_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={status.HTTP_404_NOT_FOUND: {"model": ErrorResponse}},
    summary="Discard a classification session",
)
async def delete_session(
    session: SessionDep,
    store: Annotated[SessionStore, Depends(get_session_store)],
) -> Response:
    store.delete(session.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Service info
# ---------------------------------------------------------------------------


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(
    settings: SettingsDep,
    app_state: Annotated[AppState, Depends(get_app_state)],
    pool: Annotated[InferencePool, Depends(get_inference_pool)],
) -> HealthResponse:
    """Return service health status."""
    labels = app_state.labels
    return HealthResponse(
        status="ok" if app_state.model_loaded else "degraded",
        gpu=settings.device == "cuda",
        model_loaded=app_state.model_loaded,
        labels_count=len(labels) if labels is not None else 0,
        labels_source=labels.source if labels is not None else None,
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
    )


@router.get(
    "/models",
    response_model=ModelsResponse,
    summary="List the classification model",
)
async def list_models(
    settings: SettingsDep,
    app_state: Annotated[AppState, Depends(get_app_state)],
) -> ModelsResponse:
    """Return the configured model and whether it loaded."""
    return ModelsResponse(
        models=[
            ModelInfo(
                name=settings.model_name,
                repo_id=settings.model_repo_id,
                status="active" if app_state.model_loaded else "unavailable",
            )
        ]
    )
