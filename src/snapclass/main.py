"""FastAPI application entry point."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from snapclass.config import Settings
    from snapclass.ml.model_manager import ModelHandle

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from snapclass.api.routes import router
from snapclass.config import get_settings
from snapclass.ml.image_classifier import ImageClassifier
from snapclass.ml.inference import InferencePool
from snapclass.ml.labels import LabelCatalog
from snapclass.ml.model_manager import OnnxModelManager, load_model
from snapclass.session import SessionStore
from snapclass.state import AppState

logger = logging.getLogger(__name__)


def init_app_state(app: FastAPI, settings: Settings) -> AppState:
    """Attach settings, shared resources, the classifier and the session store to ``app.state``."""
    app_state = AppState()
    inference_pool = InferencePool(settings)
    app.state.settings = settings
    app.state.resources = app_state
    app.state.inference_pool = inference_pool
    app.state.classifier = ImageClassifier(app_state, inference_pool)
    app.state.sessions = SessionStore(settings.max_sessions, max_pixels=settings.max_image_pixels)
    return app_state


async def load_resources(settings: Settings) -> tuple[LabelCatalog, ModelHandle | None]:
    """Fetch the label catalog and load the model concurrently."""
    manager = OnnxModelManager(settings)
    labels, model = await asyncio.gather(
        LabelCatalog.load(settings.labels_url),
        load_model(manager),
    )
    return labels, model


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: load the catalog and model on startup, release on shutdown."""
    settings = get_settings()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting SnapClass (device=%s, max_concurrent=%s, model=%s/%s)",
        settings.device,
        settings.max_concurrent,
        settings.model_repo_id,
        settings.model_filename,
    )

    app_state = init_app_state(app, settings)
    labels, model = await load_resources(settings)
    app_state.initialize(labels, model)
    if model is None:
        logger.error("Failed to load the AI model; classification is unavailable until restart")

    logger.info("SnapClass ready")
    yield

    logger.info("Shutting down SnapClass")
    app.state.sessions.clear()
    app.state.inference_pool.shutdown()
    app_state.teardown()
    logger.info("SnapClass shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="SnapClass",
        description="Upload an image and get its top-5 ImageNet labels",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(router)
    return application


app = create_app()
