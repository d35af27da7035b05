"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from imagetagger.api.routes import router
from imagetagger.config import get_settings
from imagetagger.ml.inference import InferencePool
from imagetagger.ml.model_manager import OnnxModelManager
from imagetagger.ml.tagger import Tagger

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize on startup, clean up on shutdown."""
    settings = get_settings()
    app.state.settings = settings

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting ImageTagger (device=%s, max_concurrent=%s, model=%s)",
        settings.device,
        settings.max_concurrent,
        settings.model_name,
    )

    # The model itself is loaded by the first tagging request.
    app.state.tagger = Tagger(OnnxModelManager(settings))
    inference_pool = InferencePool(settings)
    app.state.inference_pool = inference_pool

    logger.info("ImageTagger ready")
    yield

    logger.info("Shutting down ImageTagger")
    inference_pool.shutdown()
    logger.info("ImageTagger shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="ImageTagger",
        description="Rating, character and general tag prediction with WD tagger models",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(router)
    return application


app = create_app()
