"""Environment-based configuration for ImageTagger."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from IMAGETAGGER_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="IMAGETAGGER_",
        case_sensitive=False,
        protected_namespaces=(),
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8083

    # ML device
    device: Literal["cpu", "cuda", "openvino"] = "cpu"

    # Model selection
    model_name: str = "wd-vit-large-tagger-v3"
    models_dir: str = "models"

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)

    # Concurrency
    max_concurrent: int = Field(default=2, ge=1)

    # Input limits
    max_image_pixels: int = Field(default=16_777_216, ge=1)
    max_file_size: int = Field(default=209_715_200, ge=1)

    # Thresholding defaults
    general_threshold: float = Field(default=0.35, ge=0.0, le=1.0)
    general_mcut: bool = False
    character_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    character_mcut: bool = False


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
