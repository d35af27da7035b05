"""Error taxonomy for the tagging pipeline.

Every failure surfaced by the core is one of these types. ``PredictError``
wraps the stage error raised while tagging a single image.
"""

from __future__ import annotations

from enum import StrEnum


class TaggerError(Exception):
    """Base class for all tagging errors."""

    def __init__(self, message: str, *, source: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.source = source

    def __str__(self) -> str:
        if self.source is None:
            return self.message
        return f"{self.message} ({self.source})"


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


class LoadError(TaggerError):
    """The model or label catalog could not be loaded."""


class CatalogUnavailable(LoadError):
    """The label file could not be retrieved or opened."""


class CatalogParseError(LoadError):
    """The label file contains a malformed row."""


class ModelUnavailable(LoadError):
    """The model file could not be retrieved."""


class ModelLoadError(LoadError):
    """The model file exists but the runtime could not load it."""


# ---------------------------------------------------------------------------
# Preprocessing
# ---------------------------------------------------------------------------


class PreprocessError(TaggerError):
    """The input image could not be converted to a model tensor."""


class InvalidImage(PreprocessError):
    pass


class ZeroDimension(PreprocessError):
    pass


# ---------------------------------------------------------------------------
# Inference
# ---------------------------------------------------------------------------


class InferenceError(TaggerError):
    """The inference runtime failed or returned an unusable output."""


class EngineExecutionFailed(InferenceError):
    pass


class ShapeMismatch(InferenceError):
    pass


# ---------------------------------------------------------------------------
# Prediction
# ---------------------------------------------------------------------------


class PredictStage(StrEnum):
    LOAD = "load"
    PREPROCESS = "preprocess"
    INFERENCE = "inference"


class PredictError(TaggerError):
    """A ``Tagger.predict`` call failed at one of its stages."""

    def __init__(self, stage: PredictStage, cause: TaggerError) -> None:
        super().__init__(f"{stage} failed: {cause.message}", source=cause.source)
        self.stage = stage
        self.cause = cause
