"""Tagging orchestrator.

``Tagger`` owns the label catalog and the inference engine. Both are loaded
together on first use, exactly once, and are read-only afterwards so any
number of threads may call ``predict`` concurrently.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Protocol

from imagetagger.errors import (
    InferenceError,
    LoadError,
    ModelLoadError,
    PredictError,
    PredictStage,
    PreprocessError,
    ShapeMismatch,
)
from imagetagger.ml.preprocessing import prepare_image
from imagetagger.ml.thresholds import (
    CHARACTER_MCUT_FLOOR,
    DEFAULT_CHARACTER_THRESHOLD,
    DEFAULT_GENERAL_THRESHOLD,
    ScoredTag,
    select_tags,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    import numpy as np
    from numpy.typing import NDArray
    from PIL import Image

    from imagetagger.ml.engine import InferenceEngine
    from imagetagger.ml.labels import LabelCatalog

logger = logging.getLogger(__name__)


class TaggerLoader(Protocol):
    """Supplies the label catalog and the loaded inference engine."""

    def load_labels(self) -> LabelCatalog:
        """Return the parsed label catalog."""
        ...

    def load_engine(self) -> InferenceEngine:
        """Return a ready-to-run inference engine."""
        ...


class TaggerState(StrEnum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    LOADED = "loaded"


@dataclass(frozen=True)
class TaggingResult:
    """Tags predicted for one image."""

    caption: str
    rating: ScoredTag | None
    character: list[ScoredTag] = field(default_factory=list)
    general: list[ScoredTag] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "caption": self.caption,
            "rating": None if self.rating is None else {"name": self.rating[0], "score": self.rating[1]},
            "character": [{"name": name, "score": score} for name, score in self.character],
            "general": [{"name": name, "score": score} for name, score in self.general],
        }


class Tagger:
    """Loads a tagger model lazily and turns images into ``TaggingResult``s."""

    def __init__(self, loader: TaggerLoader) -> None:
        self._loader = loader
        self._lock = threading.Lock()
        self._state = TaggerState.UNLOADED
        self._catalog: LabelCatalog | None = None
        self._engine: InferenceEngine | None = None

    @property
    def state(self) -> TaggerState:
        return self._state

    @property
    def catalog(self) -> LabelCatalog | None:
        return self._catalog

    def ensure_loaded(self) -> None:
        """Load the catalog and engine if this has not happened yet.

        Concurrent callers block until the in-flight load finishes. A failed
        load leaves the tagger ``UNLOADED`` so a later call can retry.

        Raises:
            LoadError: If the catalog or the model cannot be loaded.
        """
        if self._state is TaggerState.LOADED:
            return

        with self._lock:
            if self._state is TaggerState.LOADED:
                return
            self._state = TaggerState.LOADING
            try:
                catalog = self._loader.load_labels()
                engine = self._loader.load_engine()
            except LoadError:
                self._state = TaggerState.UNLOADED
                raise
            except Exception as exc:
                self._state = TaggerState.UNLOADED
                raise ModelLoadError(f"loader failed: {exc}") from exc

            self._catalog = catalog
            self._engine = engine
            self._state = TaggerState.LOADED
            logger.info("Tagger ready (%d tags, input size %d)", len(catalog), engine.input_size)

    def predict(
        self,
        image: Image.Image,
        general_threshold: float = DEFAULT_GENERAL_THRESHOLD,
        general_mcut: bool = False,
        character_threshold: float = DEFAULT_CHARACTER_THRESHOLD,
        character_mcut: bool = False,
    ) -> TaggingResult:
        """Tag a single image.

        Raises:
            PredictError: If loading, preprocessing or inference fails. The
                stage error is available as ``cause``.
        """
        try:
            self.ensure_loaded()
        except LoadError as exc:
            raise PredictError(PredictStage.LOAD, exc) from exc

        catalog = self._catalog
        engine = self._engine
        if catalog is None or engine is None:
            raise PredictError(PredictStage.LOAD, ModelLoadError("tagger is loaded without a catalog or engine"))

        try:
            tensor = prepare_image(image, engine.input_size)
        except PreprocessError as exc:
            raise PredictError(PredictStage.PREPROCESS, exc) from exc

        try:
            scores = engine.run(tensor)
            if len(scores) != len(catalog):
                raise ShapeMismatch(f"model returned {len(scores)} scores for {len(catalog)} tags")
        except InferenceError as exc:
            raise PredictError(PredictStage.INFERENCE, exc) from exc

        rating = _best_rating(catalog, scores)
        general = _candidates(catalog, catalog.general_indices, scores)
        character = _candidates(catalog, catalog.character_indices, scores)

        general, general_cut = select_tags(general, general_threshold, adaptive=general_mcut)
        character, character_cut = select_tags(
            character,
            character_threshold,
            adaptive=character_mcut,
            floor=CHARACTER_MCUT_FLOOR,
        )

        general.sort(key=lambda tag: tag[1], reverse=True)
        logger.debug(
            "Tagged image: %d general (> %.3f), %d character (> %.3f)",
            len(general),
            general_cut,
            len(character),
            character_cut,
        )
        return TaggingResult(
            caption=", ".join(name for name, _ in general),
            rating=rating,
            character=character,
            general=general,
        )


def _candidates(catalog: LabelCatalog, indices: Sequence[int], scores: NDArray[np.float32]) -> list[ScoredTag]:
    return [(catalog.entries[i].name, float(scores[i])) for i in indices]


def _best_rating(catalog: LabelCatalog, scores: NDArray[np.float32]) -> ScoredTag | None:
    best: ScoredTag | None = None
    for name, score in _candidates(catalog, catalog.rating_indices, scores):
        if best is None or score > best[1]:
            best = (name, score)
    return best
