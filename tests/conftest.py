"""Shared fakes: an in-memory engine and loader so no model is downloaded."""

from __future__ import annotations

from collections.abc import Callable, Sequence

import numpy as np
import pytest
from numpy.typing import NDArray

from imagetagger.ml.labels import LabelCatalog


class FakeEngine:
    """Returns fixed scores and records the tensors it was given."""

    def __init__(self, scores: Sequence[float], input_size: int = 8) -> None:
        self._scores = np.asarray(scores, dtype=np.float32)
        self._input_size = input_size
        self.calls: list[NDArray[np.float32]] = []

    @property
    def input_size(self) -> int:
        return self._input_size

    def run(self, tensor: NDArray[np.float32]) -> NDArray[np.float32]:
        self.calls.append(tensor)
        return self._scores


class FakeLoader:
    """Counts load calls; ``fail_with`` makes ``load_engine`` raise."""

    def __init__(self, catalog: LabelCatalog, engine: FakeEngine) -> None:
        self.catalog = catalog
        self.engine = engine
        self.label_loads = 0
        self.engine_loads = 0
        self.fail_with: Exception | None = None

    def load_labels(self) -> LabelCatalog:
        self.label_loads += 1
        return self.catalog

    def load_engine(self) -> FakeEngine:
        self.engine_loads += 1
        if self.fail_with is not None:
            raise self.fail_with
        return self.engine


@pytest.fixture()
def small_catalog() -> LabelCatalog:
    return LabelCatalog.from_rows(
        [
            ("1girl", 0),
            ("rating:safe", 9),
            ("oc_hero", 4),
        ]
    )


@pytest.fixture()
def make_loader() -> Callable[..., FakeLoader]:
    def _make(rows: Sequence[tuple[str, int]], scores: Sequence[float], input_size: int = 8) -> FakeLoader:
        return FakeLoader(LabelCatalog.from_rows(rows), FakeEngine(scores, input_size=input_size))

    return _make
