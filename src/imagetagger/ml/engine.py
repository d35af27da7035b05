"""Inference engine contract and its ONNX Runtime implementation."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

import numpy as np

from imagetagger.errors import EngineExecutionFailed, ModelLoadError, ShapeMismatch

if TYPE_CHECKING:
    from numpy.typing import NDArray
    from onnxruntime import InferenceSession

logger = logging.getLogger(__name__)


class InferenceEngine(Protocol):
    """Single-call contract: image tensor in, per-tag probabilities out."""

    @property
    def input_size(self) -> int:
        """Side length ``S`` of the ``(1, S, S, 3)`` input tensor."""
        ...

    def run(self, tensor: NDArray[np.float32]) -> NDArray[np.float32]:
        """Run the model on one image tensor.

        Returns:
            1-D score vector aligned with the label catalog.

        Raises:
            EngineExecutionFailed: If the runtime raises.
            ShapeMismatch: If the output is not a single row of scores.
        """
        ...


class OnnxInferenceEngine:
    """Wraps a loaded ``onnxruntime.InferenceSession``."""

    def __init__(self, session: InferenceSession, source: str | None = None) -> None:
        self._session = session
        self._source = source

        model_input = session.get_inputs()[0]
        self._input_name: str = model_input.name
        shape = list(model_input.shape)
        if len(shape) != 4:
            raise ModelLoadError(f"expected a 4-D model input, got shape {shape}", source=source)
        size = shape[2]
        if not isinstance(size, int) or size <= 0:
            raise ModelLoadError(f"model input has no fixed spatial size: {shape}", source=source)
        self._input_size = size
        logger.info("Model input %s shape %s", self._input_name, shape)

    @property
    def input_size(self) -> int:
        return self._input_size

    def run(self, tensor: NDArray[np.float32]) -> NDArray[np.float32]:
        try:
            outputs = self._session.run(None, {self._input_name: tensor})
        except Exception as exc:  # onnxruntime raises its own pybind exception types
            raise EngineExecutionFailed(f"inference failed: {exc}", source=self._source) from exc

        preds = np.asarray(outputs[0])
        if preds.ndim != 2 or preds.shape[0] != 1:
            raise ShapeMismatch(f"expected output shape (1, N), got {preds.shape}", source=self._source)
        return preds[0].astype(np.float32, copy=False)
