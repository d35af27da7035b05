"""Tests for the ONNX inference engine wrapper."""

from __future__ import annotations

from unittest.mock import MagicMock

import numpy as np
import pytest

from imagetagger.errors import EngineExecutionFailed, ModelLoadError, ShapeMismatch
from imagetagger.ml.engine import OnnxInferenceEngine


def _session(shape: list[object], output: object = None) -> MagicMock:
    model_input = MagicMock()
    model_input.name = "input_1:0"
    model_input.shape = shape
    session = MagicMock()
    session.get_inputs.return_value = [model_input]
    session.run.return_value = [output]
    return session


class TestOnnxInferenceEngine:
    def test_input_size_from_model_shape(self) -> None:
        engine = OnnxInferenceEngine(_session(["batch", 448, 448, 3]))
        assert engine.input_size == 448

    def test_symbolic_size_rejected(self) -> None:
        with pytest.raises(ModelLoadError, match="fixed spatial size"):
            OnnxInferenceEngine(_session(["batch", "height", "width", 3]), source="model.onnx")

    def test_wrong_rank_rejected(self) -> None:
        with pytest.raises(ModelLoadError, match="4-D"):
            OnnxInferenceEngine(_session([1, 3, 224]))

    def test_run_returns_first_row(self) -> None:
        session = _session([1, 4, 4, 3], np.array([[0.1, 0.9, 0.5]], dtype=np.float32))
        engine = OnnxInferenceEngine(session)
        tensor = np.zeros((1, 4, 4, 3), dtype=np.float32)

        scores = engine.run(tensor)

        assert scores.shape == (3,)
        assert scores.dtype == np.float32
        assert scores.tolist() == pytest.approx([0.1, 0.9, 0.5])
        session.run.assert_called_once()
        assert session.run.call_args.args[1]["input_1:0"] is tensor

    def test_runtime_failure(self) -> None:
        session = _session([1, 4, 4, 3])
        session.run.side_effect = RuntimeError("CUDA out of memory")
        engine = OnnxInferenceEngine(session, source="model.onnx")

        with pytest.raises(EngineExecutionFailed, match="CUDA out of memory") as excinfo:
            engine.run(np.zeros((1, 4, 4, 3), dtype=np.float32))
        assert excinfo.value.source == "model.onnx"

    @pytest.mark.parametrize(
        "output",
        [
            np.zeros((3,), dtype=np.float32),
            np.zeros((2, 3), dtype=np.float32),
            np.zeros((1, 3, 1), dtype=np.float32),
        ],
    )
    def test_output_shape_mismatch(self, output: np.ndarray) -> None:
        engine = OnnxInferenceEngine(_session([1, 4, 4, 3], output))
        with pytest.raises(ShapeMismatch):
            engine.run(np.zeros((1, 4, 4, 3), dtype=np.float32))
