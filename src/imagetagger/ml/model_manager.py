"""Model manager: download and load WD tagger models.

Handles downloading model and label files from HuggingFace and creating the
ONNX InferenceSession with the configured execution providers.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from huggingface_hub import hf_hub_download
from onnxruntime import InferenceSession, SessionOptions
from onnxruntime.capi.onnxruntime_pybind11_state import ExecutionMode

from imagetagger.errors import CatalogUnavailable, ModelLoadError, ModelUnavailable
from imagetagger.ml.engine import OnnxInferenceEngine
from imagetagger.ml.labels import LabelCatalog, load_catalog

if TYPE_CHECKING:
    from imagetagger.config import Settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Model registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ModelSpec:
    """Static metadata for a single tagger model."""

    name: str
    repo_id: str
    model_filename: str
    label_filename: str
    architecture: str


def _wd_v3(name: str, architecture: str) -> ModelSpec:
    return ModelSpec(
        name=name,
        repo_id=f"SmilingWolf/{name}",
        model_filename="model.onnx",
        label_filename="selected_tags.csv",
        architecture=architecture,
    )


MODEL_REGISTRY: dict[str, ModelSpec] = {
    spec.name: spec
    for spec in (
        _wd_v3("wd-vit-large-tagger-v3", "ViT-L"),
        _wd_v3("wd-vit-tagger-v3", "ViT-B"),
        _wd_v3("wd-swinv2-tagger-v3", "SwinV2"),
        _wd_v3("wd-convnext-tagger-v3", "ConvNeXt"),
        _wd_v3("wd-eva02-large-tagger-v3", "EVA02-L"),
    )
}


def get_spec(model_name: str) -> ModelSpec:
    try:
        return MODEL_REGISTRY[model_name]
    except KeyError:
        raise KeyError(f"Unknown model: {model_name}") from None


# ---------------------------------------------------------------------------
# Concrete implementation
# ---------------------------------------------------------------------------


class OnnxModelManager:
    """Downloads the configured model and loads its labels and ONNX session.

    Satisfies the ``TaggerLoader`` protocol used by ``Tagger``.
    """

    def __init__(self, settings: Settings, model_name: str | None = None) -> None:
        self._settings = settings
        self._spec = get_spec(model_name or settings.model_name)
        self._models_dir = Path(settings.models_dir)

        self._lock = threading.Lock()
        self._paths: dict[str, Path] = {}

        self._providers = self._build_providers()
        self._session_options = self._build_session_options()

    @property
    def spec(self) -> ModelSpec:
        return self._spec

    # -- Public API ---------------------------------------------------------

    def ensure_downloaded(self, filename: str) -> Path:
        """Download a file of the model repo from HuggingFace if not already present locally."""
        with self._lock:
            cached = self._paths.get(filename)
        if cached is not None and cached.exists():
            return cached

        self._models_dir.mkdir(parents=True, exist_ok=True)
        downloaded = Path(
            hf_hub_download(
                repo_id=self._spec.repo_id,
                filename=filename,
                local_dir=str(self._models_dir / self._spec.name),
            )
        )
        with self._lock:
            self._paths[filename] = downloaded
        logger.info("Downloaded %s/%s to %s", self._spec.repo_id, filename, downloaded)
        return downloaded

    def load_labels(self) -> LabelCatalog:
        """Fetch and parse the model's label file."""
        try:
            path = self.ensure_downloaded(self._spec.label_filename)
        except Exception as exc:  # huggingface_hub raises a wide range of HTTP/IO errors
            raise CatalogUnavailable(
                f"cannot download label file: {exc}",
                source=f"{self._spec.repo_id}/{self._spec.label_filename}",
            ) from exc
        return load_catalog(path)

    def load_engine(self) -> OnnxInferenceEngine:
        """Fetch the model file and create an inference session for it."""
        source = f"{self._spec.repo_id}/{self._spec.model_filename}"
        try:
            model_path = self.ensure_downloaded(self._spec.model_filename)
        except Exception as exc:  # huggingface_hub raises a wide range of HTTP/IO errors
            raise ModelUnavailable(f"cannot download model: {exc}", source=source) from exc

        try:
            session = InferenceSession(
                str(model_path),
                sess_options=self._session_options,
                providers=self._providers,
            )
        except Exception as exc:  # onnxruntime raises its own pybind exception types
            raise ModelLoadError(f"cannot create inference session: {exc}", source=str(model_path)) from exc

        logger.info("Loaded session for %s (providers=%s)", self._spec.name, session.get_providers())
        return OnnxInferenceEngine(session, source=str(model_path))

    # -- Internal -----------------------------------------------------------

    def _build_providers(self) -> list[str | tuple[str, dict[str, object]]]:
        device = self._settings.device
        if device == "cuda":
            return [
                (
                    "CUDAExecutionProvider",
                    {
                        "device_id": 0,
                        "arena_extend_strategy": "kSameAsRequested",
                    },
                ),
                "CPUExecutionProvider",
            ]
        if device == "openvino":
            return [
                ("OpenVINOExecutionProvider", {"device_type": "CPU"}),
                "CPUExecutionProvider",
            ]
        return ["CPUExecutionProvider"]

    def _build_session_options(self) -> SessionOptions:
        opts = SessionOptions()
        opts.intra_op_num_threads = self._settings.intra_op_threads
        opts.inter_op_num_threads = self._settings.inter_op_threads
        opts.execution_mode = ExecutionMode.ORT_SEQUENTIAL

        if self._settings.device == "openvino":
            # OpenVINO does its own graph optimization
            from onnxruntime import GraphOptimizationLevel

            opts.graph_optimization_level = GraphOptimizationLevel.ORT_DISABLE_ALL
        return opts
