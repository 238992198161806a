"""Model manager: download and load the ONNX classification model.

Downloads the configured model from HuggingFace, creates the ONNX
InferenceSession and wraps it in a ModelHandle. The handle is created once
at startup and never replaced.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from huggingface_hub import hf_hub_download
from onnxruntime import InferenceSession, SessionOptions
from onnxruntime.capi.onnxruntime_pybind11_state import ExecutionMode

if TYPE_CHECKING:
    from snapclass.config import Settings

logger = logging.getLogger(__name__)


class ModelUnavailableError(RuntimeError):
    """Raised when classification is attempted without a loaded model."""


# ---------------------------------------------------------------------------
# Protocol (kept for test mocking)
# ---------------------------------------------------------------------------


class ModelManager(Protocol):
    """Protocol for model lifecycle management."""

    def ensure_downloaded(self) -> Path:
        """Ensure the model is downloaded and return its file path."""
        ...

    def load(self) -> ModelHandle:
        """Create an inference session for the model."""
        ...


# ---------------------------------------------------------------------------
# Model handle
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ModelHandle:
    """A loaded classification model and what is needed to feed it."""

    name: str
    session: Any
    input_name: str
    channels_first: bool = False
    apply_softmax: bool = False

    @classmethod
    def from_session(cls, name: str, session: Any, *, apply_softmax: bool = False) -> ModelHandle:
        """Build a handle, detecting NCHW vs NHWC from the first input's shape."""
        model_input = session.get_inputs()[0]
        shape = list(model_input.shape)
        channels_first = len(shape) == 4 and shape[1] == 3 and shape[3] != 3
        return cls(
            name=name,
            session=session,
            input_name=model_input.name,
            channels_first=channels_first,
            apply_softmax=apply_softmax,
        )


# ---------------------------------------------------------------------------
# Concrete implementation
# ---------------------------------------------------------------------------


class OnnxModelManager:
    """Downloads the configured ONNX model and opens an inference session."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._models_dir = Path(settings.models_dir)
        self._model_path: Path | None = None

        self._providers = self._build_providers()
        self._session_options = self._build_session_options()

    # -- Public API ---------------------------------------------------------

    def ensure_downloaded(self) -> Path:
        """Download the model from HuggingFace if not already present locally."""
        if self._model_path is not None and self._model_path.exists():
            return self._model_path

        self._models_dir.mkdir(parents=True, exist_ok=True)
        downloaded = Path(
            hf_hub_download(
                repo_id=self._settings.model_repo_id,
                filename=self._settings.model_filename,
                local_dir=str(self._models_dir),
            )
        )
        self._model_path = downloaded
        logger.info("Downloaded %s to %s", self._settings.model_name, downloaded)
        return downloaded

    def load(self) -> ModelHandle:
        """Create an InferenceSession and wrap it in a ModelHandle."""
        model_path = self.ensure_downloaded()
        session = InferenceSession(
            str(model_path),
            sess_options=self._session_options,
            providers=self._providers,
        )
        handle = ModelHandle.from_session(
            self._settings.model_name,
            session,
            apply_softmax=self._settings.apply_softmax,
        )
        logger.info(
            "Loaded session for %s (input=%s, layout=%s)",
            handle.name,
            handle.input_name,
            "NCHW" if handle.channels_first else "NHWC",
        )
        return handle

    # -- Internal -----------------------------------------------------------

    def _build_providers(self) -> list[str | tuple[str, dict[str, object]]]:
        device = self._settings.device
        if device == "cuda":
            return [
                ("CUDAExecutionProvider", {"device_id": 0}),
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


async def load_model(manager: ModelManager) -> ModelHandle | None:
    """Load the model off the event loop. Returns None (and logs) on failure."""
    try:
        return await asyncio.to_thread(manager.load)
    except Exception:
        logger.exception("Failed to load the classification model; classification is unavailable")
        return None
