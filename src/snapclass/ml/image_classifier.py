"""Image classification: preprocess -> forward pass -> rank."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np

from snapclass.config import TOP_K
from snapclass.ml.model_manager import ModelUnavailableError
from snapclass.ml.preprocessing import preprocess
from snapclass.ml.ranking import rank

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from snapclass.ml.inference import InferencePool
    from snapclass.ml.model_manager import ModelHandle
    from snapclass.ml.ranking import RankedPrediction
    from snapclass.state import AppState

logger = logging.getLogger(__name__)

MODEL_NOT_LOADED = "Model not loaded yet. Please wait and try again."


def _softmax(logits: NDArray[np.float32]) -> NDArray[np.float32]:
    shifted = np.exp(logits - logits.max())
    return (shifted / shifted.sum()).astype(np.float32)


class InferenceRunner:
    """Runs a single forward pass of the loaded model."""

    def __init__(self, model: ModelHandle | None) -> None:
        self._model = model

    def infer(self, tensor: NDArray[np.float32]) -> NDArray[np.float32]:
        """Return one probability per class, in class-index order.

        Args:
            tensor: (1, 224, 224, 3) float32 tensor from ``preprocess``.

        Raises:
            ModelUnavailableError: If no model is loaded.
        """
        model = self._model
        if model is None:
            raise ModelUnavailableError(MODEL_NOT_LOADED)

        feed = np.ascontiguousarray(tensor.transpose(0, 3, 1, 2)) if model.channels_first else tensor
        outputs = model.session.run(None, {model.input_name: feed})
        scores = np.asarray(outputs[0], dtype=np.float32).reshape(-1)
        if not np.isfinite(scores).all():
            raise ValueError(f"Model {model.name} produced non-finite scores")
        if model.apply_softmax:
            scores = _softmax(scores)
        return scores


class ImageClassifier:
    """Classifies decoded images with the model and labels held in AppState."""

    def __init__(self, state: AppState, pool: InferencePool) -> None:
        self._state = state
        self._pool = pool

    @property
    def ready(self) -> bool:
        return self._state.model_loaded

    @property
    def model_name(self) -> str | None:
        model = self._state.model
        return model.name if model is not None else None

    def predict(self, image: NDArray[np.uint8]) -> list[RankedPrediction]:
        """Blocking classification of an HxWx3 RGB uint8 image."""
        runner = InferenceRunner(self._state.model)
        scores = runner.infer(preprocess(image))
        return rank(scores, self._state.labels, k=TOP_K)

    async def classify(self, image: NDArray[np.uint8]) -> list[RankedPrediction]:
        """Classify an image on the inference pool and return the top-K predictions.

        Raises:
            ModelUnavailableError: If no model is loaded.
            PoolSaturatedError: If the inference pool stays busy past its timeout.
        """
        if not self.ready:
            raise ModelUnavailableError(MODEL_NOT_LOADED)
        return await self._pool.run(self.predict, image)
