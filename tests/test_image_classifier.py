"""Tests for the inference runner and the classifier pipeline."""

from __future__ import annotations

from collections.abc import Callable, Iterator

import numpy as np
import pytest

from snapclass.config import Settings
from snapclass.ml.image_classifier import ImageClassifier, InferenceRunner
from snapclass.ml.inference import InferencePool
from snapclass.ml.labels import LabelCatalog
from snapclass.ml.model_manager import ModelHandle, ModelUnavailableError
from snapclass.state import AppState


def _tensor() -> np.ndarray:
    return np.zeros((1, 224, 224, 3), dtype=np.float32)


class TestInferenceRunner:
    def test_requires_model(self) -> None:
        with pytest.raises(ModelUnavailableError, match="Model not loaded"):
            InferenceRunner(None).infer(_tensor())

    def test_returns_scores_in_class_order(self, handle_factory: Callable[..., ModelHandle]) -> None:
        scores = InferenceRunner(handle_factory([0.1, 0.6, 0.3])).infer(_tensor())
        assert scores.shape == (3,)
        assert np.allclose(scores, [0.1, 0.6, 0.3])

    def test_feeds_nhwc_tensor_unchanged(self, handle_factory: Callable[..., ModelHandle]) -> None:
        handle = handle_factory([1.0])
        InferenceRunner(handle).infer(_tensor())
        assert handle.session.feeds[0]["input"].shape == (1, 224, 224, 3)

    def test_transposes_for_nchw_models(self, handle_factory: Callable[..., ModelHandle]) -> None:
        handle = handle_factory([1.0], channels_first=True)
        InferenceRunner(handle).infer(_tensor())
        assert handle.session.feeds[0]["input"].shape == (1, 3, 224, 224)

    def test_applies_softmax_when_requested(self, handle_factory: Callable[..., ModelHandle]) -> None:
        scores = InferenceRunner(handle_factory([2.0, 1.0, 0.1], apply_softmax=True)).infer(_tensor())
        assert np.isclose(scores.sum(), 1.0)
        assert scores.argmax() == 0
        assert ((scores >= 0) & (scores <= 1)).all()

    @pytest.mark.parametrize("bad", [float("nan"), float("inf")])
    def test_rejects_non_finite_scores(self, handle_factory: Callable[..., ModelHandle], bad: float) -> None:
        with pytest.raises(ValueError, match="non-finite"):
            InferenceRunner(handle_factory([0.2, bad, 0.1])).infer(_tensor())


class TestImageClassifier:
    @pytest.fixture()
    def pool(self) -> Iterator[InferencePool]:
        pool = InferencePool(Settings())
        yield pool
        pool.shutdown()

    async def test_classifies_with_catalog_labels(
        self, pool: InferencePool, handle_factory: Callable[..., ModelHandle]
    ) -> None:
        state = AppState()
        state.initialize(LabelCatalog(["cat", "dog", "fox"]), handle_factory([0.2, 0.7, 0.1]))
        classifier = ImageClassifier(state, pool)

        result = await classifier.classify(np.zeros((40, 50, 3), dtype=np.uint8))

        assert [p.label for p in result] == ["dog", "cat", "fox"]
        assert classifier.model_name == "fake-mobilenet"

    async def test_refuses_without_model(self, pool: InferencePool) -> None:
        state = AppState()
        state.initialize(LabelCatalog.fallback(), None)
        classifier = ImageClassifier(state, pool)

        assert classifier.ready is False
        with pytest.raises(ModelUnavailableError):
            await classifier.classify(np.zeros((4, 4, 3), dtype=np.uint8))

    def test_state_initializes_once(self, handle_factory: Callable[..., ModelHandle]) -> None:
        state = AppState()
        state.initialize(LabelCatalog.fallback(), handle_factory([1.0]))
        with pytest.raises(RuntimeError, match="already initialized"):
            state.initialize(LabelCatalog.fallback(), None)
        state.teardown()
        assert state.model is None
        assert state.labels is None
