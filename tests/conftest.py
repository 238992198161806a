"""Shared test helpers: a fake ONNX session and encoded test images."""

from __future__ import annotations

import io
from collections.abc import Callable
from types import SimpleNamespace

import numpy as np
import pytest
from PIL import Image

from snapclass.ml.model_manager import ModelHandle


class FakeSession:
    """Stands in for onnxruntime.InferenceSession with fixed output scores."""

    def __init__(self, scores: list[float], *, fail: bool = False, channels_first: bool = False) -> None:
        self._scores = np.asarray([scores], dtype=np.float32)
        self._fail = fail
        self._shape = [1, 3, 224, 224] if channels_first else [1, 224, 224, 3]
        self.feeds: list[dict[str, np.ndarray]] = []

    def get_inputs(self) -> list[SimpleNamespace]:
        return [SimpleNamespace(name="input", shape=self._shape)]

    def run(self, output_names: list[str] | None, feeds: dict[str, np.ndarray]) -> list[np.ndarray]:
        self.feeds.append(feeds)
        if self._fail:
            raise RuntimeError("forward pass failed")
        return [self._scores]


def make_handle(scores: list[float], **kwargs: bool) -> ModelHandle:
    apply_softmax = kwargs.pop("apply_softmax", False)
    return ModelHandle.from_session("fake-mobilenet", FakeSession(scores, **kwargs), apply_softmax=apply_softmax)


def encode_image(size: tuple[int, int] = (32, 32), fmt: str = "PNG") -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color=(120, 60, 30)).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture()
def handle_factory() -> Callable[..., ModelHandle]:
    return make_handle


@pytest.fixture()
def png_bytes() -> bytes:
    return encode_image()
