"""Application state: the loaded label catalog and model handle.

Lifecycle: both fields are unset when the app starts. ``initialize`` sets
them exactly once after the startup load finishes (the model may still be
None if loading failed). After that the state is read-only until
``teardown`` at shutdown.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from snapclass.ml.labels import LabelCatalog
    from snapclass.ml.model_manager import ModelHandle

logger = logging.getLogger(__name__)


class AppState:
    """Owns the startup-loaded resources shared by every request."""

    def __init__(self) -> None:
        self._labels: LabelCatalog | None = None
        self._model: ModelHandle | None = None
        self._initialized = False

    def initialize(self, labels: LabelCatalog, model: ModelHandle | None) -> None:
        if self._initialized:
            raise RuntimeError("Application state is already initialized")
        self._labels = labels
        self._model = model
        self._initialized = True
        logger.info(
            "Application state ready (labels=%d from %s, model=%s)",
            len(labels),
            labels.source,
            model.name if model is not None else "unavailable",
        )

    def teardown(self) -> None:
        self._labels = None
        self._model = None
        self._initialized = False

    @property
    def labels(self) -> LabelCatalog | None:
        return self._labels

    @property
    def model(self) -> ModelHandle | None:
        return self._model

    @property
    def model_loaded(self) -> bool:
        return self._model is not None
