"""Classification sessions: one selected image, its state, and its results.

A session mirrors the upload-and-classify page as a finite-state machine:

    idle --select--> previewing --classify--> classifying --done--> showing
                         ^                         |
                         +--------- failure -------+

Selecting an image is allowed in any state and moves to ``previewing``.
Every selection bumps a generation counter; a classification that finishes
after a newer selection is discarded instead of overwriting the new state.
"""

from __future__ import annotations

import logging
import uuid
from collections import OrderedDict
from enum import StrEnum
from typing import TYPE_CHECKING

from snapclass.ml.image_classifier import MODEL_NOT_LOADED
from snapclass.ml.inference import PoolSaturatedError
from snapclass.ml.model_manager import ModelUnavailableError
from snapclass.ml.preprocessing import decode_image

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray

    from snapclass.ml.image_classifier import ImageClassifier
    from snapclass.ml.ranking import RankedPrediction

logger = logging.getLogger(__name__)

NOT_AN_IMAGE = "Please select an image file"
CLASSIFY_FAILED = "An error occurred while classifying the image. Please try again."


class SessionState(StrEnum):
    IDLE = "idle"
    PREVIEWING = "previewing"
    CLASSIFYING = "classifying"
    SHOWING = "showing"


class UnsupportedMediaTypeError(ValueError):
    """Raised when a selected file does not declare an ``image/*`` media type."""


class SessionError(Exception):
    """Base class for classify actions the session refuses or cannot finish."""


class NoImageSelectedError(SessionError):
    pass


class ClassificationInProgressError(SessionError):
    pass


class StaleClassificationError(SessionError):
    """The image changed while inference was running; the result was dropped."""


class ClassificationFailedError(SessionError):
    pass


def is_image_media_type(content_type: str | None) -> bool:
    return bool(content_type) and content_type.lower().startswith("image/")


class ClassificationSession:
    """State for one client's selected image and its last results."""

    def __init__(self, session_id: str | None = None, *, max_pixels: int | None = None) -> None:
        self.id = session_id or uuid.uuid4().hex
        self._max_pixels = max_pixels
        self._state = SessionState.IDLE
        self._generation = 0
        self._image: NDArray[np.uint8] | None = None
        self._filename: str | None = None
        self._predictions: list[RankedPrediction] = []

    # -- Projections --------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def filename(self) -> str | None:
        return self._filename

    @property
    def predictions(self) -> list[RankedPrediction]:
        return list(self._predictions)

    @property
    def can_classify(self) -> bool:
        return self._state in (SessionState.PREVIEWING, SessionState.SHOWING)

    @property
    def loading(self) -> bool:
        return self._state is SessionState.CLASSIFYING

    # -- Transitions --------------------------------------------------------

    def select_image(self, content_type: str | None, data: bytes, filename: str | None = None) -> None:
        """Replace the selected image.

        Raises:
            UnsupportedMediaTypeError: If ``content_type`` is not ``image/*``.
            InvalidImageError: If the bytes cannot be decoded.

        The session is left untouched when either is raised.
        """
        if not is_image_media_type(content_type):
            raise UnsupportedMediaTypeError(NOT_AN_IMAGE)

        image = decode_image(data, self._max_pixels)

        self._image = image
        self._filename = filename
        self._generation += 1
        self._predictions = []
        self._state = SessionState.PREVIEWING
        logger.debug("Session %s selected %s (generation %d)", self.id, filename, self._generation)

    async def classify(self, classifier: ImageClassifier) -> list[RankedPrediction]:
        """Classify the selected image and move to ``showing``.

        Raises:
            NoImageSelectedError: Nothing has been selected yet.
            ClassificationInProgressError: A classification is already running.
            ModelUnavailableError: The model never loaded; state is unchanged.
            StaleClassificationError: A new image was selected mid-flight.
            ClassificationFailedError: Preprocessing or inference failed;
                the session returns to ``previewing``.
            PoolSaturatedError: No inference slot freed up; the session
                returns to ``previewing``.
        """
        if self._state is SessionState.CLASSIFYING:
            raise ClassificationInProgressError("A classification is already in progress")
        if self._image is None:
            raise NoImageSelectedError("Please select an image first")
        if not classifier.ready:
            raise ModelUnavailableError(MODEL_NOT_LOADED)

        generation = self._generation
        image = self._image
        self._state = SessionState.CLASSIFYING
        self._predictions = []

        try:
            predictions = await classifier.classify(image)
        except Exception as exc:
            if generation != self._generation:
                self._discard_stale(generation)
                raise StaleClassificationError("The image changed while it was being classified") from exc
            self._state = SessionState.PREVIEWING
            if isinstance(exc, PoolSaturatedError):
                raise
            logger.exception("Error classifying image for session %s", self.id)
            raise ClassificationFailedError(CLASSIFY_FAILED) from exc

        if generation != self._generation:
            self._discard_stale(generation)
            raise StaleClassificationError("The image changed while it was being classified")

        self._predictions = predictions
        self._state = SessionState.SHOWING
        return list(predictions)

    def _discard_stale(self, generation: int) -> None:
        logger.info(
            "Discarding stale result for session %s (generation %d, current %d)",
            self.id,
            generation,
            self._generation,
        )


class SessionStore:
    """In-memory sessions, evicting the least recently created past capacity."""

    def __init__(self, max_sessions: int, *, max_pixels: int | None = None) -> None:
        self._max_sessions = max_sessions
        self._max_pixels = max_pixels
        self._sessions: OrderedDict[str, ClassificationSession] = OrderedDict()

    def create(self) -> ClassificationSession:
        session = ClassificationSession(max_pixels=self._max_pixels)
        self._sessions[session.id] = session
        while len(self._sessions) > self._max_sessions:
            evicted_id, _ = self._sessions.popitem(last=False)
            logger.info("Evicted session %s (capacity %d)", evicted_id, self._max_sessions)
        return session

    def get(self, session_id: str) -> ClassificationSession:
        """Return a session by id.

        Raises:
            KeyError: If the session does not exist.
        """
        try:
            return self._sessions[session_id]
        except KeyError:
            raise KeyError(f"Unknown session: {session_id}") from None

    def delete(self, session_id: str) -> None:
        self.get(session_id)
        del self._sessions[session_id]

    def clear(self) -> None:
        self._sessions.clear()

    def __len__(self) -> int:
        return len(self._sessions)
