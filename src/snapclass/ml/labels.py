"""Label catalog: ordered ImageNet class names, fetched once at startup.

The catalog is downloaded as newline-delimited text. Any failure (transport
error, non-2xx status, empty body) degrades to a short compiled-in list so
that startup never fails because of the label source.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Literal

import httpx

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)

FALLBACK_LABELS: tuple[str, ...] = (
    "background",
    "tench",
    "goldfish",
    "great white shark",
    "tiger shark",
)

LabelSource = Literal["remote", "fallback"]


def parse_labels(text: str) -> tuple[str, ...]:
    """Split newline-delimited label text, dropping blank lines."""
    return tuple(line.strip() for line in text.splitlines() if line.strip())


def resolve_label(index: int, labels: Sequence[str]) -> str:
    """Resolve a class index to a name without ever indexing out of range.

    Lookup order: ``labels``, then ``FALLBACK_LABELS``, then ``"Class {index}"``.
    """
    if 0 <= index < len(labels):
        return labels[index]
    if 0 <= index < len(FALLBACK_LABELS):
        return FALLBACK_LABELS[index]
    return f"Class {index}"


class LabelCatalog:
    """Immutable, ordered list of class names (index = class id)."""

    def __init__(self, labels: Sequence[str], source: LabelSource = "remote") -> None:
        if not labels:
            raise ValueError("Label catalog cannot be empty")
        self._labels = tuple(labels)
        self._source: LabelSource = source

    @classmethod
    def fallback(cls) -> LabelCatalog:
        return cls(FALLBACK_LABELS, source="fallback")

    @classmethod
    async def load(cls, url: str, client: httpx.AsyncClient | None = None) -> LabelCatalog:
        """Fetch the catalog from ``url``, returning the fallback list on any failure."""
        try:
            if client is None:
                async with httpx.AsyncClient(follow_redirects=True) as own_client:
                    response = await own_client.get(url)
            else:
                response = await client.get(url)
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("Failed to fetch class names from %s (%s); using fallback labels", url, exc)
            return cls.fallback()

        labels = parse_labels(response.text)
        if not labels:
            logger.warning("Class name list at %s is empty; using fallback labels", url)
            return cls.fallback()

        logger.info("Loaded %d class names from %s", len(labels), url)
        return cls(labels, source="remote")

    @property
    def labels(self) -> tuple[str, ...]:
        return self._labels

    @property
    def source(self) -> LabelSource:
        """Where the labels came from: ``"remote"`` or ``"fallback"``."""
        return self._source

    def label_for(self, index: int) -> str:
        return resolve_label(index, self._labels)

    def __len__(self) -> int:
        return len(self._labels)

    def __getitem__(self, index: int) -> str:
        return self._labels[index]
