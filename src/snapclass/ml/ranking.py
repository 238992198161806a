"""Rank per-class scores into labelled top-K predictions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from snapclass.config import TOP_K
from snapclass.ml.labels import LabelCatalog, resolve_label

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import ArrayLike


@dataclass(frozen=True)
class RankedPrediction:
    """A single labelled prediction."""

    label: str
    probability: float

    @property
    def percentage(self) -> str:
        """Probability rendered as a percentage with two decimals, e.g. ``"87.12%"``."""
        return f"{self.probability * 100:.2f}%"


def rank(
    scores: ArrayLike,
    labels: LabelCatalog | Sequence[str] | None,
    k: int = TOP_K,
) -> list[RankedPrediction]:
    """Pair scores with labels and return the ``k`` most probable, highest first.

    Ties keep their original index order (stable sort), so an earlier class
    wins over a later one with the same probability.
    """
    flat = np.asarray(scores, dtype=np.float64).reshape(-1)
    if k <= 0 or flat.size == 0:
        return []

    order = np.argsort(-flat, kind="stable")[:k]

    if isinstance(labels, LabelCatalog):
        label_of = labels.label_for
    else:
        names: Sequence[str] = labels or ()

        def label_of(index: int) -> str:
            return resolve_label(index, names)

    return [RankedPrediction(label=label_of(int(i)), probability=float(flat[i])) for i in order]
