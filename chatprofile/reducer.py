from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np
from sklearn.decomposition import PCA

logger = logging.getLogger(__name__)

Point = Tuple[float, float]


def normalize_axes(points: np.ndarray) -> np.ndarray:
    """Min-max scale each column into [-1, 1]; a flat column gets range 1."""
    mins = points.min(axis=0)
    ranges = points.max(axis=0) - mins
    ranges[ranges == 0] = 1.0
    return (points - mins) / ranges * 2.0 - 1.0


def _random_points(n: int, rng: Optional[np.random.Generator]) -> List[Point]:
    rng = rng or np.random.default_rng()
    return [(float(x), float(y)) for x, y in rng.uniform(-1.0, 1.0, size=(n, 2))]


def reduce_to_2d(
    embeddings: Sequence[Sequence[float]],
    *,
    rng: Optional[np.random.Generator] = None,
) -> List[Point]:
    """
    Project embeddings onto their first two principal components, scaled to [-1, 1].

    Never raises: fewer than two vectors map to the origin and numeric
    failures fall back to random points so a map can still be drawn.
    """
    n = len(embeddings)
    if n < 2:
        return [(0.0, 0.0)] * n
    try:
        matrix = np.asarray(embeddings, dtype=float)
        if matrix.ndim != 2:
            raise ValueError(f"expected a 2-D matrix, got shape {matrix.shape}")
        n_components = min(2, matrix.shape[0], matrix.shape[1])
        with np.errstate(divide="ignore", invalid="ignore"):
            projected = PCA(n_components=n_components).fit_transform(matrix)
        if n_components < 2:
            projected = np.hstack([projected, np.zeros((n, 2 - n_components))])
        if not np.all(np.isfinite(projected)):
            raise ValueError("PCA produced non-finite coordinates")
        scaled = normalize_axes(projected)
        return [(float(x), float(y)) for x, y in scaled]
    except Exception:
        logger.exception("PCA failed for %d embeddings; using random layout", n)
        return _random_points(n, rng)
