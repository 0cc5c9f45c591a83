"""Heatmap peak finding.

Root candidates for pose growth are the strict local maxima of each part's
heatmap. The returned order (descending score, scan order on ties) drives the
greedy builder and suppressor, so it must stay deterministic.
"""

from __future__ import annotations

from typing import NamedTuple

import numpy as np

from posedecode.core.errors import ConfigurationError
from posedecode.core.types import Part


class Peak(NamedTuple):
    part: Part
    row: int
    col: int
    score: float


def check_score_threshold(score_threshold: float) -> float:
    thr = float(score_threshold)
    if not 0.0 <= thr <= 1.0:
        raise ConfigurationError("score_threshold must be in [0, 1]")
    return thr


def local_maximum_mask(scores: np.ndarray, radius: int) -> np.ndarray:
    """Return a boolean mask of cells strictly greater than every window neighbor.

    Args:
        scores: Heatmap of shape (H, W, K); each channel is handled independently.
        radius: Half-size of the square window. 0 marks every cell.
    """

    r = int(radius)
    if r <= 0:
        return np.ones(scores.shape, dtype=bool)

    h, w = scores.shape[:2]
    padded = np.pad(
        scores.astype(np.float64, copy=False),
        ((r, r), (r, r), (0, 0)),
        mode="constant",
        constant_values=-np.inf,
    )
    neighbor_max = np.full(scores.shape, -np.inf, dtype=np.float64)
    for dy in range(-r, r + 1):
        for dx in range(-r, r + 1):
            if dy == 0 and dx == 0:
                continue
            view = padded[r + dy : r + dy + h, r + dx : r + dx + w]
            np.maximum(neighbor_max, view, out=neighbor_max)
    return scores > neighbor_max


def find_peaks(
    scores: np.ndarray,
    score_threshold: float,
    local_maximum_radius: int = 1,
) -> list[Peak]:
    """Find root candidates in a (H, W, K) heatmap.

    A cell qualifies when its score is strictly above `score_threshold` and
    strictly above every other cell of the same part within
    `local_maximum_radius`.

    Returns:
        Peaks sorted by descending score; ties keep (row, col, part) scan order.

    Raises:
        ConfigurationError: if the threshold is outside [0, 1] or the radius is negative.
    """

    thr = check_score_threshold(score_threshold)
    if int(local_maximum_radius) < 0:
        raise ConfigurationError("local_maximum_radius must be >= 0")

    above = scores > thr
    if not above.any():
        return []

    mask = above & local_maximum_mask(scores, local_maximum_radius)
    rows, cols, parts = np.nonzero(mask)
    if rows.size == 0:
        return []

    values = scores[rows, cols, parts]
    # nonzero() already yields scan order; a stable sort keeps it for ties.
    order = np.argsort(-values, kind="stable")
    return [
        Peak(Part(int(parts[i])), int(rows[i]), int(cols[i]), float(values[i]))
        for i in order
    ]
