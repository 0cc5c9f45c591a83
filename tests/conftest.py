from __future__ import annotations

import numpy as np
import pytest

from posedecode.core.skeleton import NUM_EDGES
from posedecode.core.types import NUM_PARTS, Keypoint, Part, Pose


def _zero_tensors(h: int, w: int) -> dict[str, np.ndarray]:
    return {
        "heatmap": np.zeros((1, h, w, NUM_PARTS), dtype=np.float32),
        "offsets": np.zeros((1, h, w, 2 * NUM_PARTS), dtype=np.float32),
        "displacement_fwd": np.zeros((1, h, w, 2 * NUM_EDGES), dtype=np.float32),
        "displacement_bwd": np.zeros((1, h, w, 2 * NUM_EDGES), dtype=np.float32),
    }


@pytest.fixture
def make_tensors():
    """Factory for all-zero network outputs of a given grid size."""

    return _zero_tensors


def _pose_at(pose_id: int, score: float, origin: tuple[float, float], spacing: float = 30.0) -> Pose:
    ox, oy = origin
    kps = tuple(
        Keypoint(part=p, position=(ox + (int(p) % 4) * spacing, oy + (int(p) // 4) * spacing), score=score)
        for p in Part
    )
    return Pose(id=pose_id, score=score, keypoints=kps, discovery_order=tuple(Part))


@pytest.fixture
def make_pose():
    """Factory for a fully present pose laid out on a grid around `origin`."""

    return _pose_at
