"""Pose assembly from root peaks.

Each accepted root grows a full skeleton by walking the joint graph
breadth-first: the displacement field at a known joint points at its
neighbor's approximate location, and the offset field at the snapped grid cell
refines it to a continuous pixel position.

Array layout (batch dimension already removed):
- scores: (H, W, K)
- offsets: (H, W, 2K), y channels first then x
- displacements: (H, W, 2E), y channels first then x
"""

from __future__ import annotations

import math
from collections import deque

import numpy as np

from posedecode.core.decoding.peaks import Peak
from posedecode.core.skeleton import ADJACENCY, Adjacency
from posedecode.core.types import NUM_PARTS, Keypoint, Part, Point, Pose


def nearest_cell(position: Point, output_stride: int) -> tuple[int, int]:
    """Return the (row, col) grid cell nearest to a pixel position (half-up rounding)."""

    x, y = position
    s = float(output_stride)
    return int(math.floor(y / s + 0.5)), int(math.floor(x / s + 0.5))


def _in_bounds(cell: tuple[int, int], height: int, width: int) -> bool:
    row, col = cell
    return 0 <= row < height and 0 <= col < width


def refined_position(
    row: int,
    col: int,
    part: Part,
    offsets: np.ndarray,
    output_stride: int,
) -> Point:
    """Grid cell to pixel coordinates, refined by the part's offset vector."""

    k = int(part)
    off_y = float(offsets[row, col, k])
    off_x = float(offsets[row, col, k + NUM_PARTS])
    s = float(output_stride)
    return (col * s + off_x, row * s + off_y)


def pose_score(keypoints: tuple[Keypoint, ...] | list[Keypoint]) -> float:
    """Mean score of the present keypoints (0.0 when none are present)."""

    present = [kp.score for kp in keypoints if kp.present]
    if not present:
        return 0.0
    return float(sum(present) / len(present))


def within_radius_of_existing(
    poses: list[Pose],
    part: Part,
    position: Point,
    nms_radius: float,
) -> bool:
    """True when some pose already has `part` strictly within `nms_radius` of `position`."""

    r2 = float(nms_radius) ** 2
    if r2 <= 0.0:
        return False
    x, y = position
    for pose in poses:
        kp = pose.keypoints[int(part)]
        if not kp.present:
            continue
        dx = kp.position[0] - x
        dy = kp.position[1] - y
        if dx * dx + dy * dy < r2:
            return True
    return False


class PoseBuilder:
    """Grow candidate poses from ordered root peaks.

    The builder only keeps immutable configuration, so one instance may be
    shared between threads.
    """

    def __init__(
        self,
        output_stride: int,
        nms_radius: float,
        offset_refine_steps: int = 2,
        adjacency: Adjacency = ADJACENCY,
    ) -> None:
        self.output_stride = int(output_stride)
        self.nms_radius = float(nms_radius)
        self.offset_refine_steps = int(offset_refine_steps)
        self.adjacency = adjacency
        self._num_edges = sum(1 for neighbors in adjacency for _, _, fwd in neighbors if fwd)

    def _traverse(
        self,
        source: Keypoint,
        target: Part,
        edge_id: int,
        displacements: np.ndarray,
        scores: np.ndarray,
        offsets: np.ndarray,
    ) -> Keypoint:
        """Resolve `target` from a present `source` keypoint along one edge."""

        height, width = scores.shape[:2]
        stride = self.output_stride

        src_cell = nearest_cell(source.position, stride)
        if not _in_bounds(src_cell, height, width):
            return Keypoint.empty(target)
        row, col = src_cell
        disp_y = float(displacements[row, col, edge_id])
        disp_x = float(displacements[row, col, edge_id + self._num_edges])

        position: Point = (source.position[0] + disp_x, source.position[1] + disp_y)
        for _ in range(self.offset_refine_steps):
            cell = nearest_cell(position, stride)
            if not _in_bounds(cell, height, width):
                return Keypoint.empty(target)
            position = refined_position(cell[0], cell[1], target, offsets, stride)

        cell = nearest_cell(position, stride)
        if not _in_bounds(cell, height, width):
            return Keypoint.empty(target)
        score = float(scores[cell[0], cell[1], int(target)])
        return Keypoint(part=target, position=position, score=score)

    def grow(
        self,
        root: Peak,
        pose_id: int,
        scores: np.ndarray,
        offsets: np.ndarray,
        displacements_fwd: np.ndarray,
        displacements_bwd: np.ndarray,
        root_position: Point | None = None,
    ) -> Pose:
        """Build one pose anchored at `root` by breadth-first traversal."""

        if root_position is None:
            root_position = refined_position(
                root.row, root.col, root.part, offsets, self.output_stride
            )
        slots: list[Keypoint | None] = [None] * NUM_PARTS
        slots[int(root.part)] = Keypoint(part=root.part, position=root_position, score=root.score)
        order: list[Part] = [root.part]

        queue = deque([root.part])
        while queue:
            source_part = queue.popleft()
            source = slots[int(source_part)]
            for edge_id, target, forward in self.adjacency[int(source_part)]:
                if slots[int(target)] is not None:
                    continue
                displacements = displacements_fwd if forward else displacements_bwd
                kp = self._traverse(source, target, edge_id, displacements, scores, offsets)
                slots[int(target)] = kp
                if kp.present:
                    order.append(target)
                    queue.append(target)

        keypoints = tuple(
            kp if kp is not None else Keypoint.empty(Part(i)) for i, kp in enumerate(slots)
        )
        return Pose(
            id=pose_id,
            score=pose_score(keypoints),
            keypoints=keypoints,
            discovery_order=tuple(order),
        )

    def build(
        self,
        peaks: list[Peak],
        scores: np.ndarray,
        offsets: np.ndarray,
        displacements_fwd: np.ndarray,
        displacements_bwd: np.ndarray,
    ) -> list[Pose]:
        """Grow one candidate pose per peak, skipping roots already claimed.

        A root is claimed when an earlier pose has a keypoint of the same part
        strictly within `nms_radius` pixels of it.
        """

        poses: list[Pose] = []
        for peak in peaks:
            root_position = refined_position(
                peak.row, peak.col, peak.part, offsets, self.output_stride
            )
            if within_radius_of_existing(poses, peak.part, root_position, self.nms_radius):
                continue
            poses.append(
                self.grow(
                    peak,
                    len(poses),
                    scores,
                    offsets,
                    displacements_fwd,
                    displacements_bwd,
                    root_position=root_position,
                )
            )
        return poses


def build_poses(
    peaks: list[Peak],
    scores: np.ndarray,
    offsets: np.ndarray,
    displacements_fwd: np.ndarray,
    displacements_bwd: np.ndarray,
    output_stride: int,
    nms_radius: float,
    offset_refine_steps: int = 2,
) -> list[Pose]:
    """Functional wrapper around `PoseBuilder.build`."""

    builder = PoseBuilder(output_stride, nms_radius, offset_refine_steps)
    return builder.build(peaks, scores, offsets, displacements_fwd, displacements_bwd)
