"""Overlay drawing helpers (OpenCV).

Draws decoded skeletons onto a BGR frame. Pose coordinates are in
detector-input pixels; `x_scale`/`y_scale` map them to the frame.
"""

from __future__ import annotations

import cv2
import numpy as np

from posedecode.core.skeleton import SKELETON_PAIRS, Edge
from posedecode.core.types import Keypoint, Pose

JOINT_COLOR = (0, 128, 0)  # green
SKELETON_COLOR = (0, 165, 255)  # orange
JOINT_RADIUS = 3
JOINT_THICKNESS = 3
SKELETON_THICKNESS = 5


def scale_factors(display_size: tuple[int, int], detection_size: int) -> tuple[float, float]:
    """Return (x_scale, y_scale) from a square detection input to a (w, h) display."""

    w, h = display_size
    d = float(detection_size)
    if d <= 0:
        raise ValueError("detection_size must be > 0")
    return float(w) / d, float(h) / d


def _visible(kp: Keypoint, min_keypoint_score: float) -> bool:
    return kp.present and kp.score >= min_keypoint_score


def _to_pixel(kp: Keypoint, x_scale: float, y_scale: float) -> tuple[int, int]:
    return int(kp.position[0] * x_scale), int(kp.position[1] * y_scale)


def draw_poses(
    frame: np.ndarray,
    poses: list[Pose],
    x_scale: float = 1.0,
    y_scale: float = 1.0,
    min_pose_score: float = 0.15,
    min_keypoint_score: float = 0.02,
    pairs: tuple[Edge, ...] = SKELETON_PAIRS,
) -> np.ndarray:
    """Return a copy of `frame` with skeleton lines and joint markers drawn.

    Poses scoring at or below `min_pose_score` are skipped. A bone is drawn
    only when both joints are present and score at least `min_keypoint_score`.
    Returns `frame` itself when there is nothing to draw.
    """

    visible_poses = [p for p in poses if p.score > min_pose_score]
    if not visible_poses:
        return frame

    img = frame.copy()
    for pose in visible_poses:
        for part_a, part_b in pairs:
            a = pose.keypoint(part_a)
            b = pose.keypoint(part_b)
            a_ok = _visible(a, min_keypoint_score)
            b_ok = _visible(b, min_keypoint_score)
            if a_ok and b_ok:
                cv2.line(
                    img,
                    _to_pixel(a, x_scale, y_scale),
                    _to_pixel(b, x_scale, y_scale),
                    SKELETON_COLOR,
                    SKELETON_THICKNESS,
                    cv2.LINE_AA,
                )
            for kp, ok in ((a, a_ok), (b, b_ok)):
                if ok:
                    cv2.circle(
                        img,
                        _to_pixel(kp, x_scale, y_scale),
                        JOINT_RADIUS,
                        JOINT_COLOR,
                        JOINT_THICKNESS,
                    )
    return img
