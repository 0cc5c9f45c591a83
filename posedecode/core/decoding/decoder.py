"""Multi-person pose decoding.

This module ties together peak finding, pose growth and pose-level NMS into a
single per-frame call. It consumes the raw network outputs (heatmap, offsets,
forward/backward displacements) and returns poses in detector-input pixels.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from posedecode.core.decoding.builder import PoseBuilder
from posedecode.core.decoding.peaks import check_score_threshold, find_peaks
from posedecode.core.decoding.suppression import suppress_poses
from posedecode.core.errors import ConfigurationError, TensorShapeError
from posedecode.core.skeleton import NUM_EDGES
from posedecode.core.types import NUM_PARTS, Pose

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecoderConfig:
    """Decoding parameters. Validated on construction."""

    output_stride: int = 16
    score_threshold: float = 0.5
    max_pose_detections: int = 100
    nms_radius: float = 20.0
    local_maximum_radius: int = 1
    offset_refine_steps: int = 2
    # Fraction of a candidate's present keypoints that may lie near an
    # accepted pose before the candidate is dropped as a duplicate.
    overlap_fraction: float = 0.5
    # Apply a logistic sigmoid to the heatmap first (for models exporting logits).
    sigmoid_heatmap: bool = False

    def __post_init__(self) -> None:
        stride = float(self.output_stride)
        if stride != int(stride) or int(stride) <= 0:
            raise ConfigurationError("output_stride must be a positive integer")
        check_score_threshold(self.score_threshold)
        if int(self.max_pose_detections) < 0:
            raise ConfigurationError("max_pose_detections must be >= 0")
        if not float(self.nms_radius) >= 0.0:
            raise ConfigurationError("nms_radius must be >= 0")
        if int(self.local_maximum_radius) < 0:
            raise ConfigurationError("local_maximum_radius must be >= 0")
        if int(self.offset_refine_steps) < 1:
            raise ConfigurationError("offset_refine_steps must be >= 1")
        if not 0.0 <= float(self.overlap_fraction) <= 1.0:
            raise ConfigurationError("overlap_fraction must be in [0, 1]")


def _squeeze_batch(name: str, tensor: np.ndarray) -> np.ndarray:
    arr = np.asarray(tensor)
    if arr.ndim != 4:
        raise TensorShapeError(f"{name} must be 4-D (batch, height, width, channels), got shape {arr.shape}")
    if arr.shape[0] != 1:
        raise TensorShapeError(f"{name} batch size must be 1, got {arr.shape[0]}")
    if not np.issubdtype(arr.dtype, np.number) or np.issubdtype(arr.dtype, np.complexfloating):
        raise TensorShapeError(f"{name} must hold real numbers, got dtype {arr.dtype}")
    arr = arr[0]
    if not np.isfinite(arr).all():
        raise TensorShapeError(f"{name} contains non-finite values")
    return arr


def validate_tensors(
    heatmap: np.ndarray,
    offsets: np.ndarray,
    displacements_fwd: np.ndarray,
    displacements_bwd: np.ndarray,
) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Check tensor layout and strip the batch dimension.

    Returns:
        (scores, offsets, displacements_fwd, displacements_bwd), each (H, W, C).

    Raises:
        TensorShapeError: on rank, batch, channel or spatial-size mismatches.
    """

    scores = _squeeze_batch("heatmap", heatmap)
    offs = _squeeze_batch("offsets", offsets)
    fwd = _squeeze_batch("displacements_fwd", displacements_fwd)
    bwd = _squeeze_batch("displacements_bwd", displacements_bwd)

    expected = {
        "heatmap": (scores, NUM_PARTS),
        "offsets": (offs, 2 * NUM_PARTS),
        "displacements_fwd": (fwd, 2 * NUM_EDGES),
        "displacements_bwd": (bwd, 2 * NUM_EDGES),
    }
    for name, (arr, channels) in expected.items():
        if arr.shape[2] != channels:
            raise TensorShapeError(f"{name} must have {channels} channels, got {arr.shape[2]}")

    hw = scores.shape[:2]
    for name, (arr, _) in expected.items():
        if arr.shape[:2] != hw:
            raise TensorShapeError(
                f"{name} spatial size {arr.shape[:2]} does not match heatmap {hw}"
            )
    if hw[0] == 0 or hw[1] == 0:
        raise TensorShapeError(f"heatmap has an empty spatial size {hw}")
    return scores, offs, fwd, bwd


def _sigmoid(x: np.ndarray) -> np.ndarray:
    # exp(-log(1 + e^-x)) stays finite for large-magnitude logits.
    return np.exp(-np.logaddexp(0.0, -x.astype(np.float64)))


class PoseDecoder:
    """Per-frame multi-person pose decoder.

    The decoder holds only its frozen configuration: every `decode()` call is
    a pure function of its input tensors, so an instance may be shared across
    threads and repeated calls on the same tensors return identical results.
    """

    def __init__(self, config: DecoderConfig | None = None) -> None:
        self.config = config or DecoderConfig()
        self.builder = PoseBuilder(
            output_stride=self.config.output_stride,
            nms_radius=self.config.nms_radius,
            offset_refine_steps=self.config.offset_refine_steps,
        )

    def decode(
        self,
        heatmap: np.ndarray,
        offsets: np.ndarray,
        displacements_fwd: np.ndarray,
        displacements_bwd: np.ndarray,
    ) -> list[Pose]:
        """Decode all poses from one frame's network outputs.

        Args:
            heatmap: (1, H, W, K) part confidence.
            offsets: (1, H, W, 2K) sub-cell offsets, y channels then x.
            displacements_fwd: (1, H, W, 2E) parent -> child displacements.
            displacements_bwd: (1, H, W, 2E) child -> parent displacements.

        Returns:
            Poses ordered by descending score, at most `max_pose_detections`.

        Raises:
            TensorShapeError: if the tensors do not match the expected layout.
        """

        cfg = self.config
        scores, offs, fwd, bwd = validate_tensors(heatmap, offsets, displacements_fwd, displacements_bwd)
        if cfg.sigmoid_heatmap:
            scores = _sigmoid(scores)
        elif scores.min() < 0.0 or scores.max() > 1.0:
            raise TensorShapeError("heatmap values must be in [0, 1] (enable sigmoid_heatmap for logits)")

        if cfg.max_pose_detections == 0:
            logger.debug("max_pose_detections is 0; skipping decode")
            return []

        peaks = find_peaks(scores, cfg.score_threshold, cfg.local_maximum_radius)
        if not peaks:
            logger.debug("No heatmap peaks above %.3f", cfg.score_threshold)
            return []

        candidates = self.builder.build(peaks, scores, offs, fwd, bwd)
        poses = suppress_poses(
            candidates,
            max_poses=cfg.max_pose_detections,
            nms_radius=cfg.nms_radius,
            overlap_fraction=cfg.overlap_fraction,
        )
        logger.debug(
            "Decoded %d poses (%d peaks, %d candidates)", len(poses), len(peaks), len(candidates)
        )
        return poses


def decode_multiple_poses(
    heatmap: np.ndarray,
    offsets: np.ndarray,
    displacements_fwd: np.ndarray,
    displacements_bwd: np.ndarray,
    output_stride: int = 16,
    max_pose_detections: int = 100,
    score_threshold: float = 0.5,
    nms_radius: float = 20.0,
) -> list[Pose]:
    """One-shot decode with the common parameters.

    Configuration errors surface before any tensor is read.
    """

    config = DecoderConfig(
        output_stride=output_stride,
        score_threshold=score_threshold,
        max_pose_detections=max_pose_detections,
        nms_radius=nms_radius,
    )
    return PoseDecoder(config).decode(heatmap, offsets, displacements_fwd, displacements_bwd)
