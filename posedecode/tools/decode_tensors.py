from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

import cv2
import numpy as np

from posedecode.core.config.settings import config_from_settings, load_settings
from posedecode.core.decoding.decoder import PoseDecoder
from posedecode.core.errors import DecodeError
from posedecode.core.overlay.draw import draw_poses, scale_factors

logger = logging.getLogger(__name__)

TENSOR_KEYS = ("heatmap", "offsets", "displacement_fwd", "displacement_bwd")


def _load_tensors(path: Path) -> dict[str, np.ndarray]:
    with np.load(path) as data:
        missing = [k for k in TENSOR_KEYS if k not in data.files]
        if missing:
            raise SystemExit(f"{path} is missing tensors: {', '.join(missing)}")
        return {k: np.asarray(data[k]) for k in TENSOR_KEYS}


def run(args):
    settings = load_settings()
    overrides = {
        "output_stride": args.stride,
        "score_threshold": args.threshold,
        "max_pose_detections": args.max_poses,
        "nms_radius": args.nms_radius,
    }
    try:
        for name, value in overrides.items():
            if value is not None:
                setattr(settings, name, value)
        config = config_from_settings(settings)
    except ValueError as exc:
        raise SystemExit(f"Invalid option: {exc}") from exc

    decoder = PoseDecoder(config)
    tensors = _load_tensors(Path(args.input))
    try:
        poses = decoder.decode(
            tensors["heatmap"],
            tensors["offsets"],
            tensors["displacement_fwd"],
            tensors["displacement_bwd"],
        )
    except DecodeError as exc:
        logger.exception("Failed to decode %s", args.input)
        raise SystemExit(f"Cannot decode {args.input}: {exc}") from exc

    out_path = Path(args.output)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump([p.to_dict() for p in poses], f, indent=2)
    print(f"Wrote {len(poses)} poses to {out_path}")

    if args.image:
        frame = cv2.imread(args.image)
        if frame is None:
            raise SystemExit(f"Cannot open image {args.image}")
        h, w = frame.shape[:2]
        detection_size = args.detection_size or settings.detection_size
        x_scale, y_scale = scale_factors((w, h), detection_size)
        img = draw_poses(
            frame,
            poses,
            x_scale=x_scale,
            y_scale=y_scale,
            min_pose_score=settings.min_pose_score,
            min_keypoint_score=settings.min_keypoint_score,
        )
        overlay_path = Path(args.overlay_output or out_path.with_suffix(".png"))
        overlay_path.parent.mkdir(parents=True, exist_ok=True)
        if not cv2.imwrite(str(overlay_path), img):
            raise SystemExit(f"Cannot write overlay {overlay_path}")
        print(f"Wrote overlay to {overlay_path}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Decode poses from saved network outputs")
    parser.add_argument("--input", required=True, help="Path to .npz with the four output tensors")
    parser.add_argument("--output", required=True, help="Where to save JSON output")
    parser.add_argument("--stride", type=int, default=None, help="Override output stride")
    parser.add_argument("--threshold", type=float, default=None, help="Override score threshold")
    parser.add_argument("--max-poses", type=int, default=None)
    parser.add_argument("--nms-radius", type=float, default=None)
    parser.add_argument("--image", default=None, help="Frame to draw the decoded poses on")
    parser.add_argument("--overlay-output", default=None, help="Where to save the overlay image")
    parser.add_argument(
        "--detection-size", type=int, default=None, help="Square model input size (for scaling)"
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    cli_args = parser.parse_args()
    logging.basicConfig(level=logging.DEBUG if cli_args.verbose else logging.WARNING)
    run(cli_args)
