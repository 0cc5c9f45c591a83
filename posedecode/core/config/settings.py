"""Decoder configuration.

Settings are loaded from YAML defaults and overridden by environment variables
prefixed with `POSEDECODE_`.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, cast

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from posedecode.core.decoding.decoder import DecoderConfig


class DecoderSettings(BaseSettings):
    """Runtime configuration loaded from YAML defaults and `POSEDECODE_` env overrides."""

    # Network output stride: pixel = grid_index * output_stride.
    output_stride: int = 16
    score_threshold: float = Field(0.5, description="minimum root peak score, in [0, 1]")
    max_pose_detections: int = 100
    nms_radius: float = 20.0
    local_maximum_radius: int = 1
    offset_refine_steps: int = 2
    overlap_fraction: float = 0.5
    sigmoid_heatmap: bool = False

    # Overlay visibility thresholds.
    min_pose_score: float = 0.15
    min_keypoint_score: float = 0.02
    # Square input size the frames were resized to before inference.
    detection_size: int = 337

    model_config = SettingsConfigDict(env_prefix="POSEDECODE_", validate_assignment=True)

    @field_validator("output_stride")
    def _validate_output_stride(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("output_stride must be > 0")
        return v

    @field_validator("score_threshold")
    def _validate_score_threshold(cls, v: float) -> float:
        if not 0.0 <= float(v) <= 1.0:
            raise ValueError("score_threshold must be in [0, 1]")
        return float(v)

    @field_validator("max_pose_detections")
    def _validate_max_pose_detections(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_pose_detections must be >= 0")
        return v

    @field_validator("nms_radius")
    def _validate_nms_radius(cls, v: float) -> float:
        if v < 0:
            raise ValueError("nms_radius must be >= 0")
        return float(v)

    @field_validator("local_maximum_radius")
    def _validate_local_maximum_radius(cls, v: int) -> int:
        if v < 0:
            raise ValueError("local_maximum_radius must be >= 0")
        return v

    @field_validator("offset_refine_steps")
    def _validate_offset_refine_steps(cls, v: int) -> int:
        if v < 1:
            raise ValueError("offset_refine_steps must be >= 1")
        return v

    @field_validator("overlap_fraction", "min_pose_score", "min_keypoint_score")
    def _validate_unit_interval(cls, v: float) -> float:
        if not 0.0 <= float(v) <= 1.0:
            raise ValueError("value must be in [0, 1]")
        return float(v)

    @field_validator("detection_size")
    def _validate_detection_size(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("detection_size must be > 0")
        return v


def settings_to_dict(settings: DecoderSettings) -> dict[str, Any]:
    return cast(dict[str, Any], settings.model_dump())


def _config_path() -> Path:
    """Return the YAML configuration path (defaults to config/decoder.config.yml)."""

    return Path(os.getenv("POSEDECODE_CONFIG", "config/decoder.config.yml"))


def load_settings() -> DecoderSettings:
    """Load settings from YAML and environment variables.

    YAML provides defaults; environment variables override.
    """

    data: dict[str, Any] = {}
    path = _config_path()
    if path.exists():
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

    env_settings = DecoderSettings()
    env_overrides: dict[str, Any] = {
        name: getattr(env_settings, name) for name in env_settings.model_fields_set
    }

    merged = {**data, **env_overrides}
    return DecoderSettings(**merged)


def config_from_settings(settings: DecoderSettings) -> DecoderConfig:
    """Build the frozen `DecoderConfig` used by `PoseDecoder`."""

    return DecoderConfig(
        output_stride=settings.output_stride,
        score_threshold=settings.score_threshold,
        max_pose_detections=settings.max_pose_detections,
        nms_radius=settings.nms_radius,
        local_maximum_radius=settings.local_maximum_radius,
        offset_refine_steps=settings.offset_refine_steps,
        overlap_fraction=settings.overlap_fraction,
        sigmoid_heatmap=settings.sigmoid_heatmap,
    )
