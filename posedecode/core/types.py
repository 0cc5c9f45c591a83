"""Shared type definitions used across the decoder.

This module centralizes the small, stable types (parts, keypoints, poses) so the
peak finder, builder, suppressor and overlay code can stay strongly typed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any

Point = tuple[float, float]


class Part(IntEnum):
    """Body parts in network channel order."""

    NOSE = 0
    LEFT_EYE = 1
    RIGHT_EYE = 2
    LEFT_EAR = 3
    RIGHT_EAR = 4
    LEFT_SHOULDER = 5
    RIGHT_SHOULDER = 6
    LEFT_ELBOW = 7
    RIGHT_ELBOW = 8
    LEFT_WRIST = 9
    RIGHT_WRIST = 10
    LEFT_HIP = 11
    RIGHT_HIP = 12
    LEFT_KNEE = 13
    RIGHT_KNEE = 14
    LEFT_ANKLE = 15
    RIGHT_ANKLE = 16

    @property
    def name_camel(self) -> str:
        """Return the camelCase name used by the model exports (e.g. `leftWrist`)."""

        head, *rest = self.name.lower().split("_")
        return head + "".join(w.capitalize() for w in rest)

    @classmethod
    def from_name(cls, name: str) -> Part:
        """Look a part up by its camelCase or UPPER_SNAKE name."""

        key = str(name).strip()
        for part in cls:
            if key == part.name_camel or key.upper() == part.name:
                return part
        raise KeyError(name)


NUM_PARTS = len(Part)


@dataclass(frozen=True)
class Keypoint:
    """One body part of a pose, in detector-input pixel coordinates.

    `present` is False for parts the builder could not reach; such keypoints
    carry no meaningful position or score.
    """

    part: Part
    position: Point
    score: float
    present: bool = True

    @classmethod
    def empty(cls, part: Part) -> Keypoint:
        return cls(part=part, position=(0.0, 0.0), score=0.0, present=False)

    @property
    def is_empty(self) -> bool:
        return not self.present

    def to_dict(self) -> dict[str, Any]:
        return {
            "part": self.part.name_camel,
            "x": float(self.position[0]),
            "y": float(self.position[1]),
            "score": float(self.score),
            "present": self.present,
        }


@dataclass(frozen=True)
class Pose:
    """A decoded person skeleton.

    `keypoints` always holds exactly one slot per `Part`, indexed by the part
    value. `discovery_order` lists the present parts in the order they were
    resolved, starting from the root.
    """

    id: int
    score: float
    keypoints: tuple[Keypoint, ...]
    discovery_order: tuple[Part, ...] = field(default=())

    def __post_init__(self) -> None:
        if len(self.keypoints) != NUM_PARTS:
            raise ValueError(f"Pose needs {NUM_PARTS} keypoint slots, got {len(self.keypoints)}")
        for i, kp in enumerate(self.keypoints):
            if int(kp.part) != i:
                raise ValueError(f"keypoint slot {i} holds part {kp.part.name_camel}")

    def keypoint(self, part: Part) -> Keypoint:
        return self.keypoints[int(part)]

    def present_keypoints(self) -> list[Keypoint]:
        return [kp for kp in self.keypoints if kp.present]

    def scaled(self, x_scale: float, y_scale: float) -> Pose:
        """Return a copy with positions multiplied by per-axis scale factors.

        Used by callers to map detector-input coordinates to display space.
        """

        sx, sy = float(x_scale), float(y_scale)
        kps = tuple(
            Keypoint(kp.part, (kp.position[0] * sx, kp.position[1] * sy), kp.score, kp.present)
            if kp.present
            else kp
            for kp in self.keypoints
        )
        return Pose(id=self.id, score=self.score, keypoints=kps, discovery_order=self.discovery_order)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable view of the pose."""

        return {
            "id": self.id,
            "score": float(self.score),
            "keypoints": [kp.to_dict() for kp in self.keypoints],
            "discovery_order": [p.name_camel for p in self.discovery_order],
        }
