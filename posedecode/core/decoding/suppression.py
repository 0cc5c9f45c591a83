from __future__ import annotations

from posedecode.core.types import Pose


def matching_keypoints(candidate: Pose, accepted: Pose, nms_radius: float) -> int:
    """Count parts present in both poses whose positions are strictly within `nms_radius`."""

    r2 = float(nms_radius) ** 2
    if r2 <= 0.0:
        return 0
    count = 0
    for a, b in zip(candidate.keypoints, accepted.keypoints, strict=True):
        if not (a.present and b.present):
            continue
        dx = a.position[0] - b.position[0]
        dy = a.position[1] - b.position[1]
        if dx * dx + dy * dy < r2:
            count += 1
    return count


def is_duplicate(
    candidate: Pose,
    accepted: list[Pose],
    nms_radius: float,
    overlap_fraction: float,
) -> bool:
    """True when `candidate` overlaps any accepted pose by more than `overlap_fraction`.

    The fraction is taken over the candidate's present keypoints.
    """

    n_present = sum(1 for kp in candidate.keypoints if kp.present)
    if n_present == 0:
        return False
    limit = float(overlap_fraction) * n_present
    for pose in accepted:
        if matching_keypoints(candidate, pose, nms_radius) > limit:
            return True
    return False


def suppress_poses(
    poses: list[Pose],
    max_poses: int,
    nms_radius: float,
    overlap_fraction: float = 0.5,
) -> list[Pose]:
    """Greedy pose-level NMS.

    Candidates are visited by descending score (stable for ties). Returns at
    most `max_poses` poses, highest score first. Never raises for empty input;
    a radius of 0 keeps every candidate.
    """

    limit = int(max_poses)
    if limit <= 0 or not poses:
        return []

    ranked = sorted(poses, key=lambda p: float(p.score), reverse=True)
    kept: list[Pose] = []
    for pose in ranked:
        if is_duplicate(pose, kept, nms_radius, overlap_fraction):
            continue
        kept.append(pose)
        if len(kept) >= limit:
            break
    return kept
