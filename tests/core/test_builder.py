import numpy as np
import pytest

from posedecode.core.decoding.builder import (
    PoseBuilder,
    build_poses,
    nearest_cell,
    pose_score,
)
from posedecode.core.decoding.peaks import Peak, find_peaks
from posedecode.core.skeleton import NUM_EDGES
from posedecode.core.types import NUM_PARTS, Keypoint, Part


def _unbatched(t):
    return (
        t["heatmap"][0],
        t["offsets"][0],
        t["displacement_fwd"][0],
        t["displacement_bwd"][0],
    )


def test_nearest_cell_rounds_half_up():
    assert nearest_cell((24.0, 8.0), 16) == (1, 2)
    assert nearest_cell((23.9, 7.9), 16) == (0, 1)
    assert nearest_cell((-9.0, 0.0), 16) == (0, -1)


def test_pose_score_is_mean_of_present():
    kps = [
        Keypoint(Part.NOSE, (0.0, 0.0), 0.8),
        Keypoint(Part.LEFT_EYE, (0.0, 0.0), 0.4),
        Keypoint.empty(Part.RIGHT_EYE),
    ]
    assert pose_score(kps) == pytest.approx(0.6)
    assert pose_score([Keypoint.empty(Part.NOSE)]) == 0.0


def test_root_position_uses_stride_and_offset(make_tensors):
    t = make_tensors(5, 5)
    t["heatmap"][0, 2, 3, Part.NOSE] = 0.9
    t["offsets"][0, 2, 3, Part.NOSE] = 4.0  # y
    t["offsets"][0, 2, 3, Part.NOSE + NUM_PARTS] = -3.0  # x
    scores, offsets, fwd, bwd = _unbatched(t)

    poses = build_poses(find_peaks(scores, 0.5), scores, offsets, fwd, bwd, 16, 20)
    assert len(poses) == 1
    nose = poses[0].keypoint(Part.NOSE)
    assert nose.present
    assert nose.position == (3 * 16 - 3.0, 2 * 16 + 4.0)
    assert nose.score == pytest.approx(0.9)
    assert poses[0].discovery_order[0] is Part.NOSE


def test_forward_displacement_walks_down_the_chain(make_tensors):
    t = make_tensors(9, 9)
    t["heatmap"][0, 1, 4, Part.NOSE] = 0.9
    t["heatmap"][0, :, :, 1:] = 0.3
    # Every parent -> child edge points one cell down.
    t["displacement_fwd"][0, :, :, :NUM_EDGES] = 16.0
    scores, offsets, fwd, bwd = _unbatched(t)

    (pose,) = build_poses(find_peaks(scores, 0.5), scores, offsets, fwd, bwd, 16, 20)
    assert all(kp.present for kp in pose.keypoints)
    assert pose.keypoint(Part.LEFT_SHOULDER).position == (64.0, 32.0)
    assert pose.keypoint(Part.LEFT_ELBOW).position == (64.0, 48.0)
    assert pose.keypoint(Part.LEFT_ANKLE).position == (64.0, 80.0)
    assert pose.keypoint(Part.RIGHT_EAR).position == (64.0, 48.0)
    assert pose.score == pytest.approx((0.9 + 16 * 0.3) / 17)
    assert len(set(pose.discovery_order)) == NUM_PARTS


def test_backward_displacement_used_towards_parent(make_tensors):
    t = make_tensors(9, 9)
    t["heatmap"][0, 6, 4, Part.LEFT_WRIST] = 0.9
    # Child -> parent edges point one cell up; forward edges stay put.
    t["displacement_bwd"][0, :, :, :NUM_EDGES] = -16.0
    scores, offsets, fwd, bwd = _unbatched(t)

    (pose,) = build_poses(find_peaks(scores, 0.5), scores, offsets, fwd, bwd, 16, 20)
    assert pose.keypoint(Part.LEFT_WRIST).position == (64.0, 96.0)
    assert pose.keypoint(Part.LEFT_ELBOW).position == (64.0, 80.0)
    assert pose.keypoint(Part.LEFT_SHOULDER).position == (64.0, 64.0)
    assert pose.keypoint(Part.NOSE).position == (64.0, 48.0)
    assert pose.discovery_order[:3] == (Part.LEFT_WRIST, Part.LEFT_ELBOW, Part.LEFT_SHOULDER)


def test_offset_refines_target_position(make_tensors):
    t = make_tensors(5, 5)
    t["heatmap"][0, 2, 2, Part.NOSE] = 0.9
    t["heatmap"][0, 2, 3, Part.LEFT_EYE] = 0.7
    edge = 0  # nose -> leftEye
    t["displacement_fwd"][0, 2, 2, edge + NUM_EDGES] = 15.0  # x
    t["offsets"][0, 2, 3, Part.LEFT_EYE] = 2.5
    t["offsets"][0, 2, 3, Part.LEFT_EYE + NUM_PARTS] = -1.5
    scores, offsets, fwd, bwd = _unbatched(t)

    peaks = [p for p in find_peaks(scores, 0.5) if p.part is Part.NOSE]
    (pose,) = PoseBuilder(16, 20).build(peaks, scores, offsets, fwd, bwd)
    eye = pose.keypoint(Part.LEFT_EYE)
    assert eye.position == (48.0 - 1.5, 32.0 + 2.5)
    assert eye.score == pytest.approx(0.7)


def test_out_of_bounds_part_is_empty(make_tensors):
    t = make_tensors(5, 5)
    t["heatmap"][0, 2, 2, Part.NOSE] = 0.9
    t["displacement_fwd"][0, :, :, :NUM_EDGES] = 16.0
    scores, offsets, fwd, bwd = _unbatched(t)

    (pose,) = build_poses(find_peaks(scores, 0.5), scores, offsets, fwd, bwd, 16, 20)
    # nose row 2 -> shoulder row 3 -> elbow row 4 -> wrist row 5 (outside)
    assert pose.keypoint(Part.LEFT_ELBOW).present
    wrist = pose.keypoint(Part.LEFT_WRIST)
    assert wrist.is_empty
    assert wrist.part is Part.LEFT_WRIST
    # knee is row 5 as well, so the ankle behind it is never reached
    assert pose.keypoint(Part.LEFT_KNEE).is_empty
    assert pose.keypoint(Part.LEFT_ANKLE).is_empty
    assert Part.LEFT_WRIST not in pose.discovery_order
    assert len(pose.keypoints) == NUM_PARTS


def test_root_claimed_by_earlier_pose_is_skipped(make_tensors):
    t = make_tensors(5, 8)
    t["heatmap"][0, 2, 2, Part.NOSE] = 0.9
    t["heatmap"][0, 2, 4, Part.NOSE] = 0.8
    scores, offsets, fwd, bwd = _unbatched(t)
    peaks = find_peaks(scores, 0.5)

    assert len(build_poses(peaks, scores, offsets, fwd, bwd, 16, nms_radius=20)) == 2
    poses = build_poses(peaks, scores, offsets, fwd, bwd, 16, nms_radius=40)
    assert len(poses) == 1
    assert poses[0].id == 0


def test_root_of_other_part_is_not_claimed(make_tensors):
    t = make_tensors(5, 5)
    t["heatmap"][0, 2, 2, Part.NOSE] = 0.9
    t["heatmap"][0, 2, 2, Part.LEFT_EYE] = 0.8
    scores, offsets, fwd, bwd = _unbatched(t)
    peaks = [Peak(Part.NOSE, 2, 2, 0.9), Peak(Part.LEFT_HIP, 0, 0, 0.6)]
    poses = build_poses(peaks, scores, offsets, fwd, bwd, 16, nms_radius=20)
    # The nose pose already holds a leftHip at (32, 32); (0, 0) is 45px away.
    assert [p.id for p in poses] == [0, 1]


def test_build_with_no_peaks_is_empty(make_tensors):
    scores, offsets, fwd, bwd = _unbatched(make_tensors(3, 3))
    assert build_poses([], scores, offsets, fwd, bwd, 16, 20) == []


def test_builder_is_stateless(make_tensors):
    rng = np.random.default_rng(3)
    t = make_tensors(8, 8)
    t["heatmap"][:] = rng.random(t["heatmap"].shape)
    t["offsets"][:] = rng.normal(0, 4, t["offsets"].shape)
    t["displacement_fwd"][:] = rng.normal(0, 16, t["displacement_fwd"].shape)
    t["displacement_bwd"][:] = rng.normal(0, 16, t["displacement_bwd"].shape)
    scores, offsets, fwd, bwd = _unbatched(t)
    builder = PoseBuilder(16, 20)
    peaks = find_peaks(scores, 0.5)
    first = builder.build(peaks, scores, offsets, fwd, bwd)
    second = builder.build(peaks, scores, offsets, fwd, bwd)
    assert first == second
