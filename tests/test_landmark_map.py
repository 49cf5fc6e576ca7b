import numpy as np
import pytest
import yaml

from landmark_localizer.camera import CameraIntrinsics, project_points, world_to_camera
from landmark_localizer.landmark_map import load_map, parse_map
from landmark_localizer.types import EgoPose, MapLandmark

from tests.synthetic import ID_A, ID_B, yaw_quat


MAP_DATA = {
    'grid_spacing': 0.05,
    'landmarks': [
        {'id': ID_A, 'position': [1.0, 2.0, 3.0], 'orientation': [1.0, 0.0, 0.0, 0.0]},
        {'id': ID_B, 'position': [0.0, 0.0, 2.5],
         'points': [[0.15, 0.0, 0.0], [0.0, 0.0, 0.0], [0.0, 0.15, 0.0]]},
    ]
}


def test_parse_map_generates_grid_points():
    landmarks = parse_map(MAP_DATA)

    assert set(landmarks) == {ID_A, ID_B}
    lm = landmarks[ID_A]
    assert lm.point_count == 5
    np.testing.assert_allclose(lm.points[0], [0.15, 0.0, 0.0])
    np.testing.assert_allclose(lm.points[3], [0.05, 0.0, 0.0])
    assert not lm.in_world_frame


def test_parse_map_keeps_explicit_points():
    lm = parse_map(MAP_DATA)[ID_B]
    assert lm.point_count == 3
    np.testing.assert_allclose(lm.orientation, [1.0, 0.0, 0.0, 0.0])


def test_duplicate_ids_are_rejected():
    data = {'landmarks': [{'id': 7}, {'id': 7}]}
    with pytest.raises(ValueError):
        parse_map(data)


def test_ids_must_fit_sixteen_bits():
    with pytest.raises(ValueError):
        parse_map({'landmarks': [{'id': 70000}]})


def test_load_map_from_yaml(tmp_path):
    path = tmp_path / 'map.yaml'
    path.write_text(yaml.safe_dump(MAP_DATA))

    landmarks = load_map(path)
    assert sorted(landmarks) == sorted([ID_A, ID_B])
    np.testing.assert_allclose(landmarks[ID_A].position, [1.0, 2.0, 3.0])


def test_to_world_is_applied_once():
    lm = MapLandmark(identity=1, position=[1.0, 0.0, 2.0], orientation=yaw_quat(np.pi / 2),
                     points=[[0.1, 0.0, 0.0]])
    lm.to_world()
    lm.to_world()
    np.testing.assert_allclose(lm.points[0], [1.0, 0.1, 2.0], atol=1e-12)


def test_ego_pose_copy_is_independent():
    pose = EgoPose(position=[1.0, 2.0, 3.0], orientation=yaw_quat(0.4))
    copy = pose.copy()
    copy.position[0] = 10.0

    assert pose.position[0] == 1.0
    assert pose.yaw == pytest.approx(0.4)


# ---------- camera ----------

def test_intrinsics_yaml_round_trip(tmp_path):
    intrinsics = CameraIntrinsics(fx=510.0, fy=505.0, cx=320.5, cy=239.5, k1=-0.1, p2=0.001)
    path = tmp_path / 'camera.yaml'
    intrinsics.save(path)

    assert CameraIntrinsics.load(path) == intrinsics


def test_intrinsics_require_focal_length(tmp_path):
    path = tmp_path / 'camera.yaml'
    path.write_text(yaml.safe_dump({'cx': 1.0, 'cy': 2.0}))
    with pytest.raises(ValueError):
        CameraIntrinsics.load(path)


def test_intrinsics_vector_layout():
    intrinsics = CameraIntrinsics(1, 2, 3, 4, 5, 6, 7, 8, 9)
    np.testing.assert_array_equal(intrinsics.as_vector(), np.arange(1, 10))
    assert CameraIntrinsics.from_vector(intrinsics.as_vector()) == intrinsics


def test_camera_looks_along_its_z_axis():
    intrinsics = CameraIntrinsics(fx=500.0, fy=500.0, cx=320.0, cy=240.0)
    points = np.array([[0.0, 0.0, 2.0], [0.2, 0.0, 2.0], [0.0, 0.2, 2.0]])
    pixels = project_points(points, np.zeros(3), np.array([1.0, 0.0, 0.0, 0.0]), intrinsics.as_vector())

    np.testing.assert_allclose(pixels, [[320, 240], [370, 240], [320, 290]])


def test_world_to_camera_undoes_pose():
    position = np.array([0.5, -0.2, 0.1])
    orientation = yaw_quat(np.pi / 2)
    cam = world_to_camera(np.array([[0.5, 0.8, 2.1]]), position, orientation)
    np.testing.assert_allclose(cam, [[1.0, 0.0, 2.0]], atol=1e-12)
