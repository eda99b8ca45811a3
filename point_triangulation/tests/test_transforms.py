"""
Tests for camera pose transforms.

These tests verify the correctness of:
    - Rotation helpers and rotation validation
    - Pose construction (matrix, Euler, look-at)
    - World/camera frame mappings and their Jacobian
    - The world-to-camera extrinsic
"""

import pytest
import numpy as np
from numpy.testing import assert_allclose

from point_triangulation.transforms import (
    Pose,
    rotation_about_x,
    rotation_about_y,
    rotation_about_z,
    validate_rotation_matrix,
)


class TestRotationHelpers:
    """Tests for elementary rotations."""

    def test_zero_angle_is_identity(self):
        for rotation in (rotation_about_x, rotation_about_y, rotation_about_z):
            assert_allclose(rotation(0.0), np.eye(3), atol=1e-12)

    def test_rotation_about_z(self):
        """Rotating about Z by 90° takes X to Y."""
        R = rotation_about_z(np.pi / 2)
        assert_allclose(R @ [1, 0, 0], [0, 1, 0], atol=1e-12)

    def test_rotation_about_y_half_turn(self):
        """A half turn about Y flips X and Z."""
        R = rotation_about_y(np.pi)
        assert_allclose(R @ [1, 2, 3], [-1, 2, -3], atol=1e-12)

    def test_rotations_are_valid(self):
        for angle in (0.3, -1.2, 2.9):
            assert validate_rotation_matrix(rotation_about_x(angle))
            assert validate_rotation_matrix(rotation_about_y(angle))
            assert validate_rotation_matrix(rotation_about_z(angle))


class TestValidateRotationMatrix:
    """Tests for rotation matrix validation."""

    def test_valid_identity(self):
        assert validate_rotation_matrix(np.eye(3))

    def test_invalid_reflection(self):
        """Reflection (det=-1) should be invalid."""
        assert not validate_rotation_matrix(np.diag([-1.0, 1.0, 1.0]))

    def test_invalid_scaling(self):
        assert not validate_rotation_matrix(2 * np.eye(3))

    def test_invalid_shape(self):
        assert not validate_rotation_matrix(np.eye(2))
        assert not validate_rotation_matrix(np.eye(4))

    def test_invalid_non_finite(self):
        R = np.eye(3)
        R[0, 0] = np.nan
        assert not validate_rotation_matrix(R)


class TestPoseConstruction:
    """Tests for building poses."""

    def test_default_is_identity(self):
        pose = Pose()
        assert_allclose(pose.matrix(), np.eye(4))
        assert Pose.identity().equals(pose)

    def test_rejects_reflection(self):
        with pytest.raises(ValueError):
            Pose(np.diag([1.0, 1.0, -1.0]))

    def test_rejects_bad_translation(self):
        with pytest.raises(ValueError):
            Pose(np.eye(3), [1.0, 2.0])
        with pytest.raises(ValueError):
            Pose(np.eye(3), [1.0, np.inf, 0.0])

    def test_from_euler_matches_helpers(self):
        pose = Pose.from_euler([0, 30, 0], [1, 2, 3], sequence='xyz', degrees=True)
        assert_allclose(pose.rotation, rotation_about_y(np.deg2rad(30)), atol=1e-12)
        assert_allclose(pose.translation, [1, 2, 3])

    def test_from_rotvec(self):
        pose = Pose.from_rotvec([0, 0, np.pi / 2])
        assert_allclose(pose.rotation, rotation_about_z(np.pi / 2), atol=1e-12)

    def test_look_at_points_z_at_target(self):
        eye = np.array([5.0, 1.0, 2.0])
        target = np.array([0.0, 0.0, 1.0])
        pose = Pose.look_at(eye, target)

        assert validate_rotation_matrix(pose.rotation)
        assert_allclose(pose.center, eye)

        # Target lies on the optical axis, in front of the camera
        q = pose.transform_to(target)
        assert_allclose(q[:2], [0, 0], atol=1e-12)
        assert q[2] == pytest.approx(np.linalg.norm(target - eye))

    def test_look_at_image_y_points_down(self):
        """World up should appear as negative camera Y."""
        pose = Pose.look_at([0, -5, 0], [0, 0, 0], up=[0, 0, 1])
        above = pose.transform_to([0, 0, 1])
        assert above[1] < 0

    def test_look_at_rejects_degenerate(self):
        with pytest.raises(ValueError):
            Pose.look_at([1, 1, 1], [1, 1, 1])
        with pytest.raises(ValueError):
            Pose.look_at([0, 0, 0], [0, 0, 5], up=[0, 0, 1])


class TestPoseMappings:
    """Tests for frame mappings."""

    @pytest.fixture
    def pose(self):
        return Pose.from_euler([10, -20, 35], [0.5, -1.0, 2.0], degrees=True)

    def test_transform_to_inverts_transform_from(self, pose):
        p_cam = np.array([0.3, -0.7, 4.0])
        assert_allclose(pose.transform_to(pose.transform_from(p_cam)), p_cam, atol=1e-12)

    def test_center_maps_to_camera_origin(self, pose):
        assert_allclose(pose.transform_to(pose.center), [0, 0, 0], atol=1e-12)

    def test_extrinsic_is_top_of_inverse_matrix(self, pose):
        expected = np.linalg.inv(pose.matrix())[:3, :]
        assert_allclose(pose.extrinsic(), expected, atol=1e-12)

    def test_extrinsic_matches_transform_to(self, pose):
        p = np.array([1.0, 2.0, 3.0])
        assert_allclose(pose.extrinsic() @ np.append(p, 1.0), pose.transform_to(p), atol=1e-12)

    def test_inverse_composes_to_identity(self, pose):
        assert pose.compose(pose.inverse()).equals(Pose.identity())
        assert pose.inverse().compose(pose).equals(Pose.identity())

    def test_compose_applies_right_first(self, pose):
        other = Pose.from_rotvec([0.1, 0.2, -0.3], [1, 1, 1])
        p = np.array([0.2, 0.4, 0.6])
        expected = pose.transform_from(other.transform_from(p))
        assert_allclose(pose.compose(other).transform_from(p), expected, atol=1e-12)

    def test_transform_to_jacobian(self, pose, numerical_jacobian):
        p = np.array([1.0, -2.0, 7.0])
        q, H = pose.transform_to_jacobian(p)

        assert_allclose(q, pose.transform_to(p))
        assert_allclose(H, numerical_jacobian(pose.transform_to, p), atol=1e-8)
