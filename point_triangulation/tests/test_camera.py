"""
Tests for the pinhole camera model.
"""

import pytest
import numpy as np
from numpy.testing import assert_allclose

from point_triangulation.calibration import DistortedCalibration, LinearCalibration
from point_triangulation.camera import PinholeCamera, cameras_from_poses
from point_triangulation.transforms import Pose


class TestProjectToCamera:
    """Tests for the perspective division."""

    def test_projection(self):
        assert_allclose(PinholeCamera.project_to_camera([2.0, -1.0, 4.0]), [0.5, -0.25])

    def test_jacobian(self, numerical_jacobian):
        q = np.array([0.4, -0.3, 2.5])
        normalized, J = PinholeCamera.project_to_camera_jacobian(q)

        assert_allclose(normalized, PinholeCamera.project_to_camera(q))
        assert_allclose(J, numerical_jacobian(PinholeCamera.project_to_camera, q), atol=1e-8)


class TestPinholeCamera:
    """Tests for full projections through pose and calibration."""

    @pytest.fixture
    def camera(self, vga_calibration):
        pose = Pose.look_at([3.0, -4.0, 1.0], [0.0, 0.0, 0.5])
        return PinholeCamera(pose, vga_calibration)

    @pytest.fixture
    def distorted_camera(self):
        pose = Pose.from_euler([5, -10, 3], [0.2, 0.1, -3.0], degrees=True)
        calibration = DistortedCalibration(
            fx=550.0, fy=560.0, s=0.2, u0=300.0, v0=250.0, k1=-0.08, k2=0.01, p1=0.002
        )
        return PinholeCamera(pose, calibration)

    def test_identity_camera_projects_on_axis_to_principal_point(self, vga_calibration):
        camera = PinholeCamera(Pose(), vga_calibration)
        assert_allclose(camera.project([0, 0, 7]), [320.0, 240.0])

    def test_projection_matrix_agrees_with_project(self, camera):
        """P @ (X, 1) is a positive multiple of (u, v, 1) for points in front."""
        p = np.array([0.3, 0.2, 0.8])
        uvw = camera.projection_matrix() @ np.append(p, 1.0)

        assert uvw[2] > 0
        assert_allclose(uvw[:2] / uvw[2], camera.project(p), atol=1e-9)
        assert uvw[2] == pytest.approx(camera.depth(p))

    def test_depth_sign(self, camera):
        target = np.array([0.0, 0.0, 0.5])
        behind = 2 * camera.pose.center - target
        assert camera.depth(target) > 0
        assert camera.depth(behind) < 0

    def test_project_jacobian(self, camera, numerical_jacobian):
        p = np.array([0.3, 0.2, 0.8])
        pixel, H = camera.project_jacobian(p)

        assert H.shape == (2, 3)
        assert_allclose(pixel, camera.project(p))
        assert_allclose(H, numerical_jacobian(camera.project, p), atol=1e-5)

    def test_project_jacobian_with_distortion(self, distorted_camera, numerical_jacobian):
        p = np.array([0.5, -0.4, 2.0])
        _, H = distorted_camera.project_jacobian(p)
        assert_allclose(H, numerical_jacobian(distorted_camera.project, p), atol=1e-5)

    def test_backproject(self, distorted_camera):
        p = np.array([0.5, -0.4, 2.0])
        depth = distorted_camera.depth(p)
        pixel = distorted_camera.project(p)
        assert_allclose(distorted_camera.backproject(pixel, depth), p, atol=1e-8)

    def test_reprojection_error(self, camera):
        p = np.array([0.3, 0.2, 0.8])
        measured = camera.project(p) + np.array([3.0, 4.0])
        assert camera.reprojection_error(p, measured) == pytest.approx(5.0)


def test_cameras_from_poses_share_calibration():
    calibration = LinearCalibration(fx=400.0, fy=400.0)
    poses = [Pose(), Pose(translation=[1, 0, 0])]
    cameras = cameras_from_poses(poses, calibration)

    assert len(cameras) == 2
    assert all(camera.calibration is calibration for camera in cameras)
    assert cameras[1].pose is poses[1]
