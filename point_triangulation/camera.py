"""
Pinhole camera model for projecting world points to image coordinates.

Projection Model:
    1. World to camera frame: q = R.T @ (p - t)   (see ``transforms.Pose``)
    2. Perspective projection: x = qx/qz, y = qy/qz
    3. Calibration: (u, v) = uncalibrate(x, y)   (see ``calibration``)

Each stage provides its analytic Jacobian so the full derivative of a
projection with respect to the world point is available by the chain rule.
"""

import numpy as np
from typing import List, Sequence, Tuple
import logging

from .calibration import Calibration
from .transforms import Pose

logger = logging.getLogger(__name__)


class PinholeCamera:
    """
    A calibrated camera at a fixed pose.

    Attributes:
        pose: Camera-to-world pose
        calibration: Intrinsic calibration model
    """

    def __init__(self, pose: Pose, calibration: Calibration):
        self.pose = pose
        self.calibration = calibration

    def projection_matrix(self) -> np.ndarray:
        """3x4 projection matrix P = K @ [R | t] (world-to-camera extrinsic)."""
        return self.calibration.K @ self.pose.extrinsic()

    @staticmethod
    def project_to_camera(point_camera: np.ndarray) -> np.ndarray:
        """
        Perspective projection of a camera-frame point to normalized coordinates.

        No cheirality check is made here; points behind the camera project
        through the center like any other point.
        """
        X, Y, Z = point_camera
        return np.array([X / Z, Y / Z])

    @staticmethod
    def project_to_camera_jacobian(
        point_camera: np.ndarray,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Perspective projection along with its 2x3 Jacobian.

        Returns:
            Tuple of (normalized point, d(x, y)/d(X, Y, Z))
        """
        X, Y, Z = point_camera
        x = X / Z
        y = Y / Z

        # x = X/Z, y = Y/Z
        # dx/dX = 1/Z, dx/dZ = -X/Z² = -x/Z
        # dy/dY = 1/Z, dy/dZ = -Y/Z² = -y/Z
        inv_z = 1.0 / Z
        J = np.array([
            [inv_z, 0, -x * inv_z],
            [0, inv_z, -y * inv_z]
        ])
        return np.array([x, y]), J

    def depth(self, point: np.ndarray) -> float:
        """Z coordinate of a world point in this camera's frame."""
        return float(self.pose.transform_to(point)[2])

    def project(self, point: np.ndarray) -> np.ndarray:
        """Project a world point to pixel coordinates."""
        normalized = self.project_to_camera(self.pose.transform_to(point))
        return self.calibration.uncalibrate(normalized)

    def project_jacobian(self, point: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Project a world point and differentiate with respect to it.

        The 2x3 Jacobian is
            d(uncalibrate)/d(normalized) @ d(project_to_camera)/d(q) @ d(q)/d(point)

        Returns:
            Tuple of (pixel, d(pixel)/d(point))
        """
        q, H_transform = self.pose.transform_to_jacobian(point)
        normalized, H_project = self.project_to_camera_jacobian(q)
        pixel, _, H_uncal = self.calibration.uncalibrate_jacobians(normalized)
        return pixel, H_uncal @ H_project @ H_transform

    def backproject(self, pixel: np.ndarray, depth: float) -> np.ndarray:
        """World point at the given depth along the ray through ``pixel``."""
        x, y = self.calibration.calibrate(pixel)
        return self.pose.transform_from(np.array([x, y, 1.0]) * depth)

    def reprojection_error(self, point: np.ndarray, measured: np.ndarray) -> float:
        """Euclidean distance in pixels between the projection of ``point`` and ``measured``."""
        residual = self.project(point) - np.asarray(measured, dtype=np.float64)
        return float(np.linalg.norm(residual))

    def __repr__(self) -> str:
        return f"PinholeCamera(pose={self.pose!r}, calibration={self.calibration!r})"


def cameras_from_poses(
    poses: Sequence[Pose], calibration: Calibration
) -> List[PinholeCamera]:
    """Build cameras that all share a single calibration."""
    return [PinholeCamera(pose, calibration) for pose in poses]
