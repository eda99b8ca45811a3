"""
Rigid-body transforms for camera poses.

Pose Convention:
    A ``Pose`` stores the camera-to-world transform M = [R | t], so that
        x_world = R @ x_cam + t
    The world-to-camera extrinsic used by projection matrices and by the
    cheirality check is the top 3x4 block of M^-1:
        x_cam = R.T @ (x_world - t)

Camera Frame:
    X-right, Y-down, Z-forward (looking along +Z). A point is in front of a
    camera iff its camera-frame Z is strictly positive.

Rotation Conventions:
    - All rotations use right-hand rule
    - Euler angles follow scipy's ``Rotation.from_euler`` sequence strings
"""

import numpy as np
from typing import Optional, Tuple
from scipy.spatial.transform import Rotation
import logging

logger = logging.getLogger(__name__)


def rotation_about_x(angle: float) -> np.ndarray:
    """Rotation matrix about the x-axis, angle in radians."""
    c, s = np.cos(angle), np.sin(angle)
    return np.array([
        [1, 0, 0],
        [0, c, -s],
        [0, s, c]
    ])


def rotation_about_y(angle: float) -> np.ndarray:
    """Rotation matrix about the y-axis, angle in radians."""
    c, s = np.cos(angle), np.sin(angle)
    return np.array([
        [c, 0, s],
        [0, 1, 0],
        [-s, 0, c]
    ])


def rotation_about_z(angle: float) -> np.ndarray:
    """Rotation matrix about the z-axis, angle in radians."""
    c, s = np.cos(angle), np.sin(angle)
    return np.array([
        [c, -s, 0],
        [s, c, 0],
        [0, 0, 1]
    ])


def validate_rotation_matrix(R: np.ndarray, tol: float = 1e-6) -> bool:
    """
    Validate that a matrix is a proper rotation matrix.

    A proper rotation matrix must:
        1. Be orthogonal: R @ R.T = I
        2. Have determinant = +1 (not a reflection)

    Args:
        R: 3x3 matrix to validate
        tol: Numerical tolerance

    Returns:
        True if R is a valid rotation matrix
    """
    R = np.asarray(R, dtype=np.float64)
    if R.shape != (3, 3):
        return False

    if not np.all(np.isfinite(R)):
        return False

    # Check orthogonality
    if not np.allclose(R @ R.T, np.eye(3), atol=tol):
        return False

    # Check determinant
    if not np.isclose(np.linalg.det(R), 1.0, atol=tol):
        return False

    return True


class Pose:
    """
    Camera pose in the world frame (camera-to-world rigid transform).

    Attributes:
        rotation: 3x3 rotation matrix taking camera-frame vectors to world frame
        translation: Camera center in world coordinates
    """

    def __init__(
        self,
        rotation: Optional[np.ndarray] = None,
        translation: Optional[np.ndarray] = None,
    ):
        """
        Initialize a pose.

        Args:
            rotation: 3x3 proper rotation matrix (identity if omitted)
            translation: 3-vector camera position (origin if omitted)

        Raises:
            ValueError: If rotation is not a proper rotation or translation
                is not a finite 3-vector
        """
        R = np.eye(3) if rotation is None else np.array(rotation, dtype=np.float64)
        t = np.zeros(3) if translation is None else np.array(translation, dtype=np.float64)

        if not validate_rotation_matrix(R):
            raise ValueError(f"Pose rotation is not a proper rotation matrix:\n{R}")
        if t.shape != (3,) or not np.all(np.isfinite(t)):
            raise ValueError(f"Pose translation must be a finite 3-vector, got {t}")

        self.rotation = R
        self.translation = t
        self.rotation.setflags(write=False)
        self.translation.setflags(write=False)

    @classmethod
    def identity(cls) -> "Pose":
        return cls()

    @classmethod
    def from_euler(
        cls,
        angles,
        translation=None,
        sequence: str = 'xyz',
        degrees: bool = False,
    ) -> "Pose":
        """Build a pose from Euler angles (scipy sequence convention)."""
        R = Rotation.from_euler(sequence, angles, degrees=degrees).as_matrix()
        return cls(R, translation)

    @classmethod
    def from_rotvec(cls, rotvec, translation=None) -> "Pose":
        """Build a pose from an axis-angle rotation vector (radians)."""
        R = Rotation.from_rotvec(rotvec).as_matrix()
        return cls(R, translation)

    @classmethod
    def look_at(cls, eye, target, up=(0.0, 0.0, 1.0)) -> "Pose":
        """
        Pose of a camera at ``eye`` looking towards ``target``.

        The camera Z axis points at the target, X to the right and Y down,
        with ``up`` giving the world direction that appears upward in the
        image.

        Raises:
            ValueError: If eye and target coincide or ``up`` is parallel to
                the viewing direction
        """
        eye = np.asarray(eye, dtype=np.float64)
        target = np.asarray(target, dtype=np.float64)
        up = np.asarray(up, dtype=np.float64)

        z_axis = target - eye
        norm_z = np.linalg.norm(z_axis)
        if norm_z == 0:
            raise ValueError("look_at requires distinct eye and target")
        z_axis = z_axis / norm_z

        x_axis = np.cross(-up, z_axis)
        norm_x = np.linalg.norm(x_axis)
        if norm_x < 1e-12:
            raise ValueError("look_at up vector is parallel to the viewing direction")
        x_axis = x_axis / norm_x
        y_axis = np.cross(z_axis, x_axis)

        return cls(np.column_stack([x_axis, y_axis, z_axis]), eye)

    @property
    def center(self) -> np.ndarray:
        """Camera center in world coordinates."""
        return self.translation

    def matrix(self) -> np.ndarray:
        """4x4 homogeneous camera-to-world matrix."""
        M = np.eye(4)
        M[:3, :3] = self.rotation
        M[:3, 3] = self.translation
        return M

    def inverse(self) -> "Pose":
        R_inv = self.rotation.T
        return Pose(R_inv, -R_inv @ self.translation)

    def compose(self, other: "Pose") -> "Pose":
        """Return self * other (apply ``other`` first, then ``self``)."""
        return Pose(
            self.rotation @ other.rotation,
            self.rotation @ other.translation + self.translation,
        )

    def extrinsic(self) -> np.ndarray:
        """
        World-to-camera extrinsic [R | t].

        This is the first three rows of the inverse of ``matrix()``; the same
        mapping is used for projection matrices and for depth checks.
        """
        return self.inverse().matrix()[:3, :]

    def transform_from(self, point_camera: np.ndarray) -> np.ndarray:
        """Transform a point from camera frame to world frame."""
        return self.rotation @ np.asarray(point_camera, dtype=np.float64) + self.translation

    def transform_to(self, point_world: np.ndarray) -> np.ndarray:
        """Transform a point from world frame to camera frame."""
        return self.rotation.T @ (np.asarray(point_world, dtype=np.float64) - self.translation)

    def transform_to_jacobian(
        self, point_world: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Transform a point to camera frame along with its derivative.

        Returns:
            Tuple of (point_camera, 3x3 Jacobian d(point_camera)/d(point_world))
        """
        return self.transform_to(point_world), self.rotation.T.copy()

    def equals(self, other: "Pose", tol: float = 1e-9) -> bool:
        return (
            np.allclose(self.rotation, other.rotation, atol=tol)
            and np.allclose(self.translation, other.translation, atol=tol)
        )

    def __repr__(self) -> str:
        rotvec = Rotation.from_matrix(self.rotation).as_rotvec()
        return f"Pose(rotvec={np.round(rotvec, 6).tolist()}, translation={self.translation.tolist()})"
