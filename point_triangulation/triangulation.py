"""
Multi-view triangulation of a single 3D point.

Workflow:
    1. Build a 3x4 projection matrix P = K @ [R | t] for every camera
    2. Solve the homogeneous DLT system by SVD (Hartley & Zisserman, 2nd Ed.,
       p. 312) and check its numerical rank
    3. Dehomogenize to a Euclidean point
    4. Optionally refine by minimizing reprojection error
    5. Optionally verify the point is in front of every camera

Failures are reported as ``TriangulationUnderconstrainedError`` (the geometry
does not determine a finite point) or ``TriangulationCheiralityError`` (the
point lies behind a camera).
"""

import numpy as np
from typing import Optional, Sequence
import logging

from .calibration import Calibration
from .camera import PinholeCamera, cameras_from_poses
from .config import TriangulationParameters
from .exceptions import TriangulationCheiralityError, TriangulationUnderconstrainedError
from .refinement import triangulate_nonlinear
from .transforms import Pose

logger = logging.getLogger(__name__)

DEFAULT_RANK_TOLERANCE = 1e-9


def projection_matrix(pose: Pose, calibration: Calibration) -> np.ndarray:
    """
    Create a 3x4 camera projection matrix from calibration and pose.

    Args:
        pose: Camera-to-world pose
        calibration: Any calibration model (only ``K`` is used)

    Returns:
        P = K @ (first three rows of pose.matrix()^-1)
    """
    return calibration.K @ pose.extrinsic()


class CameraProjectionMatrix:
    """Projection matrix builder with the calibration partially applied."""

    def __init__(self, calibration: Calibration):
        self.K = calibration.K

    def __call__(self, pose: Pose) -> np.ndarray:
        return self.K @ pose.extrinsic()


def _as_measurement_array(measurements) -> np.ndarray:
    """Stack measurements into an (m, 2) array, rejecting non-finite values."""
    stacked = np.array(
        [np.asarray(m, dtype=np.float64).reshape(2) for m in measurements]
    ).reshape(-1, 2)
    if not np.all(np.isfinite(stacked)):
        raise ValueError("Measurements must be finite")
    return stacked


def triangulate_homogeneous_dlt(
    projection_matrices: Sequence[np.ndarray],
    measurements: Sequence[np.ndarray],
    rank_tol: float = DEFAULT_RANK_TOLERANCE,
) -> np.ndarray:
    """
    DLT triangulation in homogeneous coordinates.

    Each measurement (u, v) seen through P contributes the two rows
        u * P[2] - P[0]
        v * P[2] - P[1]
    to A, and the point is the unit right singular vector of A associated
    with its smallest singular value.

    Args:
        projection_matrices: 3x4 projection matrices, one per measurement
        measurements: Image measurements (u, v)
        rank_tol: Singular values at or below this are treated as zero

    Returns:
        Unit-norm homogeneous 4-vector (sign not fixed)

    Raises:
        TriangulationUnderconstrainedError: If fewer than two measurements are
            given or A has fewer than three significant singular values
    """
    m = len(projection_matrices)
    if m != len(measurements):
        raise ValueError(
            f"Got {m} projection matrices but {len(measurements)} measurements"
        )
    if m < 2:
        raise TriangulationUnderconstrainedError(
            f"At least two measurements are required, got {m}."
        )

    uv = _as_measurement_array(measurements)

    A = np.empty((2 * m, 4))
    for i, P in enumerate(projection_matrices):
        P = np.asarray(P, dtype=np.float64)
        if P.shape != (3, 4):
            raise ValueError(f"Projection matrix {i} must be 3x4, got {P.shape}")
        u, v = uv[i]
        A[2 * i] = u * P[2] - P[0]
        A[2 * i + 1] = v * P[2] - P[1]

    _, sigma, Vt = np.linalg.svd(A)
    logger.debug(f"DLT singular values: {sigma}")

    # Three significant singular values are needed to fix X up to scale.
    # A value equal to rank_tol counts as zero.
    if sigma[2] <= rank_tol:
        raise TriangulationUnderconstrainedError(
            f"DLT system is rank deficient: third singular value "
            f"{sigma[2]:.3g} <= rank tolerance {rank_tol:.3g}."
        )

    X = Vt[3]
    return X / np.linalg.norm(X)


def dehomogenize(
    X: np.ndarray,
    tolerance: Optional[float] = None,
    rank_tol: float = DEFAULT_RANK_TOLERANCE,
) -> np.ndarray:
    """
    Convert a homogeneous 4-vector to a Euclidean point.

    Args:
        X: Homogeneous point (X, Y, Z, W)
        tolerance: Floor on |W|; if None, ``rank_tol`` scaled by the norm of
            (X, Y, Z) is used

    Returns:
        (X/W, Y/W, Z/W)

    Raises:
        TriangulationUnderconstrainedError: If X is zero or |W| is at or
            below the floor (point at infinity)
    """
    X = np.asarray(X, dtype=np.float64)
    if X.shape != (4,):
        raise ValueError(f"Homogeneous point must be a 4-vector, got shape {X.shape}")

    if not np.all(np.isfinite(X)) or np.linalg.norm(X) == 0:
        raise TriangulationUnderconstrainedError("Homogeneous point is degenerate.")

    w = X[3]
    floor = tolerance if tolerance is not None else rank_tol * np.linalg.norm(X[:3])
    if abs(w) <= floor:
        raise TriangulationUnderconstrainedError(
            f"Homogeneous scale |W|={abs(w):.3g} is at or below {floor:.3g}; "
            f"the point is at infinity."
        )

    return X[:3] / w


def triangulate_dlt(
    projection_matrices: Sequence[np.ndarray],
    measurements: Sequence[np.ndarray],
    rank_tol: float = DEFAULT_RANK_TOLERANCE,
    dehomogenize_tolerance: Optional[float] = None,
) -> np.ndarray:
    """
    DLT triangulation returning a Euclidean point.

    See ``triangulate_homogeneous_dlt`` for the arguments.
    """
    X = triangulate_homogeneous_dlt(projection_matrices, measurements, rank_tol)
    return dehomogenize(X, dehomogenize_tolerance, rank_tol)


def check_cheirality(point: np.ndarray, poses: Sequence[Pose]) -> None:
    """
    Verify that a point lies strictly in front of every camera.

    Raises:
        TriangulationCheiralityError: On the first camera where the point's
            depth is not positive
    """
    for i, pose in enumerate(poses):
        depth = pose.transform_to(point)[2]
        if depth <= 0:
            logger.debug(f"Point {point} is behind camera {i} (depth={depth:.6g})")
            raise TriangulationCheiralityError(i, float(depth))


def triangulate(
    cameras: Sequence[PinholeCamera],
    measurements: Sequence[np.ndarray],
    rank_tol: Optional[float] = None,
    refine: Optional[bool] = None,
    enforce_cheirality: Optional[bool] = None,
    parameters: Optional[TriangulationParameters] = None,
) -> np.ndarray:
    """
    Triangulate a 3D point from two or more calibrated cameras.

    The linear DLT estimate is computed first. It is then optionally refined
    by nonlinear least squares on the reprojection error and checked for
    positive depth in every camera.

    Args:
        cameras: Cameras, each with its own pose and calibration
        measurements: Image measurements (u, v), one per camera
        rank_tol: SVD rank tolerance (overrides ``parameters``)
        refine: Run nonlinear refinement (overrides ``parameters``)
        enforce_cheirality: Fail if the point is behind any camera
            (overrides ``parameters``)
        parameters: Full parameter set; defaults if omitted

    Returns:
        Triangulated point in world coordinates

    Raises:
        TriangulationUnderconstrainedError: Geometry does not determine the point
        TriangulationCheiralityError: Point is behind a camera (only when
            cheirality is enforced)
    """
    params = parameters or TriangulationParameters()
    params.validate()
    if rank_tol is None:
        rank_tol = params.rank_tolerance
    if refine is None:
        refine = params.refine
    if enforce_cheirality is None:
        enforce_cheirality = params.enforce_cheirality
    if not rank_tol > 0:
        raise ValueError(f"rank_tol must be positive, got {rank_tol}")

    m = len(cameras)
    if m != len(measurements):
        raise ValueError(f"Got {m} cameras but {len(measurements)} measurements")
    if m < 2:
        raise TriangulationUnderconstrainedError(
            f"At least two cameras are required, got {m}."
        )

    projection_matrices = [camera.projection_matrix() for camera in cameras]
    point = triangulate_dlt(
        projection_matrices, measurements, rank_tol, params.dehomogenize_tolerance
    )
    logger.debug(f"DLT estimate: {point}")

    if refine:
        measured = _as_measurement_array(measurements)
        point = triangulate_nonlinear(cameras, list(measured), point, params.optimizer)
        logger.debug(f"Refined estimate: {point}")

    if enforce_cheirality:
        check_cheirality(point, [camera.pose for camera in cameras])

    return point


def triangulate_from_poses(
    poses: Sequence[Pose],
    calibration: Calibration,
    measurements: Sequence[np.ndarray],
    rank_tol: Optional[float] = None,
    refine: Optional[bool] = None,
    enforce_cheirality: Optional[bool] = None,
    parameters: Optional[TriangulationParameters] = None,
) -> np.ndarray:
    """
    Triangulate a point seen by cameras that share one calibration.

    See ``triangulate`` for the arguments and failure modes.
    """
    return triangulate(
        cameras_from_poses(poses, calibration),
        measurements,
        rank_tol=rank_tol,
        refine=refine,
        enforce_cheirality=enforce_cheirality,
        parameters=parameters,
    )
