"""
Point Triangulation Package

Recovers a 3D point from its 2D images in two or more calibrated pinhole
cameras.

Pipeline:
    Poses + calibrations → projection matrices → homogeneous DLT (SVD)
    → Euclidean point → optional reprojection-error refinement
    → cheirality check

Conventions:
    - Poses are camera-to-world; the camera frame is X-right, Y-down,
      Z-forward
    - Measurements are pixel coordinates (u, v)
    - Failures raise TriangulationUnderconstrainedError or
      TriangulationCheiralityError
"""

from .exceptions import (
    TriangulationError,
    TriangulationUnderconstrainedError,
    TriangulationCheiralityError,
)
from .transforms import Pose, validate_rotation_matrix
from .calibration import (
    Calibration,
    LinearCalibration,
    DistortedCalibration,
    BundlerCalibration,
    calibration_from_dict,
)
from .camera import PinholeCamera, cameras_from_poses
from .config import OptimizerSettings, TriangulationParameters
from .refinement import (
    IsotropicNoiseModel,
    TriangulationFactor,
    triangulation_graph,
    triangulate_nonlinear,
    reprojection_residual,
)
from .triangulation import (
    CameraProjectionMatrix,
    projection_matrix,
    triangulate_homogeneous_dlt,
    triangulate_dlt,
    dehomogenize,
    check_cheirality,
    triangulate,
    triangulate_from_poses,
)
from .scene import Measurement, Scene, load_scene

__version__ = "1.0.0"
__all__ = [
    "TriangulationError",
    "TriangulationUnderconstrainedError",
    "TriangulationCheiralityError",
    "Pose",
    "validate_rotation_matrix",
    "Calibration",
    "LinearCalibration",
    "DistortedCalibration",
    "BundlerCalibration",
    "calibration_from_dict",
    "PinholeCamera",
    "cameras_from_poses",
    "OptimizerSettings",
    "TriangulationParameters",
    "IsotropicNoiseModel",
    "TriangulationFactor",
    "triangulation_graph",
    "triangulate_nonlinear",
    "reprojection_residual",
    "CameraProjectionMatrix",
    "projection_matrix",
    "triangulate_homogeneous_dlt",
    "triangulate_dlt",
    "dehomogenize",
    "check_cheirality",
    "triangulate",
    "triangulate_from_poses",
    "Measurement",
    "Scene",
    "load_scene",
]
