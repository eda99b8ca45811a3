"""
Nonlinear refinement of a triangulated point.

Minimizes the sum of squared, whitened reprojection errors over the 3D point
only; every camera is held fixed. Each measurement contributes one
``TriangulationFactor`` whose residual and analytic Jacobian are handed to
``scipy.optimize.least_squares``.
"""

import numpy as np
from dataclasses import dataclass
from typing import List, Optional, Sequence
from scipy.optimize import least_squares
import logging

from .camera import PinholeCamera
from .config import OptimizerSettings
from .exceptions import TriangulationUnderconstrainedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IsotropicNoiseModel:
    """Gaussian noise with the same standard deviation on every component."""
    dim: int
    sigma: float = 1.0

    def __post_init__(self):
        if self.sigma <= 0:
            raise ValueError(f"Noise sigma must be positive, got {self.sigma}")

    @classmethod
    def unit(cls, dim: int) -> "IsotropicNoiseModel":
        return cls(dim, 1.0)

    def whiten(self, values: np.ndarray) -> np.ndarray:
        """Scale a residual vector (or Jacobian rows) by 1/sigma."""
        return np.asarray(values, dtype=np.float64) / self.sigma


class TriangulationFactor:
    """
    Reprojection constraint of one measurement on the unknown point.

    The residual is projection(point) - measured, whitened by the noise model.
    """

    def __init__(
        self,
        camera: PinholeCamera,
        measured: np.ndarray,
        noise_model: Optional[IsotropicNoiseModel] = None,
    ):
        self.camera = camera
        self.measured = np.asarray(measured, dtype=np.float64)
        self.noise_model = noise_model or IsotropicNoiseModel.unit(2)

    def residual(self, point: np.ndarray) -> np.ndarray:
        return self.noise_model.whiten(self.camera.project(point) - self.measured)

    def jacobian(self, point: np.ndarray) -> np.ndarray:
        """Whitened 2x3 derivative of the residual with respect to the point."""
        _, H = self.camera.project_jacobian(point)
        return self.noise_model.whiten(H)

    def error(self, point: np.ndarray) -> float:
        """Half the squared norm of the whitened residual."""
        r = self.residual(point)
        return 0.5 * float(r @ r)


@dataclass
class TriangulationGraph:
    """The factors constraining a single landmark plus its initial estimate."""
    factors: List[TriangulationFactor]
    initial: np.ndarray
    prior_sigma: Optional[float] = None

    def __post_init__(self):
        self.initial = np.asarray(self.initial, dtype=np.float64)

    def residuals(self, point: np.ndarray) -> np.ndarray:
        blocks = [factor.residual(point) for factor in self.factors]
        if self.prior_sigma is not None:
            blocks.append((point - self.initial) / self.prior_sigma)
        return np.concatenate(blocks)

    def jacobian(self, point: np.ndarray) -> np.ndarray:
        blocks = [factor.jacobian(point) for factor in self.factors]
        if self.prior_sigma is not None:
            blocks.append(np.eye(3) / self.prior_sigma)
        return np.vstack(blocks)

    def error(self, point: np.ndarray) -> float:
        r = self.residuals(point)
        return 0.5 * float(r @ r)


def triangulation_graph(
    cameras: Sequence[PinholeCamera],
    measurements: Sequence[np.ndarray],
    initial: np.ndarray,
    prior_sigma: Optional[float] = None,
) -> TriangulationGraph:
    """
    Create the reprojection factors for a landmark seen by several cameras.

    Args:
        cameras: Fixed cameras, one per measurement
        measurements: Pixel measurements (u, v)
        initial: Initial estimate of the point (world frame)
        prior_sigma: If given, add an isotropic prior on the point centred on
            ``initial`` with this standard deviation

    Returns:
        TriangulationGraph ready for ``optimize``
    """
    if len(cameras) != len(measurements):
        raise ValueError(
            f"Got {len(cameras)} cameras but {len(measurements)} measurements"
        )

    unit2 = IsotropicNoiseModel.unit(2)
    factors = [
        TriangulationFactor(camera, measured, unit2)
        for camera, measured in zip(cameras, measurements)
    ]
    return TriangulationGraph(factors, initial, prior_sigma)


def optimize(
    graph: TriangulationGraph,
    settings: Optional[OptimizerSettings] = None,
) -> np.ndarray:
    """
    Optimize the landmark of a triangulation graph.

    Args:
        graph: Factors and initial estimate
        settings: Optimizer settings (defaults if omitted)

    Returns:
        Refined point (world frame)

    Raises:
        TriangulationUnderconstrainedError: If the residuals are not finite
            at the initial estimate, the problem has fewer residuals than
            unknowns, or the optimizer reports failure
    """
    settings = settings or OptimizerSettings()
    settings.validate()

    x0 = graph.initial
    r0 = graph.residuals(x0)
    if not np.all(np.isfinite(r0)):
        raise TriangulationUnderconstrainedError(
            "Reprojection residuals are not finite at the initial estimate."
        )
    if len(r0) < 3:
        raise TriangulationUnderconstrainedError(
            f"Refinement needs at least 3 residuals, got {len(r0)}."
        )

    result = least_squares(
        graph.residuals,
        x0,
        jac=graph.jacobian,
        method=settings.method,
        ftol=settings.function_tolerance,
        xtol=settings.step_tolerance,
        gtol=settings.gradient_tolerance,
        max_nfev=settings.max_evaluations,
    )

    logger.debug(
        f"Refinement finished: status={result.status}, nfev={result.nfev}, "
        f"cost {graph.error(x0):.6g} -> {result.cost:.6g}"
    )

    if not result.success:
        raise TriangulationUnderconstrainedError(
            f"Nonlinear refinement failed: {result.message}"
        )
    if not np.all(np.isfinite(result.x)):
        raise TriangulationUnderconstrainedError(
            "Nonlinear refinement produced a non-finite point."
        )

    return result.x


def triangulate_nonlinear(
    cameras: Sequence[PinholeCamera],
    measurements: Sequence[np.ndarray],
    initial: np.ndarray,
    settings: Optional[OptimizerSettings] = None,
) -> np.ndarray:
    """
    Refine a point using its measurements in several cameras.

    Args:
        cameras: Fixed cameras, one per measurement
        measurements: Pixel measurements (u, v)
        initial: Initial estimate, usually the DLT result
        settings: Optimizer settings (defaults if omitted)

    Returns:
        Refined point (world frame)
    """
    settings = settings or OptimizerSettings()
    graph = triangulation_graph(cameras, measurements, initial, settings.prior_sigma)
    return optimize(graph, settings)


def reprojection_residual(
    cameras: Sequence[PinholeCamera],
    measurements: Sequence[np.ndarray],
    point: np.ndarray,
) -> float:
    """Sum of squared reprojection errors (pixels²) of ``point``."""
    total = 0.0
    for camera, measured in zip(cameras, measurements):
        r = camera.project(point) - np.asarray(measured, dtype=np.float64)
        total += float(r @ r)
    return total
