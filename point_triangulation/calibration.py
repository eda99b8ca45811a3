"""
Camera calibration models.

Every model maps normalized image coordinates (x, y) = (X/Z, Y/Z) to pixel
coordinates (u, v) and provides the analytic derivatives of that mapping
with respect to both its own parameters and the input point.

Models:
    - LinearCalibration: pinhole with focal lengths, skew and principal point
    - DistortedCalibration: pinhole plus Brown-Conrady radial/tangential
      distortion (OpenCV coefficient convention)
    - BundlerCalibration: single focal length with two radial terms

Only ``K`` is used by the linear triangulation; lens distortion is taken
into account by the nonlinear refinement.
"""

import numpy as np
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Tuple
import logging

logger = logging.getLogger(__name__)


class Calibration(ABC):
    """Intrinsic calibration capability shared by all camera models."""

    @property
    @abstractmethod
    def K(self) -> np.ndarray:
        """3x3 intrinsic matrix."""

    @property
    @abstractmethod
    def parameters(self) -> np.ndarray:
        """Model parameters in the column order of the calibration Jacobian."""

    @abstractmethod
    def uncalibrate_jacobians(
        self, point: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Map a normalized point to pixels along with derivatives.

        Args:
            point: Normalized image coordinates (x, y)

        Returns:
            Tuple of (pixel, d(pixel)/d(parameters), 2x2 d(pixel)/d(point))
        """

    def uncalibrate(self, point: np.ndarray) -> np.ndarray:
        """Map normalized image coordinates (x, y) to pixel coordinates (u, v)."""
        return self.uncalibrate_jacobians(point)[0]

    @abstractmethod
    def calibrate(self, pixel: np.ndarray) -> np.ndarray:
        """Map pixel coordinates (u, v) to normalized image coordinates (x, y)."""

    @property
    def dimension(self) -> int:
        return len(self.parameters)

    def equals(self, other: "Calibration", tol: float = 1e-9) -> bool:
        return (
            type(self) is type(other)
            and np.allclose(self.parameters, other.parameters, atol=tol)
        )


class LinearCalibration(Calibration):
    """
    Pinhole calibration with five parameters (fx, fy, s, u0, v0).

        u = fx * x + s * y + u0
        v = fy * y + v0
    """

    def __init__(
        self,
        fx: float = 1.0,
        fy: float = 1.0,
        s: float = 0.0,
        u0: float = 0.0,
        v0: float = 0.0,
    ):
        self.fx = float(fx)
        self.fy = float(fy)
        self.s = float(s)
        self.u0 = float(u0)
        self.v0 = float(v0)

        if self.fx == 0 or self.fy == 0:
            raise ValueError(f"Focal lengths must be non-zero: fx={self.fx}, fy={self.fy}")

    @classmethod
    def from_fov(cls, fov_degrees: float, width: int, height: int) -> "LinearCalibration":
        """Square-pixel calibration from a horizontal field of view and image size."""
        u0 = width / 2.0
        v0 = height / 2.0
        f = u0 / np.tan(np.deg2rad(fov_degrees) / 2.0)
        return cls(f, f, 0.0, u0, v0)

    @property
    def K(self) -> np.ndarray:
        return np.array([
            [self.fx, self.s, self.u0],
            [0, self.fy, self.v0],
            [0, 0, 1]
        ])

    @property
    def parameters(self) -> np.ndarray:
        return np.array([self.fx, self.fy, self.s, self.u0, self.v0])

    def uncalibrate_jacobians(self, point):
        x, y = np.asarray(point, dtype=np.float64)
        pixel = np.array([
            self.fx * x + self.s * y + self.u0,
            self.fy * y + self.v0,
        ])
        H_cal = np.array([
            [x, 0, y, 1, 0],
            [0, y, 0, 0, 1]
        ])
        H_point = np.array([
            [self.fx, self.s],
            [0, self.fy]
        ])
        return pixel, H_cal, H_point

    def calibrate(self, pixel):
        u, v = np.asarray(pixel, dtype=np.float64)
        y = (v - self.v0) / self.fy
        x = (u - self.u0 - self.s * y) / self.fx
        return np.array([x, y])

    def __repr__(self) -> str:
        return (
            f"LinearCalibration(fx={self.fx}, fy={self.fy}, s={self.s}, "
            f"u0={self.u0}, v0={self.v0})"
        )


class DistortedCalibration(LinearCalibration):
    """
    Pinhole calibration with lens distortion.

    Distortion equations (applied to normalized coordinates x, y):
        r² = x² + y²
        g  = 1 + k1*r² + k2*r⁴ + k3*r⁶
        x' = x*g + 2*p1*x*y + p2*(r² + 2*x²)
        y' = y*g + p1*(r² + 2*y²) + 2*p2*x*y
    followed by the linear pixel mapping of ``LinearCalibration``.

    Parameter order: fx, fy, s, u0, v0, k1, k2, k3, p1, p2.
    """

    def __init__(
        self,
        fx: float = 1.0,
        fy: float = 1.0,
        s: float = 0.0,
        u0: float = 0.0,
        v0: float = 0.0,
        k1: float = 0.0,
        k2: float = 0.0,
        k3: float = 0.0,
        p1: float = 0.0,
        p2: float = 0.0,
    ):
        super().__init__(fx, fy, s, u0, v0)
        self.k1 = float(k1)
        self.k2 = float(k2)
        self.k3 = float(k3)
        self.p1 = float(p1)
        self.p2 = float(p2)

    @property
    def parameters(self) -> np.ndarray:
        return np.array([
            self.fx, self.fy, self.s, self.u0, self.v0,
            self.k1, self.k2, self.k3, self.p1, self.p2,
        ])

    def _distort(self, x: float, y: float) -> Tuple[float, float]:
        r2 = x * x + y * y
        g = 1 + self.k1 * r2 + self.k2 * r2 ** 2 + self.k3 * r2 ** 3
        x_dist = x * g + 2 * self.p1 * x * y + self.p2 * (r2 + 2 * x * x)
        y_dist = y * g + self.p1 * (r2 + 2 * y * y) + 2 * self.p2 * x * y
        return x_dist, y_dist

    def uncalibrate_jacobians(self, point):
        x, y = np.asarray(point, dtype=np.float64)
        r2 = x * x + y * y
        r4 = r2 * r2
        r6 = r4 * r2
        g = 1 + self.k1 * r2 + self.k2 * r4 + self.k3 * r6
        x_dist, y_dist = self._distort(x, y)

        pixel = np.array([
            self.fx * x_dist + self.s * y_dist + self.u0,
            self.fy * y_dist + self.v0,
        ])

        # d(distorted)/d(x, y)
        dg = 2 * self.k1 + 4 * self.k2 * r2 + 6 * self.k3 * r4
        D_dist_point = np.array([
            [g + dg * x * x + 2 * self.p1 * y + 6 * self.p2 * x,
             dg * x * y + 2 * self.p1 * x + 2 * self.p2 * y],
            [dg * x * y + 2 * self.p1 * x + 2 * self.p2 * y,
             g + dg * y * y + 6 * self.p1 * y + 2 * self.p2 * x],
        ])

        # d(distorted)/d(k1, k2, k3, p1, p2)
        D_dist_coeffs = np.array([
            [x * r2, x * r4, x * r6, 2 * x * y, r2 + 2 * x * x],
            [y * r2, y * r4, y * r6, r2 + 2 * y * y, 2 * x * y],
        ])

        K2 = np.array([
            [self.fx, self.s],
            [0, self.fy]
        ])
        H_linear = np.array([
            [x_dist, 0, y_dist, 1, 0],
            [0, y_dist, 0, 0, 1]
        ])
        H_cal = np.hstack([H_linear, K2 @ D_dist_coeffs])
        H_point = K2 @ D_dist_point
        return pixel, H_cal, H_point

    def calibrate(
        self,
        pixel,
        max_iterations: int = 20,
        tolerance: float = 1e-12,
    ):
        """
        Remove distortion from pixel coordinates (inverse distortion).

        Uses fixed-point iteration on the normalized coordinates, starting
        from the distorted position.
        """
        x_dist, y_dist = super().calibrate(pixel)

        x, y = x_dist, y_dist
        for _ in range(max_iterations):
            x_curr, y_curr = self._distort(x, y)
            dx = x_dist - x_curr
            dy = y_dist - y_curr
            if abs(dx) < tolerance and abs(dy) < tolerance:
                break
            x += dx
            y += dy
        else:
            logger.debug(f"Undistortion did not converge for pixel {pixel}")

        return np.array([x, y])

    def __repr__(self) -> str:
        return (
            f"DistortedCalibration(fx={self.fx}, fy={self.fy}, s={self.s}, "
            f"u0={self.u0}, v0={self.v0}, k1={self.k1}, k2={self.k2}, "
            f"k3={self.k3}, p1={self.p1}, p2={self.p2})"
        )


class BundlerCalibration(Calibration):
    """
    Single focal length calibration with two radial distortion terms.

        r = x² + y²
        g = 1 + k1*r + k2*r²
        u = u0 + f*g*x
        v = v0 + f*g*y

    Parameter order: f, k1, k2 (principal point is fixed).
    """

    def __init__(
        self,
        f: float = 1.0,
        k1: float = 0.0,
        k2: float = 0.0,
        u0: float = 0.0,
        v0: float = 0.0,
    ):
        self.f = float(f)
        self.k1 = float(k1)
        self.k2 = float(k2)
        self.u0 = float(u0)
        self.v0 = float(v0)

        if self.f == 0:
            raise ValueError("Focal length must be non-zero")

    @property
    def K(self) -> np.ndarray:
        return np.array([
            [self.f, 0, self.u0],
            [0, self.f, self.v0],
            [0, 0, 1]
        ])

    @property
    def parameters(self) -> np.ndarray:
        return np.array([self.f, self.k1, self.k2])

    def uncalibrate_jacobians(self, point):
        x, y = np.asarray(point, dtype=np.float64)
        r = x * x + y * y
        g = 1 + self.k1 * r + self.k2 * r * r
        pixel = np.array([self.u0 + self.f * g * x, self.v0 + self.f * g * y])

        H_cal = np.array([
            [g * x, self.f * x * r, self.f * x * r * r],
            [g * y, self.f * y * r, self.f * y * r * r]
        ])

        dg = 2 * (self.k1 + 2 * self.k2 * r)
        H_point = self.f * np.array([
            [g + dg * x * x, dg * x * y],
            [dg * x * y, g + dg * y * y]
        ])
        return pixel, H_cal, H_point

    def calibrate(
        self,
        pixel,
        max_iterations: int = 20,
        tolerance: float = 1e-12,
    ):
        u, v = np.asarray(pixel, dtype=np.float64)
        x_dist = (u - self.u0) / self.f
        y_dist = (v - self.v0) / self.f

        # g depends only on the undistorted radius; iterate on it
        x, y = x_dist, y_dist
        for _ in range(max_iterations):
            r = x * x + y * y
            g = 1 + self.k1 * r + self.k2 * r * r
            x_new, y_new = x_dist / g, y_dist / g
            if abs(x_new - x) < tolerance and abs(y_new - y) < tolerance:
                x, y = x_new, y_new
                break
            x, y = x_new, y_new

        return np.array([x, y])

    def __repr__(self) -> str:
        return (
            f"BundlerCalibration(f={self.f}, k1={self.k1}, k2={self.k2}, "
            f"u0={self.u0}, v0={self.v0})"
        )


CALIBRATION_MODELS = {
    'linear': LinearCalibration,
    'distorted': DistortedCalibration,
    'bundler': BundlerCalibration,
}


def calibration_from_dict(data: Mapping[str, Any]) -> Calibration:
    """
    Build a calibration from a configuration mapping.

    Args:
        data: Mapping with a ``model`` key (linear, distorted or bundler,
            default linear) and the model's keyword parameters

    Returns:
        Calibration instance

    Raises:
        ValueError: If the model is unknown or a parameter is not accepted

    Example YAML structure:
        calibration:
          model: distorted
          fx: 500.0
          fy: 500.0
          u0: 320.0
          v0: 240.0
          k1: -0.05
    """
    params: Dict[str, Any] = dict(data)
    model = str(params.pop('model', 'linear')).lower()

    if model not in CALIBRATION_MODELS:
        raise ValueError(
            f"Unknown calibration model '{model}'. "
            f"Supported: {sorted(CALIBRATION_MODELS)}"
        )

    cls = CALIBRATION_MODELS[model]
    try:
        kwargs = {key: float(value) for key, value in params.items()}
        calibration = cls(**kwargs)
    except TypeError as e:
        raise ValueError(f"Invalid parameters for '{model}' calibration: {e}") from e

    logger.debug(f"Built calibration {calibration!r}")
    return calibration
