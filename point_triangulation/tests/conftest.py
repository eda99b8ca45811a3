"""
Shared fixtures for the triangulation tests.
"""

import pytest
import numpy as np

from point_triangulation.calibration import LinearCalibration


def _central_difference(f, x, delta=1e-6):
    x = np.asarray(x, dtype=np.float64)
    f0 = np.atleast_1d(np.asarray(f(x), dtype=np.float64))
    J = np.zeros((f0.size, x.size))
    for j in range(x.size):
        step = np.zeros_like(x)
        step[j] = delta
        f_plus = np.atleast_1d(np.asarray(f(x + step), dtype=np.float64))
        f_minus = np.atleast_1d(np.asarray(f(x - step), dtype=np.float64))
        J[:, j] = (f_plus - f_minus) / (2 * delta)
    return J


@pytest.fixture
def numerical_jacobian():
    """Central-difference Jacobian, used to check analytic derivatives."""
    return _central_difference


@pytest.fixture
def unit_calibration():
    """K = I."""
    return LinearCalibration()


@pytest.fixture
def vga_calibration():
    """500 px focal length, principal point at the center of a 640x480 image."""
    return LinearCalibration(fx=500.0, fy=500.0, s=0.0, u0=320.0, v0=240.0)
