"""
Configuration module for point triangulation.

Handles loading and validation of triangulation parameters from YAML files.
"""

import yaml
from pathlib import Path
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional
import logging

logger = logging.getLogger(__name__)

OPTIMIZER_METHODS = ('lm', 'trf')


@dataclass
class OptimizerSettings:
    """Settings passed to the nonlinear least-squares routine."""
    method: str = 'lm'  # 'lm' (Levenberg-Marquardt) or 'trf'
    max_evaluations: int = 100  # Residual evaluation cap
    function_tolerance: float = 1e-10  # Relative cost reduction
    step_tolerance: float = 1e-10  # Relative step size
    gradient_tolerance: float = 1e-10
    prior_sigma: Optional[float] = None  # Weak prior on the seed point (meters)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "OptimizerSettings":
        prior_sigma = data.get('prior_sigma')
        return cls(
            method=str(data.get('method', 'lm')).lower(),
            max_evaluations=int(data.get('max_evaluations', 100)),
            function_tolerance=float(data.get('function_tolerance', 1e-10)),
            step_tolerance=float(data.get('step_tolerance', 1e-10)),
            gradient_tolerance=float(data.get('gradient_tolerance', 1e-10)),
            prior_sigma=None if prior_sigma is None else float(prior_sigma),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'method': self.method,
            'max_evaluations': self.max_evaluations,
            'function_tolerance': self.function_tolerance,
            'step_tolerance': self.step_tolerance,
            'gradient_tolerance': self.gradient_tolerance,
            'prior_sigma': self.prior_sigma,
        }

    def validate(self) -> None:
        """Raise ValueError if any setting is out of range."""
        if self.method not in OPTIMIZER_METHODS:
            raise ValueError(
                f"Unknown optimizer method '{self.method}'. Supported: {OPTIMIZER_METHODS}"
            )
        if self.max_evaluations < 1:
            raise ValueError(f"max_evaluations must be positive, got {self.max_evaluations}")
        for name in ('function_tolerance', 'step_tolerance', 'gradient_tolerance'):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if self.prior_sigma is not None and self.prior_sigma <= 0:
            raise ValueError(f"prior_sigma must be positive, got {self.prior_sigma}")


@dataclass
class TriangulationParameters:
    """
    Parameters controlling a triangulation call.

    Attributes:
        rank_tolerance: Singular values at or below this are treated as zero
        dehomogenize_tolerance: Floor on |W| when converting to a Euclidean
            point; None scales rank_tolerance by the norm of (X, Y, Z)
        refine: Run nonlinear reprojection-error refinement after the DLT
        enforce_cheirality: Fail if the point lies behind any camera
        optimizer: Settings for the nonlinear refinement
    """
    rank_tolerance: float = 1e-9
    dehomogenize_tolerance: Optional[float] = None
    refine: bool = False
    enforce_cheirality: bool = True
    optimizer: OptimizerSettings = field(default_factory=OptimizerSettings)

    def validate(self) -> None:
        """Raise ValueError if any parameter is out of range."""
        if not self.rank_tolerance > 0:
            raise ValueError(f"rank_tolerance must be positive, got {self.rank_tolerance}")
        if self.dehomogenize_tolerance is not None and not self.dehomogenize_tolerance > 0:
            raise ValueError(
                f"dehomogenize_tolerance must be positive, got {self.dehomogenize_tolerance}"
            )
        self.optimizer.validate()

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "TriangulationParameters":
        """
        Build parameters from a mapping, filling in defaults.

        Numeric values are coerced with ``float`` since YAML reads
        exponent-only literals such as ``1e-9`` as strings.
        """
        data = data or {}
        dehomogenize_tolerance = data.get('dehomogenize_tolerance')
        params = cls(
            rank_tolerance=float(data.get('rank_tolerance', 1e-9)),
            dehomogenize_tolerance=(
                None if dehomogenize_tolerance is None else float(dehomogenize_tolerance)
            ),
            refine=bool(data.get('refine', False)),
            enforce_cheirality=bool(data.get('enforce_cheirality', True)),
            optimizer=OptimizerSettings.from_dict(data.get('optimizer') or {}),
        )
        params.validate()
        return params

    @classmethod
    def from_yaml(cls, config_path: str) -> "TriangulationParameters":
        """
        Load parameters from a YAML file.

        Args:
            config_path: Path to the YAML configuration file

        Returns:
            TriangulationParameters with loaded values

        Example YAML structure:
            rank_tolerance: 1.0e-9
            refine: true
            enforce_cheirality: true
            optimizer:
              method: lm
              max_evaluations: 100
              prior_sigma: null
        """
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}

        logger.info(f"Loading triangulation parameters from {config_path}")
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'rank_tolerance': self.rank_tolerance,
            'dehomogenize_tolerance': self.dehomogenize_tolerance,
            'refine': self.refine,
            'enforce_cheirality': self.enforce_cheirality,
            'optimizer': self.optimizer.to_dict(),
        }

    def to_yaml(self, config_path: str) -> None:
        """Save parameters to a YAML file."""
        with open(config_path, 'w') as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

        logger.info(f"Triangulation parameters saved to {config_path}")
