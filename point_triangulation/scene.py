"""
Scene loader for triangulation problems stored as YAML.

Scene Format:
    calibration:            # shared by every camera without its own
      model: linear
      fx: 500.0
      fy: 500.0
      u0: 320.0
      v0: 240.0
    cameras:
      - position: [0.0, 0.0, 0.0]
        rotation: [[1, 0, 0], [0, 1, 0], [0, 0, 1]]
      - position: [0.1, 0.0, 0.0]
        euler: {angles: [0, 5, 0], sequence: xyz, degrees: true}
      - position: [0.0, 0.1, 0.0]
        look_at: {target: [0, 0, 2], up: [0, -1, 0]}
        calibration: {model: bundler, f: 480.0}
    measurements:
      - {camera: 0, u: 320.0, v: 240.0}
      - {camera: 1, u: 295.0, v: 240.0}
    parameters:             # optional, see config.TriangulationParameters
      refine: true

A camera's orientation is given by at most one of ``rotation``, ``euler``
or ``look_at``; with none it is aligned with the world axes.
"""

import numpy as np
import yaml
from pathlib import Path
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional
import logging

from .calibration import Calibration, calibration_from_dict
from .camera import PinholeCamera
from .config import TriangulationParameters
from .transforms import Pose

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Measurement:
    """A single image measurement of the landmark."""
    u: float  # Pixel coordinate
    v: float  # Pixel coordinate
    camera_index: Optional[int] = None

    def __post_init__(self):
        if not (np.isfinite(self.u) and np.isfinite(self.v)):
            raise ValueError(f"Measurement must be finite, got ({self.u}, {self.v})")

    def as_array(self) -> np.ndarray:
        """Return the measurement as a numpy array (u, v)."""
        return np.array([self.u, self.v])

    def __array__(self, dtype=None, copy=None):
        return np.array([self.u, self.v], dtype=dtype)


@dataclass
class Scene:
    """Cameras paired one-to-one with measurements, plus call parameters."""
    cameras: List[PinholeCamera]
    measurements: List[Measurement]
    parameters: TriangulationParameters = field(default_factory=TriangulationParameters)

    def __post_init__(self):
        if len(self.cameras) != len(self.measurements):
            raise ValueError(
                f"Scene has {len(self.cameras)} cameras but "
                f"{len(self.measurements)} measurements"
            )


def _parse_pose(data: Mapping[str, Any], index: int) -> Pose:
    """Build a camera pose from one entry of the ``cameras`` list."""
    position = np.asarray(data.get('position', [0.0, 0.0, 0.0]), dtype=np.float64)

    orientation_keys = [key for key in ('rotation', 'euler', 'look_at') if key in data]
    if len(orientation_keys) > 1:
        raise ValueError(
            f"Camera {index} gives more than one orientation: {orientation_keys}"
        )

    if 'rotation' in data:
        return Pose(np.asarray(data['rotation'], dtype=np.float64), position)

    if 'euler' in data:
        euler = data['euler']
        return Pose.from_euler(
            np.asarray(euler['angles'], dtype=np.float64),
            position,
            sequence=euler.get('sequence', 'xyz'),
            degrees=bool(euler.get('degrees', True)),
        )

    if 'look_at' in data:
        look_at = data['look_at']
        return Pose.look_at(
            position,
            np.asarray(look_at['target'], dtype=np.float64),
            np.asarray(look_at.get('up', [0.0, 0.0, 1.0]), dtype=np.float64),
        )

    return Pose(translation=position)


def scene_from_dict(data: Mapping[str, Any]) -> Scene:
    """
    Build a scene from a parsed YAML mapping.

    Measurements are paired with the camera named by their ``camera``
    index, in the order the measurements are listed.

    Raises:
        ValueError: If a camera has no calibration, a measurement refers to
            a missing camera, or an entry is malformed
    """
    shared: Optional[Calibration] = None
    if data.get('calibration'):
        shared = calibration_from_dict(data['calibration'])

    camera_entries = data.get('cameras') or []
    cameras: List[PinholeCamera] = []
    for i, entry in enumerate(camera_entries):
        if entry.get('calibration'):
            calibration = calibration_from_dict(entry['calibration'])
        elif shared is not None:
            calibration = shared
        else:
            raise ValueError(f"Camera {i} has no calibration and no shared calibration is given")
        try:
            pose = _parse_pose(entry, i)
        except KeyError as e:
            raise ValueError(f"Camera {i} orientation is missing {e}") from e
        except TypeError as e:
            raise ValueError(f"Camera {i} entry is malformed: {e}") from e
        cameras.append(PinholeCamera(pose, calibration))

    paired_cameras: List[PinholeCamera] = []
    measurements: List[Measurement] = []
    used = set()
    for entry in data.get('measurements') or []:
        try:
            index = int(entry['camera'])
            measurement = Measurement(float(entry['u']), float(entry['v']), index)
        except KeyError as e:
            raise ValueError(f"Measurement entry {entry} is missing {e}") from e
        except TypeError as e:
            raise ValueError(f"Measurement entry {entry} is malformed: {e}") from e

        if not 0 <= index < len(cameras):
            raise ValueError(
                f"Measurement refers to camera {index}, but only {len(cameras)} cameras are defined"
            )
        paired_cameras.append(cameras[index])
        measurements.append(measurement)
        used.add(index)

    unused = sorted(set(range(len(cameras))) - used)
    if unused:
        logger.warning(f"Cameras without measurements are ignored: {unused}")

    parameters = TriangulationParameters.from_dict(data.get('parameters'))
    return Scene(paired_cameras, measurements, parameters)


def load_scene(scene_path: str) -> Scene:
    """
    Load a triangulation scene from a YAML file.

    Args:
        scene_path: Path to the scene file

    Returns:
        Scene with cameras, measurements and parameters
    """
    path = Path(scene_path)
    if not path.exists():
        raise FileNotFoundError(f"Scene file not found: {scene_path}")

    with open(path, 'r') as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Scene file {scene_path} is not valid YAML: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Scene file {scene_path} must contain a mapping")

    scene = scene_from_dict(data)
    logger.info(
        f"Loaded scene from {scene_path}: {len(scene.measurements)} measurements"
    )
    return scene
