"""
Typed failures raised by the triangulation routines.

Both failure kinds derive from ``TriangulationError`` so callers can catch
either one specifically or treat any failed triangulation uniformly.
"""

from typing import Optional


class TriangulationError(RuntimeError):
    """Base class for a failed triangulation."""


class TriangulationUnderconstrainedError(TriangulationError):
    """The camera geometry does not determine a finite 3D point."""

    DEFAULT_MESSAGE = "Triangulation Underconstrained Exception."

    def __init__(self, reason: Optional[str] = None):
        if reason:
            message = f"{self.DEFAULT_MESSAGE} {reason}"
        else:
            message = self.DEFAULT_MESSAGE
        super().__init__(message)
        self.reason = reason


class TriangulationCheiralityError(TriangulationError):
    """The triangulated point lies behind one or more cameras."""

    DEFAULT_MESSAGE = (
        "Triangulation Cheirality Exception: "
        "The resulting landmark is behind one or more cameras."
    )

    def __init__(
        self,
        camera_index: Optional[int] = None,
        depth: Optional[float] = None,
    ):
        message = self.DEFAULT_MESSAGE
        if camera_index is not None and depth is not None:
            message += f" (camera {camera_index}, depth={depth:.6g})"
        elif camera_index is not None:
            message += f" (camera {camera_index})"
        super().__init__(message)
        self.camera_index = camera_index
        self.depth = depth
