"""
Error kinds raised by the segmentation stages.

``DegenerateField`` is not an exception: a distance transform over a mask with
a single class is reported through ``DistanceField.degenerate``.
"""
from typing import Optional


class VoxelSegError(Exception):
    """
    Base exception for all errors raised by voxelseg
    """

    kind = "error"

    def __init__(self, message: str, *, stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.stage = stage

    def __str__(self) -> str:
        if self.stage:
            return f"[{self.stage}] {self.kind}: {self.message}"
        return f"{self.kind}: {self.message}"


class InvalidInput(VoxelSegError, ValueError):
    """
    Wrong element type, non-binary mask, zero extents or bad parameters
    """

    kind = "InvalidInput"


class OutOfBounds(VoxelSegError, IndexError):
    """
    Coordinate or linear index outside the grid
    """

    kind = "OutOfBounds"
