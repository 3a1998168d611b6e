"""
Depth Frame Sampling Module

Extracts the region of interest from a raw depth grid into a flat sample
array:
- Validating grid dimensions against the delivered buffer
- Converting fractional ROI bounds to integer pixel windows
- Copying the window out in row-major order

The sampled window is always an owned copy, so the sensor is free to reuse
its buffer once the frame callback returns.
"""

import logging
import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from .errors import InvalidGeometryError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoiBounds:
    """Fractional region of interest, each bound in [0, 1]."""

    start_x: float = 0.20
    end_x: float = 0.80
    start_y: float = 0.20
    end_y: float = 0.80

    def validate(self) -> None:
        for name in ('start_x', 'end_x', 'start_y', 'end_y'):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise InvalidGeometryError(f"ROI bound {name}={value} outside [0, 1]")

        if self.start_x >= self.end_x or self.start_y >= self.end_y:
            raise InvalidGeometryError(
                f"ROI bounds describe an empty region: "
                f"x=[{self.start_x}, {self.end_x}), y=[{self.start_y}, {self.end_y})"
            )


@dataclass(frozen=True)
class DepthGrid:
    """
    One frame of per-pixel distances in meters.

    Values are stored row-major in a flat array. Invalid readings may be
    NaN, inf or zero; nothing here filters them.
    """

    width: int
    height: int
    values: np.ndarray

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise InvalidGeometryError(
                f"Depth grid must have positive size, got {self.width}x{self.height}"
            )

        flat = np.asarray(self.values).reshape(-1)
        if flat.size != self.width * self.height:
            raise InvalidGeometryError(
                f"Depth grid {self.width}x{self.height} expects "
                f"{self.width * self.height} values, got {flat.size}"
            )
        object.__setattr__(self, 'values', flat)

    @classmethod
    def from_array(cls, array: np.ndarray) -> 'DepthGrid':
        """
        Build a grid from a 2D (height, width) array.

        Example:
            >>> grid = DepthGrid.from_array(np.full((192, 256), 0.35, dtype=np.float32))
            >>> grid.width, grid.height
            (256, 192)
        """
        array = np.asarray(array)
        if array.ndim != 2:
            raise InvalidGeometryError(f"Expected 2D depth array, got shape {array.shape}")

        height, width = array.shape
        return cls(width=width, height=height, values=array.reshape(-1))

    def as_2d(self) -> np.ndarray:
        return self.values.reshape(self.height, self.width)

    def center_distance(self) -> float:
        """Depth reading at the centre pixel, in meters."""
        return float(self.as_2d()[self.height // 2, self.width // 2])


def compute_roi_window(
    width: int,
    height: int,
    roi: RoiBounds
) -> Tuple[int, int, int, int]:
    """
    Convert fractional ROI bounds to an integer pixel window.

    Args:
        width: Depth grid width in pixels
        height: Depth grid height in pixels
        roi: Fractional region of interest

    Returns:
        Tuple of (start_x, end_x, start_y, end_y), end bounds exclusive

    Raises:
        InvalidGeometryError: If the window is empty or leaves the grid

    Example:
        >>> compute_roi_window(256, 192, RoiBounds())
        (51, 204, 38, 153)
    """
    roi.validate()

    start_x = math.floor(width * roi.start_x)
    end_x = math.floor(width * roi.end_x)
    start_y = math.floor(height * roi.start_y)
    end_y = math.floor(height * roi.end_y)

    if start_x >= end_x or start_y >= end_y:
        raise InvalidGeometryError(
            f"ROI window is empty for a {width}x{height} grid: "
            f"x=[{start_x}, {end_x}), y=[{start_y}, {end_y})"
        )

    if start_x < 0 or start_y < 0 or end_x > width or end_y > height:
        raise InvalidGeometryError(
            f"ROI window x=[{start_x}, {end_x}), y=[{start_y}, {end_y}) "
            f"falls outside a {width}x{height} grid"
        )

    return start_x, end_x, start_y, end_y


def roi_shape(width: int, height: int, roi: RoiBounds) -> Tuple[int, int]:
    """Shape (rows, cols) of the window extract_roi() produces for this grid size."""
    start_x, end_x, start_y, end_y = compute_roi_window(width, height, roi)
    return end_y - start_y, end_x - start_x


def extract_roi(grid: DepthGrid, roi: RoiBounds) -> np.ndarray:
    """
    Extract the ROI of a depth grid as a flat float64 sample array.

    Args:
        grid: Depth frame delivered by the sensor
        roi: Fractional region of interest

    Returns:
        1D array of (end_y - start_y) * (end_x - start_x) depth values,
        row-major

    Raises:
        InvalidGeometryError: If the ROI window is empty or out of bounds
    """
    start_x, end_x, start_y, end_y = compute_roi_window(grid.width, grid.height, roi)

    window = grid.as_2d()[start_y:end_y, start_x:end_x]
    samples = window.astype(np.float64).flatten()

    logger.debug(
        f"Sampled ROI x=[{start_x}, {end_x}), y=[{start_y}, {end_y}) "
        f"from {grid.width}x{grid.height} grid: {samples.size} samples"
    )

    return samples


def mask_invalid(samples: np.ndarray) -> np.ndarray:
    """
    Replace invalid readings with NaN, in place.

    Sensors report dropouts as zero or negative distances. NaN is the one
    invalid marker the averaging and comparison stages skip.

    Returns:
        The same array, for chaining
    """
    with np.errstate(invalid='ignore'):
        invalid = ~(samples > 0)
    samples[invalid] = np.nan
    return samples
