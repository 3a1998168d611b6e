"""
Area Estimation Module

Converts the object mask into physical units using the pinhole camera
model. A depth pixel at distance z covers (z / fx) x (z / fy) square meters
of the surface it sees, with fx and fy the focal lengths in depth-grid
pixels.

Two strategies:
- per_pixel: each masked pixel is projected at its own live depth
  (canonical; follows the object's surface as depth varies)
- center_footprint: every masked pixel gets the footprint at the single
  centre-point distance (degraded mode; overestimates tall objects and
  drifts on tilted surfaces)
"""

import logging
import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np

from .comparison import ObjectStats
from .errors import InvalidGeometryError, LengthMismatchError

logger = logging.getLogger(__name__)

SQUARE_METERS_TO_CM2 = 10000.0
METERS_TO_MM = 1000.0

AREA_METHOD_PER_PIXEL = 'per_pixel'
AREA_METHOD_CENTER_FOOTPRINT = 'center_footprint'
AREA_METHODS = (AREA_METHOD_PER_PIXEL, AREA_METHOD_CENTER_FOOTPRINT)


@dataclass(frozen=True)
class CameraIntrinsics:
    """Focal lengths in pixels of the depth grid."""

    fx: float
    fy: float

    def __post_init__(self):
        if not (math.isfinite(self.fx) and math.isfinite(self.fy)) or self.fx <= 0 or self.fy <= 0:
            raise InvalidGeometryError(
                f"Focal lengths must be positive and finite, got fx={self.fx}, fy={self.fy}"
            )

    @classmethod
    def from_camera_matrix(
        cls,
        camera_matrix: Sequence[Sequence[float]],
        image_size: Tuple[int, int],
        depth_size: Tuple[int, int]
    ) -> 'CameraIntrinsics':
        """
        Scale a colour-camera intrinsic matrix to the depth grid resolution.

        Args:
            camera_matrix: 3x3 intrinsic matrix K of the colour image
            image_size: (width, height) of the colour image K refers to
            depth_size: (width, height) of the depth grid

        Returns:
            CameraIntrinsics with fx, fy in depth-grid pixels

        Example:
            >>> K = [[1440.0, 0, 960.0], [0, 1440.0, 720.0], [0, 0, 1]]
            >>> CameraIntrinsics.from_camera_matrix(K, (1920, 1440), (256, 192))
            CameraIntrinsics(fx=192.0, fy=192.0)
        """
        matrix = np.asarray(camera_matrix, dtype=np.float64)
        if matrix.shape != (3, 3):
            raise InvalidGeometryError(f"Expected 3x3 camera matrix, got shape {matrix.shape}")

        image_width, image_height = image_size
        depth_width, depth_height = depth_size
        if min(image_width, image_height, depth_width, depth_height) <= 0:
            raise InvalidGeometryError(
                f"Resolutions must be positive, got image={image_size}, depth={depth_size}"
            )

        scale_x = depth_width / image_width
        scale_y = depth_height / image_height

        return cls(
            fx=float(matrix[0, 0] * scale_x),
            fy=float(matrix[1, 1] * scale_y)
        )

    def pixel_footprint(self, distance: float) -> float:
        """Surface area in m^2 seen by one pixel at the given distance."""
        return (distance / self.fx) * (distance / self.fy)


@dataclass(frozen=True)
class MeasurementResult:
    """Physical summary of one completed scan."""

    area_cm2: float
    max_height_mm: float
    mean_height_mm: float
    pixel_count: int
    method: str = AREA_METHOD_PER_PIXEL
    bbox: Optional[Tuple[int, int, int, int]] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def estimate_area(
    stats: ObjectStats,
    live: np.ndarray,
    intrinsics: CameraIntrinsics
) -> MeasurementResult:
    """
    Estimate footprint area and heights by projecting every masked pixel.

    Args:
        stats: Object mask and height differences from compare_depth_maps()
        live: Averaged live depth map the mask was computed on (meters)
        intrinsics: Focal lengths scaled to the depth grid

    Returns:
        MeasurementResult with method 'per_pixel'

    Raises:
        LengthMismatchError: If the live map does not match the mask

    Example:
        >>> result = estimate_area(stats, live, CameraIntrinsics(fx=212.0, fy=212.0))
        >>> f"{result.area_cm2:.1f} cm2, max {result.max_height_mm:.1f} mm"
        '14.6 cm2, max 21.3 mm'
    """
    live = np.asarray(live, dtype=np.float64).reshape(-1)
    if live.size != stats.mask.size:
        raise LengthMismatchError(
            f"Live map has {live.size} positions, object mask has {stats.mask.size}"
        )

    z = live[stats.mask]
    footprints = (z / intrinsics.fx) * (z / intrinsics.fy)
    area_m2 = float(np.sum(footprints))

    result = _build_result(stats, area_m2, AREA_METHOD_PER_PIXEL)
    logger.info(
        f"Estimated area {result.area_cm2:.2f}cm2 over {stats.pixel_count} pixels "
        f"(max height {result.max_height_mm:.1f}mm, mean {result.mean_height_mm:.1f}mm)"
    )
    return result


def estimate_area_single_footprint(
    stats: ObjectStats,
    distance: float,
    intrinsics: CameraIntrinsics
) -> MeasurementResult:
    """
    Degraded-mode estimate using one representative distance for all pixels.

    Every masked pixel is assumed to see the footprint at `distance`
    (normally the centre-point reading). Less accurate than estimate_area()
    whenever depth varies across the object; use only when the live map is
    unavailable or unreliable.

    Raises:
        InvalidGeometryError: If distance is not a positive finite number
    """
    if not math.isfinite(distance) or distance <= 0:
        raise InvalidGeometryError(f"Representative distance must be positive, got {distance}")

    area_m2 = stats.pixel_count * intrinsics.pixel_footprint(distance)

    result = _build_result(stats, area_m2, AREA_METHOD_CENTER_FOOTPRINT)
    logger.info(
        f"Estimated area {result.area_cm2:.2f}cm2 from single footprint at {distance:.3f}m "
        f"over {stats.pixel_count} pixels"
    )
    return result


def _build_result(stats: ObjectStats, area_m2: float, method: str) -> MeasurementResult:
    return MeasurementResult(
        area_cm2=max(0.0, area_m2 * SQUARE_METERS_TO_CM2),
        max_height_mm=stats.max_diff * METERS_TO_MM,
        mean_height_mm=stats.mean_diff * METERS_TO_MM,
        pixel_count=stats.pixel_count,
        method=method,
        bbox=stats.bbox
    )
