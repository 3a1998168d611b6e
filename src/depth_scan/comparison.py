"""
Baseline Comparison Module

Finds the object by differencing the live averaged depth map against the
baseline of the empty surface:
1. Height difference per position (baseline - live, positive = raised)
2. Noise floor filter (drops surface micro-roughness and invalid readings)
3. Object mask relative to the tallest point, with an absolute minimum
4. Minimum pixel count (rejects isolated spikes)

No physical units beyond meters of height are computed here; see area.py.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import cv2
import numpy as np

from .errors import LengthMismatchError, ObjectNotDetectedError

logger = logging.getLogger(__name__)

DEFAULT_NOISE_FLOOR = 0.005  # 5 mm
DEFAULT_MASK_RATIO = 0.4
DEFAULT_MIN_OBJECT_HEIGHT = 0.008  # 8 mm
DEFAULT_MIN_OBJECT_PIXELS = 50


@dataclass(frozen=True)
class ObjectStats:
    """
    Positions classified as the object, with their height differences.

    Attributes:
        mask: Boolean array over all sample positions
        diffs: Height differences (meters) at masked positions, in position order
        max_diff: Tallest difference among positions above the noise floor
        pixel_count: Number of masked positions
        bbox: (x, y, width, height) of the mask inside the ROI, if the ROI
            shape was known
    """

    mask: np.ndarray
    diffs: np.ndarray
    max_diff: float
    pixel_count: int
    bbox: Optional[Tuple[int, int, int, int]] = None

    @property
    def mean_diff(self) -> float:
        return float(np.mean(self.diffs))


def compare_depth_maps(
    baseline: np.ndarray,
    live: np.ndarray,
    noise_floor: float = DEFAULT_NOISE_FLOOR,
    mask_ratio: float = DEFAULT_MASK_RATIO,
    min_object_height: float = DEFAULT_MIN_OBJECT_HEIGHT,
    min_object_pixels: int = DEFAULT_MIN_OBJECT_PIXELS,
    roi_shape: Optional[Tuple[int, int]] = None
) -> ObjectStats:
    """
    Compare a live averaged map against the baseline and select the object mask.

    The mask keeps positions whose height exceeds both mask_ratio of the
    tallest point and min_object_height. The relative part adapts to the
    object's own height scale; the absolute part stops a flat scene from
    promoting its noise to an object.

    Args:
        baseline: Averaged depth map of the empty surface (meters)
        live: Averaged depth map with the object present (meters)
        noise_floor: Differences at or below this are ignored (meters)
        mask_ratio: Fraction of the tallest difference a position must exceed
        min_object_height: Absolute minimum height for the mask (meters)
        min_object_pixels: Fewest masked positions accepted as an object
        roi_shape: (rows, cols) of the sampled ROI, used for the bounding box

    Returns:
        ObjectStats for the masked positions

    Raises:
        LengthMismatchError: If the maps differ in length
        ObjectNotDetectedError: If nothing clears the noise floor or the
            mask is smaller than min_object_pixels

    Example:
        >>> stats = compare_depth_maps(baseline, live)
        >>> stats.pixel_count, round(stats.max_diff * 1000, 1)
        (412, 21.3)
    """
    baseline = np.asarray(baseline, dtype=np.float64).reshape(-1)
    live = np.asarray(live, dtype=np.float64).reshape(-1)

    if baseline.size != live.size:
        raise LengthMismatchError(
            f"Baseline has {baseline.size} positions, live map has {live.size}"
        )

    with np.errstate(invalid='ignore'):
        diffs = baseline - live
        # non-positive depths are sensor dropouts, not surfaces
        valid = np.isfinite(diffs) & (baseline > 0) & (live > 0)

    above_noise = valid.copy()
    above_noise[valid] = diffs[valid] > noise_floor

    if not above_noise.any():
        logger.info(f"No difference above the {noise_floor * 1000:.1f}mm noise floor")
        raise ObjectNotDetectedError("No height difference above the noise floor")

    max_diff = float(diffs[above_noise].max())
    cutoff = max(mask_ratio * max_diff, min_object_height)

    mask = valid.copy()
    mask[valid] = diffs[valid] > cutoff
    pixel_count = int(np.count_nonzero(mask))

    logger.debug(
        f"Comparison: {int(above_noise.sum())} positions above noise, "
        f"max={max_diff * 1000:.1f}mm, cutoff={cutoff * 1000:.1f}mm, mask={pixel_count}"
    )

    if pixel_count < min_object_pixels:
        logger.info(
            f"Object mask has {pixel_count} pixels, fewer than {min_object_pixels} required"
        )
        raise ObjectNotDetectedError(
            f"Object mask has {pixel_count} pixels, need at least {min_object_pixels}"
        )

    bbox = None
    if roi_shape is not None:
        bbox = _mask_bounding_box(mask, roi_shape)

    return ObjectStats(
        mask=mask,
        diffs=diffs[mask],
        max_diff=max_diff,
        pixel_count=pixel_count,
        bbox=bbox
    )


def _mask_bounding_box(
    mask: np.ndarray,
    roi_shape: Tuple[int, int]
) -> Tuple[int, int, int, int]:
    rows, cols = roi_shape
    if rows * cols != mask.size:
        raise LengthMismatchError(
            f"ROI shape {rows}x{cols} does not match {mask.size} mask positions"
        )

    binary = mask.reshape(rows, cols).astype(np.uint8) * 255
    x, y, w, h = cv2.boundingRect(binary)
    return int(x), int(y), int(w), int(h)
