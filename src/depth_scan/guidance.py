"""
Distance Guidance Module

Turns the centre-point depth reading into a message telling the user how to
hold the camera. Scans are most reliable around 35 cm above the surface:
closer and the sensor's minimum range clips the object, further and the
per-pixel footprint grows too coarse for small objects.

Bands are evaluated in a fixed order so that every distance maps to exactly
one message:
    non-finite or <= 0    -> NO_DEPTH
    < too_close           -> MOVE_BACK
    > too_far             -> MOVE_CLOSER
    within tolerance of target -> PERFECT_DISTANCE
    [ideal_min, ideal_max]     -> IDEAL_DISTANCE
    anything else         -> CAPTURE_BASELINE / DISTANCE_OK
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class GuidanceMessage(Enum):
    """User-facing guidance, including status messages set by the state machine."""

    PREPARING = "Preparing sensor..."
    NO_DEPTH = "No depth reading at the centre"
    MOVE_BACK = "Too close! Move back"
    MOVE_CLOSER = "Too far! Move closer"
    PERFECT_DISTANCE = "Perfect distance (35 cm)!"
    IDEAL_DISTANCE = "Ideal distance (~35 cm)"
    CAPTURE_BASELINE = "Point at the empty surface and capture the baseline"
    DISTANCE_OK = "Distance acceptable"
    BASELINE_DISTANCE_ERROR = "Error: distance must be about 35 cm!"
    CAPTURING_BASELINE = "Capturing surface..."
    BASELINE_READY = "Surface captured. Place the object."
    SCANNING_OBJECT = "Scanning object..."
    OBJECT_NOT_DETECTED = "Object not detected!"
    MEASUREMENT_COMPLETE = "Measurement complete."

    @property
    def text(self) -> str:
        return self.value


@dataclass(frozen=True)
class GuidanceThresholds:
    """Distance bands in meters."""

    too_close: float = 0.25
    too_far: float = 0.45
    target: float = 0.35
    perfect_tolerance: float = 0.01
    ideal_min: float = 0.30
    ideal_max: float = 0.40


class DistanceGuide:
    """Classifies a single distance reading into a guidance message."""

    def __init__(self, thresholds: Optional[GuidanceThresholds] = None):
        self.thresholds = thresholds or GuidanceThresholds()

    def classify(self, distance: float, baseline_set: bool = False) -> GuidanceMessage:
        """
        Classify a centre distance reading.

        Args:
            distance: Centre-point distance in meters
            baseline_set: Whether a baseline has been captured already

        Returns:
            The one GuidanceMessage whose band contains the distance

        Example:
            >>> DistanceGuide().classify(0.20)
            <GuidanceMessage.MOVE_BACK: 'Too close! Move back'>
            >>> DistanceGuide().classify(0.352)
            <GuidanceMessage.PERFECT_DISTANCE: 'Perfect distance (35 cm)!'>
        """
        t = self.thresholds

        if distance is None or not math.isfinite(distance) or distance <= 0:
            return GuidanceMessage.NO_DEPTH

        if distance < t.too_close:
            return GuidanceMessage.MOVE_BACK

        if distance > t.too_far:
            return GuidanceMessage.MOVE_CLOSER

        if abs(distance - t.target) < t.perfect_tolerance:
            return GuidanceMessage.PERFECT_DISTANCE

        if t.ideal_min <= distance <= t.ideal_max:
            return GuidanceMessage.IDEAL_DISTANCE

        if not baseline_set:
            return GuidanceMessage.CAPTURE_BASELINE

        return GuidanceMessage.DISTANCE_OK
