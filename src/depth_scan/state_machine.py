"""
Scan State Machine

Sequences the pipeline across the user-triggered phases of a scan:

    IDLE --set_baseline()--> CAPTURING_BASELINE --N frames--> BASELINE_READY
    BASELINE_READY --scan_object()--> SCANNING_OBJECT --N frames, object found--> COMPLETED
    any phase --reset()--> IDLE

Frames are processed synchronously, one at a time, by process_frame(). The
machine owns all mutable state; observers only ever receive immutable
ScanUpdate snapshots through subscribed callbacks.
"""

import logging
import math
import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, List, Optional, Union

import numpy as np

from .area import (
    AREA_METHOD_CENTER_FOOTPRINT,
    CameraIntrinsics,
    MeasurementResult,
    estimate_area,
    estimate_area_single_footprint
)
from .averaging import TemporalAverager
from .baseline import BaselineStore
from .comparison import compare_depth_maps
from .config import ScanConfig
from .errors import LengthMismatchError, ObjectNotDetectedError
from .guidance import DistanceGuide, GuidanceMessage
from .sampling import DepthGrid, extract_roi, mask_invalid, roi_shape
from .tracking import StabilityMeter, TrackingQuality

logger = logging.getLogger(__name__)

IlluminationFunc = Callable[[bool], None]
UpdateListener = Callable[['ScanUpdate'], None]


class ScanPhase(Enum):
    IDLE = 'idle'
    CAPTURING_BASELINE = 'capturing_baseline'
    BASELINE_READY = 'baseline_ready'
    SCANNING_OBJECT = 'scanning_object'
    COMPLETED = 'completed'


ACCUMULATING_PHASES = (ScanPhase.CAPTURING_BASELINE, ScanPhase.SCANNING_OBJECT)


@dataclass(frozen=True)
class DebugInfo:
    """Telemetry shown next to the guidance message."""

    estimated_distance: float = 0.0
    depth_supported: bool = False
    accumulated_frames: int = 0
    stability: float = 1.0


@dataclass(frozen=True)
class ScanUpdate:
    """Immutable snapshot of the machine handed to the presentation layer."""

    phase: ScanPhase
    guidance: GuidanceMessage
    baseline_set: bool
    debug: DebugInfo
    result: Optional[MeasurementResult] = None

    @property
    def guidance_text(self) -> str:
        return self.guidance.text


class ScanStateMachine:
    """
    Drives baseline capture and object scanning from a stream of depth frames.

    Args:
        config: Validated scan configuration (defaults if omitted)
        illumination: Called with True to request the torch on, False for off

    Example:
        >>> machine = ScanStateMachine(load_config("scan.yaml"), illumination=torch.set)
        >>> machine.subscribe(ui_queue.put)
        >>> machine.start()
        >>> for grid, intrinsics in sensor_frames():
        ...     machine.process_frame(grid, intrinsics)
    """

    def __init__(
        self,
        config: Optional[ScanConfig] = None,
        illumination: Optional[IlluminationFunc] = None
    ):
        self.config = (config or ScanConfig()).validate()
        self._illumination = illumination

        self._guide = DistanceGuide(self.config.guidance)
        self._averager = TemporalAverager(self.config.frame_count)
        self._baseline = BaselineStore()
        self._stability = StabilityMeter(self.config.stability_window)

        self._lock = threading.RLock()
        self._listeners: List[UpdateListener] = []

        self._phase = ScanPhase.IDLE
        self._guidance = GuidanceMessage.PREPARING
        self._result: Optional[MeasurementResult] = None
        self._debug = DebugInfo()

    # ------------------------------------------------------------------
    # Read access

    @property
    def phase(self) -> ScanPhase:
        return self._phase

    @property
    def guidance(self) -> GuidanceMessage:
        return self._guidance

    @property
    def result(self) -> Optional[MeasurementResult]:
        return self._result

    @property
    def debug(self) -> DebugInfo:
        return self._debug

    @property
    def is_baseline_set(self) -> bool:
        return self._baseline.is_set

    def snapshot(self) -> ScanUpdate:
        with self._lock:
            return self._snapshot()

    def subscribe(self, listener: UpdateListener) -> Callable[[], None]:
        """
        Register a callback receiving every ScanUpdate.

        Returns:
            Function that removes the listener again
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Triggers

    def start(self, depth_supported: bool = True) -> ScanUpdate:
        """Session start: records sensor capability and requests illumination."""
        with self._lock:
            self._debug = replace(self._debug, depth_supported=bool(depth_supported))
            if not depth_supported:
                logger.warning("Depth sensing is not supported by this session")
            self._request_illumination(True)
            update = self._snapshot()
        self._emit(update)
        return update

    def set_baseline(self) -> ScanUpdate:
        """Begin capturing the baseline if the camera is at an acceptable distance."""
        with self._lock:
            if self._phase not in (ScanPhase.IDLE, ScanPhase.BASELINE_READY):
                logger.debug(f"set_baseline() ignored in phase {self._phase.value}")
                return self._snapshot()

            distance = self._debug.estimated_distance
            if not self._distance_accepted(distance):
                logger.info(
                    f"Baseline refused at {distance:.3f}m, outside "
                    f"[{self.config.baseline_min}, {self.config.baseline_max}]m"
                )
                self._guidance = GuidanceMessage.BASELINE_DISTANCE_ERROR
            else:
                self._averager.clear()
                self._set_phase(ScanPhase.CAPTURING_BASELINE)
                self._guidance = GuidanceMessage.CAPTURING_BASELINE
            update = self._snapshot()
        self._emit(update)
        return update

    def scan_object(self) -> ScanUpdate:
        """Begin scanning the object against the committed baseline."""
        with self._lock:
            if not self._baseline.is_set or self._phase != ScanPhase.BASELINE_READY:
                logger.debug(
                    f"scan_object() ignored in phase {self._phase.value} "
                    f"(baseline set: {self._baseline.is_set})"
                )
                return self._snapshot()

            self._averager.clear()
            self._set_phase(ScanPhase.SCANNING_OBJECT)
            self._guidance = GuidanceMessage.SCANNING_OBJECT
            update = self._snapshot()
        self._emit(update)
        return update

    def reset(self) -> ScanUpdate:
        """Return to IDLE, dropping the baseline, any partial window and the result."""
        with self._lock:
            self._averager.clear()
            self._baseline.clear()
            self._result = None
            self._debug = replace(self._debug, accumulated_frames=0)
            self._guidance = GuidanceMessage.PREPARING
            self._set_phase(ScanPhase.IDLE)
            self._request_illumination(True)
            update = self._snapshot()
        self._emit(update)
        return update

    # ------------------------------------------------------------------
    # Frame processing

    def process_frame(
        self,
        grid: DepthGrid,
        intrinsics: CameraIntrinsics,
        tracking: Optional[Union[TrackingQuality, bool]] = None
    ) -> ScanUpdate:
        """
        Process one delivered depth frame.

        Args:
            grid: Depth frame in meters
            intrinsics: Focal lengths scaled to the grid resolution
            tracking: Tracking quality of the session for this frame

        Returns:
            The ScanUpdate emitted for this frame

        Raises:
            InvalidGeometryError: If the configured ROI does not fit the grid
        """
        with self._lock:
            distance = grid.center_distance()
            stability = self._stability.update(tracking)
            self._debug = replace(
                self._debug,
                estimated_distance=distance,
                stability=stability
            )

            if self._phase != ScanPhase.COMPLETED:
                self._guidance = self._guide.classify(distance, self._baseline.is_set)

            if self._phase in ACCUMULATING_PHASES:
                self._accumulate(grid, intrinsics)

            self._debug = replace(self._debug, accumulated_frames=self._averager.count)
            update = self._snapshot()
        self._emit(update)
        return update

    def _accumulate(self, grid: DepthGrid, intrinsics: CameraIntrinsics) -> None:
        samples = mask_invalid(extract_roi(grid, self.config.roi))

        try:
            self._averager.push(samples)
        except LengthMismatchError as e:
            logger.warning(f"Frame shape changed mid-accumulation, restarting window: {e}")
            self._averager.clear()
            self._averager.push(samples)

        if not self._averager.is_full:
            return

        averaged = self._averager.drain()

        if self._phase == ScanPhase.CAPTURING_BASELINE:
            self._baseline.commit(averaged)
            self._set_phase(ScanPhase.BASELINE_READY)
            self._guidance = GuidanceMessage.BASELINE_READY
            return

        self._measure(averaged, grid, intrinsics)

    def _measure(
        self,
        averaged: np.ndarray,
        grid: DepthGrid,
        intrinsics: CameraIntrinsics
    ) -> None:
        cfg = self.config

        try:
            stats = compare_depth_maps(
                self._baseline.get(),
                averaged,
                noise_floor=cfg.noise_floor,
                mask_ratio=cfg.mask_ratio,
                min_object_height=cfg.min_object_height,
                min_object_pixels=cfg.min_object_pixels,
                roi_shape=roi_shape(grid.width, grid.height, cfg.roi)
            )
        except ObjectNotDetectedError as e:
            logger.info(f"Object not detected, retrying with next window: {e}")
            self._guidance = GuidanceMessage.OBJECT_NOT_DETECTED
            return
        except LengthMismatchError as e:
            logger.warning(f"Live window does not match baseline, retrying: {e}")
            return

        if cfg.area_method == AREA_METHOD_CENTER_FOOTPRINT:
            distance = self._debug.estimated_distance
            if not math.isfinite(distance) or distance <= 0:
                logger.warning(f"No usable centre distance ({distance}), retrying")
                return
            result = estimate_area_single_footprint(stats, distance, intrinsics)
        else:
            result = estimate_area(stats, averaged, intrinsics)

        self._result = result
        self._set_phase(ScanPhase.COMPLETED)
        self._guidance = GuidanceMessage.MEASUREMENT_COMPLETE
        self._request_illumination(False)

        logger.info(
            f"Measurement complete: area={result.area_cm2:.2f}cm2, "
            f"max={result.max_height_mm:.1f}mm, mean={result.mean_height_mm:.1f}mm, "
            f"bbox={result.bbox}"
        )

    # ------------------------------------------------------------------
    # Internals

    def _distance_accepted(self, distance: float) -> bool:
        return (
            math.isfinite(distance)
            and self.config.baseline_min <= distance <= self.config.baseline_max
        )

    def _set_phase(self, phase: ScanPhase) -> None:
        if phase != self._phase:
            logger.info(f"Phase {self._phase.value} -> {phase.value}")
        self._phase = phase

    def _request_illumination(self, on: bool) -> None:
        if self._illumination is None:
            return
        try:
            self._illumination(on)
        except Exception as e:
            logger.warning(f"Illumination request ({'on' if on else 'off'}) failed: {e}")

    def _snapshot(self) -> ScanUpdate:
        return ScanUpdate(
            phase=self._phase,
            guidance=self._guidance,
            baseline_set=self._baseline.is_set,
            debug=self._debug,
            result=self._result
        )

    def _emit(self, update: ScanUpdate) -> None:
        with self._lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(update)
            except Exception as e:
                logger.error(f"Update listener failed: {e}", exc_info=True)
