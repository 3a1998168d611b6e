"""
Tests for the scan state machine
"""

import numpy as np
import pytest

from depth_scan.area import AREA_METHOD_CENTER_FOOTPRINT
from depth_scan.guidance import GuidanceMessage
from depth_scan.sampling import DepthGrid
from depth_scan.state_machine import ScanPhase, ScanStateMachine, ScanUpdate
from depth_scan.tracking import TrackingQuality

BLOCK_AREA_CM2 = 100 * (0.38 / 200.0) ** 2 * 10000.0


class TorchRecorder:
    def __init__(self):
        self.calls = []

    def __call__(self, on):
        self.calls.append(on)


def _feed(machine, grid, intrinsics, count):
    update = None
    for _ in range(count):
        update = machine.process_frame(grid, intrinsics)
    return update


class TestScanStateMachine:
    """Tests for phase transitions and frame handling"""

    @pytest.fixture
    def torch(self):
        return TorchRecorder()

    @pytest.fixture
    def machine(self, fastConfig, torch):
        machine = ScanStateMachine(fastConfig, illumination=torch)
        machine.start()
        return machine

    def _capture_baseline(self, machine, surfaceGrid, intrinsics):
        machine.process_frame(surfaceGrid, intrinsics)
        machine.set_baseline()
        return _feed(machine, surfaceGrid, intrinsics, 3)

    def test_initial_state(self, machine, torch):
        assert machine.phase is ScanPhase.IDLE
        assert machine.guidance is GuidanceMessage.PREPARING
        assert machine.result is None
        assert machine.debug.depth_supported is True
        assert torch.calls == [True]

    def test_full_measurement_cycle(self, machine, torch, surfaceGrid, objectGrid, intrinsics):
        """Test baseline capture then object scan produce a measurement"""
        machine.process_frame(surfaceGrid, intrinsics)
        assert machine.set_baseline().phase is ScanPhase.CAPTURING_BASELINE

        update = _feed(machine, surfaceGrid, intrinsics, 3)
        assert update.phase is ScanPhase.BASELINE_READY
        assert update.baseline_set is True
        assert update.guidance is GuidanceMessage.BASELINE_READY

        assert machine.scan_object().phase is ScanPhase.SCANNING_OBJECT
        update = _feed(machine, objectGrid, intrinsics, 3)

        assert update.phase is ScanPhase.COMPLETED
        assert update.guidance is GuidanceMessage.MEASUREMENT_COMPLETE
        assert update.result.area_cm2 == pytest.approx(BLOCK_AREA_CM2)
        assert update.result.max_height_mm == pytest.approx(20.0)
        assert update.result.mean_height_mm == pytest.approx(20.0)
        assert update.result.bbox == (5, 5, 10, 10)
        assert torch.calls == [True, False]

    def test_each_frame_pushes_once(self, machine, surfaceGrid, intrinsics):
        machine.process_frame(surfaceGrid, intrinsics)
        machine.set_baseline()

        update = _feed(machine, surfaceGrid, intrinsics, 2)

        assert update.phase is ScanPhase.CAPTURING_BASELINE
        assert update.debug.accumulated_frames == 2

    def test_frames_outside_accumulation_only_guide(self, machine, surfaceGrid, intrinsics):
        update = _feed(machine, surfaceGrid, intrinsics, 5)

        assert update.phase is ScanPhase.IDLE
        assert update.debug.accumulated_frames == 0
        assert update.debug.estimated_distance == pytest.approx(0.40)
        assert update.guidance is GuidanceMessage.IDEAL_DISTANCE

    def test_baseline_refused_without_reading(self, machine):
        update = machine.set_baseline()

        assert update.phase is ScanPhase.IDLE
        assert update.guidance is GuidanceMessage.BASELINE_DISTANCE_ERROR

    @pytest.mark.parametrize("depth", [0.20, 0.60])
    def test_baseline_refused_out_of_band(self, machine, makeSurface, intrinsics, depth):
        """Test set_baseline stays idle outside the acceptance band"""
        machine.process_frame(makeSurface(depth=depth), intrinsics)

        update = machine.set_baseline()

        assert update.phase is ScanPhase.IDLE
        assert update.guidance is GuidanceMessage.BASELINE_DISTANCE_ERROR
        assert machine.is_baseline_set is False

    def test_scan_object_without_baseline_is_noop(self, machine, surfaceGrid, intrinsics):
        assert machine.scan_object().phase is ScanPhase.IDLE

        machine.process_frame(surfaceGrid, intrinsics)
        machine.set_baseline()
        machine.process_frame(surfaceGrid, intrinsics)

        assert machine.scan_object().phase is ScanPhase.CAPTURING_BASELINE
        assert machine.debug.accumulated_frames == 1

    def test_object_not_detected_retries(self, machine, surfaceGrid, objectGrid, intrinsics):
        """Test an empty scene keeps scanning with a fresh window"""
        self._capture_baseline(machine, surfaceGrid, intrinsics)
        machine.scan_object()

        update = _feed(machine, surfaceGrid, intrinsics, 3)

        assert update.phase is ScanPhase.SCANNING_OBJECT
        assert update.guidance is GuidanceMessage.OBJECT_NOT_DETECTED
        assert update.debug.accumulated_frames == 0
        assert update.result is None

        update = _feed(machine, objectGrid, intrinsics, 3)
        assert update.phase is ScanPhase.COMPLETED

    def test_completed_is_terminal(self, machine, makeSurface, surfaceGrid, objectGrid, intrinsics):
        """Test guidance and phase are frozen once the measurement completes"""
        self._capture_baseline(machine, surfaceGrid, intrinsics)
        machine.scan_object()
        result = _feed(machine, objectGrid, intrinsics, 3).result

        tooClose = makeSurface(depth=0.10)
        update = machine.process_frame(tooClose, intrinsics)

        assert update.phase is ScanPhase.COMPLETED
        assert update.guidance is GuidanceMessage.MEASUREMENT_COMPLETE
        assert update.result is result
        assert machine.set_baseline().phase is ScanPhase.COMPLETED
        assert machine.scan_object().phase is ScanPhase.COMPLETED

    def test_rebaseline_from_ready(self, machine, surfaceGrid, intrinsics):
        self._capture_baseline(machine, surfaceGrid, intrinsics)

        update = machine.set_baseline()

        assert update.phase is ScanPhase.CAPTURING_BASELINE
        assert update.baseline_set is True

    def test_reset_twice(self, machine, torch, surfaceGrid, intrinsics):
        """Test double reset leaves an idle machine with no baseline"""
        self._capture_baseline(machine, surfaceGrid, intrinsics)

        machine.reset()
        update = machine.reset()

        assert update.phase is ScanPhase.IDLE
        assert update.baseline_set is False
        assert update.result is None
        assert update.debug.estimated_distance == pytest.approx(0.40)
        assert torch.calls[-2:] == [True, True]

    def test_distance_tracks_frames_after_reset(self, machine, makeSurface, surfaceGrid, intrinsics):
        """Test frames after a double reset refresh only the distance reading"""
        self._capture_baseline(machine, surfaceGrid, intrinsics)
        machine.reset()
        machine.reset()

        update = _feed(machine, makeSurface(depth=0.30), intrinsics, 4)

        assert update.phase is ScanPhase.IDLE
        assert update.baseline_set is False
        assert update.result is None
        assert update.debug.accumulated_frames == 0
        assert update.debug.estimated_distance == pytest.approx(0.30)
        assert update.guidance is GuidanceMessage.IDEAL_DISTANCE

        assert machine.set_baseline().phase is ScanPhase.CAPTURING_BASELINE

    def test_reset_mid_accumulation(self, machine, surfaceGrid, intrinsics):
        """Test reset drops a partial window"""
        machine.process_frame(surfaceGrid, intrinsics)
        machine.set_baseline()
        _feed(machine, surfaceGrid, intrinsics, 2)

        update = machine.reset()
        assert update.debug.accumulated_frames == 0

        machine.set_baseline()
        update = _feed(machine, surfaceGrid, intrinsics, 2)
        assert update.phase is ScanPhase.CAPTURING_BASELINE
        assert update.debug.accumulated_frames == 2

    def test_frames_after_reset_do_not_accumulate(self, machine, surfaceGrid, objectGrid, intrinsics):
        self._capture_baseline(machine, surfaceGrid, intrinsics)
        machine.scan_object()
        machine.reset()

        update = _feed(machine, objectGrid, intrinsics, 4)

        assert update.phase is ScanPhase.IDLE
        assert update.baseline_set is False
        assert update.debug.accumulated_frames == 0

    def test_shape_change_restarts_window(self, machine, makeSurface, surfaceGrid, intrinsics):
        """Test a resolution change mid-window discards the buffered frames"""
        machine.process_frame(surfaceGrid, intrinsics)
        machine.set_baseline()
        _feed(machine, surfaceGrid, intrinsics, 2)

        smaller = makeSurface(size=30)
        update = machine.process_frame(smaller, intrinsics)

        assert update.phase is ScanPhase.CAPTURING_BASELINE
        assert update.debug.accumulated_frames == 1

    @pytest.mark.parametrize("dead_frames", [1, 3])
    def test_dead_pixel_does_not_block_measurement(self, machine, surfaceGrid, objectGrid,
                                                   intrinsics, dead_frames):
        """Test a zero reading in the window neither hides the object nor changes its area"""
        self._capture_baseline(machine, surfaceGrid, intrinsics)
        machine.scan_object()

        array = objectGrid.as_2d().copy()
        array[30, 30] = 0.0
        dead = DepthGrid.from_array(array)

        frames = [dead] * dead_frames + [objectGrid] * (3 - dead_frames)
        for grid in frames:
            update = machine.process_frame(grid, intrinsics)

        assert update.phase is ScanPhase.COMPLETED
        assert update.result.pixel_count == 100
        assert update.result.area_cm2 == pytest.approx(BLOCK_AREA_CM2)
        assert update.result.max_height_mm == pytest.approx(20.0)
        assert update.result.bbox == (5, 5, 10, 10)

    def test_dropout_patch_is_not_an_object(self, machine, surfaceGrid, intrinsics):
        """Test zero readings on an empty surface never complete a measurement"""
        self._capture_baseline(machine, surfaceGrid, intrinsics)
        machine.scan_object()

        array = surfaceGrid.as_2d().copy()
        array[10:18, 10:18] = 0.0
        update = _feed(machine, DepthGrid.from_array(array), intrinsics, 3)

        assert update.phase is ScanPhase.SCANNING_OBJECT
        assert update.guidance is GuidanceMessage.OBJECT_NOT_DETECTED
        assert update.result is None

    def test_zero_centre_reading(self, machine, surfaceGrid, intrinsics):
        """Test a dropout at the centre reports no depth and refuses the baseline"""
        array = surfaceGrid.as_2d().copy()
        array[20, 20] = 0.0

        update = machine.process_frame(DepthGrid.from_array(array), intrinsics)

        assert update.guidance is GuidanceMessage.NO_DEPTH
        assert machine.set_baseline().guidance is GuidanceMessage.BASELINE_DISTANCE_ERROR
        assert machine.phase is ScanPhase.IDLE

    def test_center_footprint_method(self, fastConfig, makeObject, surfaceGrid, intrinsics):
        """Test the configured fallback uses the centre distance"""
        config = fastConfig.with_overrides(area_method=AREA_METHOD_CENTER_FOOTPRINT)
        machine = ScanStateMachine(config)
        self._capture_baseline(machine, surfaceGrid, intrinsics)
        machine.scan_object()

        objectGrid = makeObject(origin=(15, 15))
        update = _feed(machine, objectGrid, intrinsics, 3)

        assert update.phase is ScanPhase.COMPLETED
        assert update.result.method == AREA_METHOD_CENTER_FOOTPRINT
        assert update.result.area_cm2 == pytest.approx(BLOCK_AREA_CM2)

    def test_stability_from_tracking(self, machine, surfaceGrid, intrinsics):
        machine.process_frame(surfaceGrid, intrinsics, TrackingQuality.NORMAL)
        update = machine.process_frame(surfaceGrid, intrinsics, TrackingQuality.NOT_AVAILABLE)

        assert update.debug.stability == pytest.approx(0.5)

    def test_depth_unsupported_reported(self, fastConfig):
        machine = ScanStateMachine(fastConfig)

        update = machine.start(depth_supported=False)

        assert update.debug.depth_supported is False


class TestScanUpdates:
    """Tests for update delivery to observers"""

    def test_listener_receives_snapshots(self, fastConfig, surfaceGrid, intrinsics):
        machine = ScanStateMachine(fastConfig)
        received = []
        machine.subscribe(received.append)

        machine.process_frame(surfaceGrid, intrinsics)
        machine.set_baseline()

        assert len(received) == 2
        assert all(isinstance(update, ScanUpdate) for update in received)
        assert received[0].phase is ScanPhase.IDLE
        assert received[1].phase is ScanPhase.CAPTURING_BASELINE

    def test_snapshots_are_immutable(self, fastConfig, surfaceGrid, intrinsics):
        machine = ScanStateMachine(fastConfig)
        update = machine.process_frame(surfaceGrid, intrinsics)

        with pytest.raises(AttributeError):
            update.phase = ScanPhase.COMPLETED

        machine.set_baseline()
        assert update.phase is ScanPhase.IDLE

    def test_unsubscribe(self, fastConfig, surfaceGrid, intrinsics):
        machine = ScanStateMachine(fastConfig)
        received = []
        unsubscribe = machine.subscribe(received.append)

        machine.process_frame(surfaceGrid, intrinsics)
        unsubscribe()
        machine.process_frame(surfaceGrid, intrinsics)

        assert len(received) == 1

    def test_failing_listener_does_not_stop_processing(self, fastConfig, surfaceGrid, intrinsics):
        machine = ScanStateMachine(fastConfig)
        received = []

        def broken(update):
            raise RuntimeError("display gone")

        machine.subscribe(broken)
        machine.subscribe(received.append)

        machine.process_frame(surfaceGrid, intrinsics)

        assert len(received) == 1

    def test_failing_illumination_is_ignored(self, fastConfig):
        def broken(on):
            raise OSError("no torch")

        machine = ScanStateMachine(fastConfig, illumination=broken)

        assert machine.start().phase is ScanPhase.IDLE
        assert machine.reset().phase is ScanPhase.IDLE

    def test_baseline_is_read_only(self, fastConfig, surfaceGrid, intrinsics):
        machine = ScanStateMachine(fastConfig)
        machine.process_frame(surfaceGrid, intrinsics)
        machine.set_baseline()
        _feed(machine, surfaceGrid, intrinsics, 3)

        baseline = machine._baseline.get()

        with pytest.raises(ValueError):
            baseline[0] = 0.0
        np.testing.assert_allclose(baseline, 0.40)
