"""
Depth Scan: object footprint and height from a depth camera

Measures a small object on a flat surface by comparing averaged depth
frames of the empty surface (baseline) against frames with the object.

Main components:
- sampling: Depth grid model and region-of-interest extraction
- averaging: Multi-frame temporal averaging
- guidance: Distance guidance for the user holding the camera
- baseline: Reference surface storage
- comparison: Baseline differencing, noise and outlier filtering
- area: Physical area and height from camera intrinsics
- state_machine: Baseline/scan phase sequencing
- config: Tunable thresholds and YAML loading
- replay: Offline replay of recorded depth frames

Example usage:
    from depth_scan import ScanStateMachine, DepthGrid, CameraIntrinsics

    machine = ScanStateMachine()
    machine.subscribe(lambda update: print(update.guidance_text))
    machine.start()

    machine.process_frame(DepthGrid.from_array(depth), CameraIntrinsics(fx=212.0, fy=212.0))
    machine.set_baseline()
"""

__version__ = "0.1.0"

from .area import CameraIntrinsics, MeasurementResult
from .config import ScanConfig, load_config
from .sampling import DepthGrid, RoiBounds
from .state_machine import ScanPhase, ScanStateMachine, ScanUpdate

__all__ = [
    'CameraIntrinsics',
    'DepthGrid',
    'MeasurementResult',
    'RoiBounds',
    'ScanConfig',
    'ScanPhase',
    'ScanStateMachine',
    'ScanUpdate',
    'load_config',
]
