"""
Recorded Session Replay Module

Feeds depth frames recorded to disk through a ScanStateMachine, for offline
tuning of thresholds and for reproducing field reports.

Supported frame formats:
- .npy: float array of distances in meters, shape (height, width)
- .png / .tif / .tiff: 16-bit single-channel depth images in raw sensor
  units, converted to meters with `depth_scale` (0.001 for millimetres)

Zero readings mean "no depth" in every format and are loaded as NaN.
"""

import logging
from pathlib import Path
from typing import Iterable, Iterator, Optional, Union

import numpy as np
from PIL import Image

from .area import CameraIntrinsics
from .sampling import DepthGrid
from .state_machine import ScanPhase, ScanStateMachine, ScanUpdate
from .tracking import TrackingQuality

logger = logging.getLogger(__name__)

NUMPY_SUFFIXES = ('.npy',)
IMAGE_SUFFIXES = ('.png', '.tif', '.tiff')
DEFAULT_DEPTH_SCALE = 0.001


def load_depth_frame(
    path: Union[str, Path],
    depth_scale: float = DEFAULT_DEPTH_SCALE
) -> DepthGrid:
    """
    Load one recorded depth frame.

    Args:
        path: Path to a .npy array (meters) or a 16-bit depth image
        depth_scale: Meters per raw unit for image formats

    Returns:
        DepthGrid in meters

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the format is unsupported or the image is not single-channel
    """
    frame_path = Path(path)
    if not frame_path.exists():
        raise FileNotFoundError(f"Depth frame not found: {frame_path}")

    suffix = frame_path.suffix.lower()

    if suffix in NUMPY_SUFFIXES:
        depth = np.load(frame_path).astype(np.float32)
        with np.errstate(invalid='ignore'):
            depth[depth <= 0] = np.nan
    elif suffix in IMAGE_SUFFIXES:
        with Image.open(frame_path) as image:
            raw = np.array(image)
        if raw.ndim != 2:
            raise ValueError(
                f"Depth image must be single-channel, got shape {raw.shape} in {frame_path.name}"
            )
        depth = raw.astype(np.float32) * np.float32(depth_scale)
        depth[raw == 0] = np.nan
    else:
        raise ValueError(f"Unsupported depth frame format: {frame_path.name}")

    logger.debug(f"Loaded {frame_path.name}: shape={depth.shape}")
    return DepthGrid.from_array(depth)


def iter_depth_frames(
    directory: Union[str, Path],
    depth_scale: float = DEFAULT_DEPTH_SCALE
) -> Iterator[DepthGrid]:
    """
    Yield depth frames from a directory in sorted filename order.

    Raises:
        FileNotFoundError: If the directory doesn't exist
    """
    frame_dir = Path(directory)
    if not frame_dir.is_dir():
        raise FileNotFoundError(f"Frame directory not found: {frame_dir}")

    frame_paths = sorted(
        p for p in frame_dir.iterdir()
        if p.is_file() and p.suffix.lower() in NUMPY_SUFFIXES + IMAGE_SUFFIXES
    )
    logger.info(f"Found {len(frame_paths)} depth frames in {frame_dir}")

    for frame_path in frame_paths:
        yield load_depth_frame(frame_path, depth_scale=depth_scale)


def replay_session(
    machine: ScanStateMachine,
    baseline_frames: Iterable[DepthGrid],
    object_frames: Iterable[DepthGrid],
    intrinsics: CameraIntrinsics,
    tracking: Optional[TrackingQuality] = None
) -> ScanUpdate:
    """
    Run a full baseline-then-scan cycle over recorded frames.

    The first baseline frame primes the distance reading before
    set_baseline() is pressed; it is then fed again as the first frame of
    the window. Baseline frames left over once the baseline is committed are
    ignored. Object frames are fed until the measurement completes or they
    run out.

    Returns:
        The final ScanUpdate; phase is COMPLETED on success
    """
    machine.reset()

    update = machine.snapshot()
    for grid in baseline_frames:
        if machine.phase == ScanPhase.IDLE:
            machine.process_frame(grid, intrinsics, tracking)
            update = machine.set_baseline()
            if update.phase != ScanPhase.CAPTURING_BASELINE:
                continue

        update = machine.process_frame(grid, intrinsics, tracking)
        if update.phase == ScanPhase.BASELINE_READY:
            break

    if update.phase != ScanPhase.BASELINE_READY:
        logger.warning(f"Baseline not captured from recorded frames (phase {update.phase.value})")
        return update

    machine.scan_object()
    update = machine.snapshot()
    for grid in object_frames:
        update = machine.process_frame(grid, intrinsics, tracking)
        if update.phase == ScanPhase.COMPLETED:
            break

    if update.phase != ScanPhase.COMPLETED:
        logger.warning(f"Scan did not complete: {update.guidance_text}")

    return update
