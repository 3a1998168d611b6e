#!/usr/bin/env python3
"""
Example usage script for the depth scanner

Demonstrates:
1. Distance guidance while aiming at the surface
2. Baseline capture over a window of frames
3. Object scan and the resulting measurement

Frames are synthetic: a 256x192 surface at 0.36m and a 40x30 pixel box
standing 25mm proud of it, with light sensor noise.
"""

import logging
import sys
from pathlib import Path

import numpy as np

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from depth_scan import CameraIntrinsics, DepthGrid, ScanPhase, ScanStateMachine, load_config

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)

WIDTH, HEIGHT = 256, 192
SURFACE_DEPTH = 0.36
BOX_HEIGHT = 0.025

rng = np.random.default_rng(7)


def surface_frame(depth=SURFACE_DEPTH):
    noise = rng.normal(0.0, 0.001, size=(HEIGHT, WIDTH))
    return DepthGrid.from_array(np.full((HEIGHT, WIDTH), depth) + noise)


def box_frame():
    frame = np.full((HEIGHT, WIDTH), SURFACE_DEPTH)
    frame[80:110, 110:150] = SURFACE_DEPTH - BOX_HEIGHT
    return DepthGrid.from_array(frame + rng.normal(0.0, 0.001, size=frame.shape))


def main():
    config_path = Path(__file__).parent / "scan.yaml"
    config = load_config(config_path)

    # 1920x1440 camera image, fx=fy=1440, scaled down to the depth grid
    K = [[1440.0, 0.0, 960.0], [0.0, 1440.0, 720.0], [0.0, 0.0, 1.0]]
    intrinsics = CameraIntrinsics.from_camera_matrix(K, (1920, 1440), (WIDTH, HEIGHT))

    machine = ScanStateMachine(config, illumination=lambda on: print(f"  torch {'on' if on else 'off'}"))
    machine.subscribe(lambda update: logger.debug(f"{update.phase.value}: {update.guidance_text}"))
    machine.start()

    print("\n" + "=" * 70)
    print("STEP 1: Aim at the surface")
    print("=" * 70)
    for depth in (0.20, 0.55, SURFACE_DEPTH):
        update = machine.process_frame(surface_frame(depth), intrinsics)
        print(f"  {depth:.2f}m -> {update.guidance_text}")

    print("\n" + "=" * 70)
    print("STEP 2: Capture baseline")
    print("=" * 70)
    machine.set_baseline()
    while machine.phase == ScanPhase.CAPTURING_BASELINE:
        update = machine.process_frame(surface_frame(), intrinsics)
    print(f"  {update.guidance_text}")

    print("\n" + "=" * 70)
    print("STEP 3: Scan object")
    print("=" * 70)
    machine.scan_object()
    while machine.phase == ScanPhase.SCANNING_OBJECT:
        update = machine.process_frame(box_frame(), intrinsics)

    result = update.result
    print(f"  Area: {result.area_cm2:.1f} cm²")
    print(f"  Max height: {result.max_height_mm:.1f} mm")
    print(f"  Mean height: {result.mean_height_mm:.1f} mm")
    print(f"  Object pixels: {result.pixel_count}")


if __name__ == "__main__":
    main()
