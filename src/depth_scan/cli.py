"""
Command-line replay of recorded depth scans.

Usage examples:
    # Baseline and object frames recorded as 16-bit PNGs in millimetres
    depth-scan --baseline-dir rec/surface --object-dir rec/object \\
        --fx 212.4 --fy 212.4

    # Custom thresholds and the centre-footprint fallback
    depth-scan --baseline-dir rec/surface --object-dir rec/object \\
        --fx 212.4 --fy 212.4 --config scan.yaml --area-method center_footprint -v
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from rich import print as rprint
from rich.console import Console
from rich.table import Table

from .area import AREA_METHODS, CameraIntrinsics
from .config import load_config
from .errors import DepthScanError
from .replay import DEFAULT_DEPTH_SCALE, iter_depth_frames, replay_session
from .state_machine import ScanPhase, ScanStateMachine, ScanUpdate

EXIT_COMPLETED = 0
EXIT_NOT_COMPLETED = 1
EXIT_INVALID_INPUT = 2


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity level

    Args:
        verbose: If True, set DEBUG level, otherwise INFO
    """
    log_level = logging.DEBUG if verbose else logging.INFO
    log_format = "%(asctime)s - %(levelname)s - %(message)s"

    if verbose:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%H:%M:%S"
    )


def parse_arguments(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="depth-scan",
        description="Measure object footprint area and height from recorded depth frames",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    frames_group = parser.add_argument_group("Recorded frames")
    frames_group.add_argument(
        "--baseline-dir",
        type=Path,
        required=True,
        help="Directory of frames showing the empty surface"
    )
    frames_group.add_argument(
        "--object-dir",
        type=Path,
        required=True,
        help="Directory of frames with the object placed"
    )
    frames_group.add_argument(
        "--depth-scale",
        type=float,
        default=DEFAULT_DEPTH_SCALE,
        metavar="M",
        help=f"Meters per raw unit for image frames (default: {DEFAULT_DEPTH_SCALE})"
    )

    camera_group = parser.add_argument_group("Camera intrinsics (depth-grid pixels)")
    camera_group.add_argument("--fx", type=float, required=True, help="Horizontal focal length")
    camera_group.add_argument("--fy", type=float, required=True, help="Vertical focal length")

    scan_group = parser.add_argument_group("Scan configuration")
    scan_group.add_argument("--config", type=Path, help="YAML configuration file")
    scan_group.add_argument(
        "--area-method",
        choices=AREA_METHODS,
        help="Override the configured area estimation method"
    )

    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    return parser.parse_args(argv)


def render_result(update: ScanUpdate, console: Console) -> None:
    table = Table(title="Measurement")
    table.add_column("Quantity")
    table.add_column("Value", justify="right")

    result = update.result
    table.add_row("Area", f"{result.area_cm2:.1f} cm²")
    table.add_row("Max height", f"{result.max_height_mm:.1f} mm")
    table.add_row("Mean height", f"{result.mean_height_mm:.1f} mm")
    table.add_row("Object pixels", str(result.pixel_count))
    table.add_row("Method", result.method)
    if result.bbox is not None:
        x, y, w, h = result.bbox
        table.add_row("Bounding box", f"{w}x{h} px at ({x}, {y})")
    table.add_row("Distance", f"{update.debug.estimated_distance:.3f} m")

    console.print(table)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main CLI entry point

    Returns:
        Exit code (0 measurement completed, 1 not completed, 2 invalid input)
    """
    args = parse_arguments(argv)
    setup_logging(args.verbose)

    try:
        config = load_config(args.config)
        if args.area_method:
            config = config.with_overrides(area_method=args.area_method)
        intrinsics = CameraIntrinsics(fx=args.fx, fy=args.fy)

        machine = ScanStateMachine(config)
        machine.start()
        update = replay_session(
            machine,
            iter_depth_frames(args.baseline_dir, depth_scale=args.depth_scale),
            iter_depth_frames(args.object_dir, depth_scale=args.depth_scale),
            intrinsics
        )
    except (DepthScanError, FileNotFoundError, ValueError) as error:
        rprint(f"[bold red]{error}[/bold red]")
        return EXIT_INVALID_INPUT

    if update.phase != ScanPhase.COMPLETED:
        rprint(f"[yellow]Scan not completed ({update.phase.value}): {update.guidance_text}[/yellow]")
        return EXIT_NOT_COMPLETED

    render_result(update, Console())
    return EXIT_COMPLETED


if __name__ == "__main__":
    sys.exit(main())
