from pathlib import Path
import sys

import numpy as np
import pytest

sourceRoot = Path(__file__).resolve().parents[1] / "src"
if str(sourceRoot) not in sys.path:
    sys.path.insert(0, str(sourceRoot))

from depth_scan.area import CameraIntrinsics  # noqa: E402
from depth_scan.config import ScanConfig  # noqa: E402
from depth_scan.sampling import DepthGrid, RoiBounds  # noqa: E402

SURFACE_DEPTH = 0.40
OBJECT_DEPTH = 0.38


def _surfaceArray(size=40, depth=SURFACE_DEPTH):
    return np.full((size, size), depth, dtype=np.float64)


def _objectArray(size=40, block=10, origin=(5, 5), depth=SURFACE_DEPTH, objectDepth=OBJECT_DEPTH):
    array = _surfaceArray(size, depth)
    row, col = origin
    array[row:row + block, col:col + block] = objectDepth
    return array


@pytest.fixture
def makeSurface():
    """Factory for flat surface grids."""
    def factory(**kwargs):
        return DepthGrid.from_array(_surfaceArray(**kwargs))
    return factory


@pytest.fixture
def makeObject():
    """Factory for surface grids with a raised square block."""
    def factory(**kwargs):
        return DepthGrid.from_array(_objectArray(**kwargs))
    return factory


@pytest.fixture
def intrinsics():
    return CameraIntrinsics(fx=200.0, fy=200.0)


@pytest.fixture
def surfaceGrid(makeSurface):
    return makeSurface()


@pytest.fixture
def objectGrid(makeObject):
    return makeObject()


@pytest.fixture
def fastConfig():
    """Three-frame windows over the whole grid."""
    return ScanConfig(
        frame_count=3,
        roi=RoiBounds(start_x=0.0, end_x=1.0, start_y=0.0, end_y=1.0),
    )
