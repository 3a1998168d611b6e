"""
Tracking stability scoring.

The sensor session reports a coarse tracking quality with every frame. It
never enters the measurement math; it is folded into a rolling score shown
alongside the debug telemetry so the user can tell when the device is
being moved too much.
"""

from collections import deque
from enum import Enum
from typing import Optional, Union

DEFAULT_STABILITY_WINDOW = 30


class TrackingQuality(Enum):
    NORMAL = 'normal'
    LIMITED = 'limited'
    NOT_AVAILABLE = 'not_available'


QUALITY_WEIGHTS = {
    TrackingQuality.NORMAL: 1.0,
    TrackingQuality.LIMITED: 0.5,
    TrackingQuality.NOT_AVAILABLE: 0.0,
}


class StabilityMeter:
    """Rolling mean of tracking quality weights over the last `window` frames."""

    def __init__(self, window: int = DEFAULT_STABILITY_WINDOW):
        if window < 1:
            raise ValueError(f"Stability window must be at least 1, got {window}")
        self._weights = deque(maxlen=window)

    def update(self, quality: Optional[Union[TrackingQuality, bool]]) -> float:
        # frames without a quality reading leave the score unchanged
        if quality is not None:
            if isinstance(quality, bool):
                quality = TrackingQuality.NORMAL if quality else TrackingQuality.NOT_AVAILABLE
            self._weights.append(QUALITY_WEIGHTS[TrackingQuality(quality)])
        return self.score

    @property
    def score(self) -> float:
        if not self._weights:
            return 1.0
        return sum(self._weights) / len(self._weights)

    def clear(self) -> None:
        self._weights.clear()
