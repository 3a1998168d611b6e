"""
Temporal Averaging Module

Accumulates a bounded window of ROI sample arrays and reduces them to a
per-position mean. Averaging over 10-15 frames suppresses the per-frame
jitter of consumer depth sensors to well under a millimetre.

The reduction is a sequential sum in push order followed by a single
division per position, so the same ordered inputs always produce
bit-identical output.
"""

import logging
from typing import List, Optional

import numpy as np

from .errors import LengthMismatchError

logger = logging.getLogger(__name__)

DEFAULT_FRAME_COUNT = 15


class TemporalAverager:
    """Bounded buffer of sample arrays with a per-position mean on drain."""

    def __init__(self, capacity: int = DEFAULT_FRAME_COUNT):
        if capacity < 1:
            raise ValueError(f"Averager capacity must be at least 1, got {capacity}")

        self.capacity = int(capacity)
        self._samples: List[np.ndarray] = []

    @property
    def count(self) -> int:
        return len(self._samples)

    @property
    def is_full(self) -> bool:
        return len(self._samples) >= self.capacity

    @property
    def sample_length(self) -> Optional[int]:
        """Length every sample in the current cycle must have, if known."""
        if not self._samples:
            return None
        return self._samples[0].size

    def push(self, sample: np.ndarray) -> int:
        """
        Add one sample array to the current cycle.

        Args:
            sample: 1D array of depth values from one frame

        Returns:
            Number of samples held after the push

        Raises:
            LengthMismatchError: If the sample length differs from the cycle's
            RuntimeError: If the buffer is already full
        """
        sample = np.asarray(sample, dtype=np.float64).reshape(-1)

        expected = self.sample_length
        if expected is not None and sample.size != expected:
            raise LengthMismatchError(
                f"Sample length {sample.size} does not match {expected} "
                f"of the {self.count} samples already buffered"
            )

        if self.is_full:
            raise RuntimeError(
                f"Averager is full ({self.capacity} samples); drain before pushing"
            )

        self._samples.append(sample.copy())
        logger.debug(f"Buffered sample {self.count}/{self.capacity} ({sample.size} values)")
        return self.count

    def drain(self) -> np.ndarray:
        """
        Return the per-position mean of the full window and empty the buffer.

        Raises:
            RuntimeError: If fewer than `capacity` samples are buffered

        Example:
            >>> averager = TemporalAverager(capacity=2)
            >>> averager.push(np.array([0.30, 0.40]))
            1
            >>> averager.push(np.array([0.32, 0.40]))
            2
            >>> averager.drain()
            array([0.31, 0.4 ])
        """
        if not self.is_full:
            raise RuntimeError(
                f"Averager holds {self.count}/{self.capacity} samples; window not complete"
            )

        total = np.zeros_like(self._samples[0])
        for sample in self._samples:
            total = total + sample

        averaged = total / len(self._samples)
        self._samples = []

        logger.debug(f"Drained {self.capacity}-frame window of {averaged.size} positions")
        return averaged

    def clear(self) -> None:
        if self._samples:
            logger.debug(f"Discarding {self.count} buffered samples")
        self._samples = []
