"""Holds the averaged depth map of the empty reference surface."""

import logging
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)


class BaselineStore:
    """
    Single-slot store for the baseline map.

    A committed map is replaced wholesale by the next commit and never
    modified in place; get() hands out a read-only array.
    """

    def __init__(self):
        self._baseline: Optional[np.ndarray] = None

    @property
    def is_set(self) -> bool:
        return self._baseline is not None

    def commit(self, averaged: np.ndarray) -> None:
        baseline = np.array(averaged, dtype=np.float64).reshape(-1)
        baseline.setflags(write=False)

        if self._baseline is not None:
            logger.info(f"Replacing baseline of {self._baseline.size} positions")

        self._baseline = baseline
        finite = baseline[np.isfinite(baseline)]
        median = float(np.median(finite)) if finite.size else float("nan")
        logger.info(f"Baseline committed: {baseline.size} positions, median depth {median:.4f}m")

    def get(self) -> Optional[np.ndarray]:
        return self._baseline

    def clear(self) -> None:
        if self._baseline is not None:
            logger.info("Baseline cleared")
        self._baseline = None
