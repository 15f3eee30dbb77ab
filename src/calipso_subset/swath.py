"""
Swath Data Containers
=====================

Buffers holding one file's worth of subset data, shaped as point-major
2-D views so that cell (point, level) is always element point*levels + level
of the underlying flat buffer.

Classes:
- SwathBuffers: Growable flat buffers reused across files
- SwathScan: points x levels view over a SwathBuffers
- ScanMetadata: Per-scan record kept for the output header
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .geometry import Bounds

logger = logging.getLogger(__name__)


class SwathBuffers:
    """Flat float64 buffers sized for the current file's dimensions."""

    def __init__(self):
        self.points = 0
        self.levels = 0
        self.has_thickness = False
        self.timestamps = np.empty(0)
        self.longitudes = np.empty(0)
        self.latitudes = np.empty(0)
        self.elevations = np.empty(0)
        self.values = np.empty(0)
        self.thicknesses: Optional[np.ndarray] = None

    def ensure_capacity(self, points: int, levels: int, has_thickness: bool) -> bool:
        """
        Reallocate buffers if the dimensions differ from the previous file.

        Args:
            points: Number of ground points
            levels: Number of vertical levels per point
            has_thickness: Whether a thickness buffer is needed

        Returns:
            True if the buffers were reallocated
        """
        if points <= 0 or levels <= 0:
            raise ValueError(f"Invalid swath dimensions: {points} x {levels}")

        if (points == self.points and levels == self.levels and
                has_thickness == self.has_thickness):
            return False

        cells = points * levels
        self.timestamps = np.empty(points)
        self.longitudes = np.empty(points)
        self.latitudes = np.empty(points)
        self.elevations = np.empty(cells)
        self.values = np.empty(cells)
        self.thicknesses = np.empty(cells) if has_thickness else None
        self.points = points
        self.levels = levels
        self.has_thickness = has_thickness
        logger.debug(f"Allocated swath buffers for {points} x {levels} "
                     f"(thickness: {has_thickness})")
        return True

    def scan(self) -> 'SwathScan':
        """Full-size view of the buffers."""
        return SwathScan(self, self.points, self.levels)


class SwathScan:
    """
    A points x levels view over SwathBuffers.

    Per-point arrays (timestamps, longitudes, latitudes) are 1-D views of
    length points; per-cell arrays (elevations, values, thicknesses) are
    2-D (points, levels) views over the leading points*levels elements.
    """

    def __init__(self, buffers: SwathBuffers, points: int, levels: int):
        if points < 0 or levels < 0 or points * levels > buffers.elevations.size:
            raise ValueError(f"Scan {points} x {levels} exceeds buffer capacity")
        self.buffers = buffers
        self.points = points
        self.levels = levels

    @property
    def timestamps(self) -> np.ndarray:
        return self.buffers.timestamps[:self.points]

    @property
    def longitudes(self) -> np.ndarray:
        return self.buffers.longitudes[:self.points]

    @property
    def latitudes(self) -> np.ndarray:
        return self.buffers.latitudes[:self.points]

    def _cells(self, buffer: np.ndarray) -> np.ndarray:
        return buffer[:self.points * self.levels].reshape(self.points, self.levels)

    @property
    def elevations(self) -> np.ndarray:
        return self._cells(self.buffers.elevations)

    @property
    def values(self) -> np.ndarray:
        return self._cells(self.buffers.values)

    @property
    def thicknesses(self) -> Optional[np.ndarray]:
        if self.buffers.thicknesses is None:
            return None
        return self._cells(self.buffers.thicknesses)

    @property
    def has_thickness(self) -> bool:
        return self.buffers.thicknesses is not None

    @property
    def is_empty(self) -> bool:
        return self.points == 0 or self.levels == 0

    def with_shape(self, points: int, levels: int) -> 'SwathScan':
        """Re-view the same buffers after an in-place reshaping stage."""
        return SwathScan(self.buffers, points, levels)

    def cell_arrays(self):
        """Per-cell arrays in output order: elevations, values[, thicknesses]."""
        arrays = [self.elevations, self.values]
        if self.has_thickness:
            arrays.append(self.thicknesses)
        return arrays

    def __repr__(self):
        return (f"SwathScan(points={self.points}, levels={self.levels}, "
                f"thickness={self.has_thickness})")


@dataclass
class ScanMetadata:
    """Lightweight record of a spooled scan."""
    yyyydddhhmm: int
    bounds: Bounds
    points: int
    levels: int

    def __repr__(self):
        return (f"ScanMetadata({self.yyyydddhhmm}, {self.points} x {self.levels}, "
                f"{self.bounds})")
