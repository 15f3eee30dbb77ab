"""
Aggregation: Resolution Reduction
=================================

Reduces high-resolution scans (e.g., L1 333m profiles) to coarser ground
and vertical resolution by averaging window x stride rectangles of cells.

Each ground window is represented by its middle point's timestamp and
coordinates. Each rectangle gets the mean of its elevations (and layer
thicknesses, if any) and the mean of its non-missing data values (or
MISSING_VALUE if none are valid).
Tail windows and strides use the remaining width/height.
"""

import logging
from typing import Tuple

import numpy as np

from .config import Config
from .swath import SwathScan

logger = logging.getLogger(__name__)


def compute_stride(count: int, target: int) -> int:
    """
    Compute an indexing stride that yields approximately target items.

    Args:
        count: Number of items
        target: Desired count, 0 means all items

    Returns:
        Stride (at least 1)
    """
    if target and count > target:
        return max(int(count / target + 0.5), 1)
    return 1


def compute_aggregate_levels(levels: int, target_levels: int) -> Tuple[int, int]:
    """
    Compute the number and stride of aggregated levels.

    Returns:
        (aggregate_levels, stride)
    """
    if levels <= 0 or target_levels <= 0:
        raise ValueError(f"Invalid levels {levels} / target {target_levels}")

    stride = 1
    aggregate_levels = levels

    if target_levels < levels:
        stride = compute_stride(levels, target_levels)
        aggregate_levels = -(-levels // stride)

    return aggregate_levels, stride


def _rectangle_sums(values: np.ndarray, point_starts: np.ndarray,
                    level_starts: np.ndarray) -> np.ndarray:
    sums = np.add.reduceat(values, point_starts, axis=0)
    return np.add.reduceat(sums, level_starts, axis=1)


def aggregate_calipso_data(scan: SwathScan, window: int = Config.L1_AGGREGATION_WINDOW,
                           target_levels: int = Config.L1_AGGREGATION_TARGET_LEVELS
                           ) -> SwathScan:
    """
    Aggregate scan data in place.

    Args:
        scan: Scan to aggregate; its buffers are overwritten
        window: Number of ground points per aggregate point
        target_levels: Desired number of vertical levels

    Returns:
        Re-shaped scan over the aggregated prefix (the same scan if window <= 1)
    """
    if window <= 1 or scan.is_empty:
        return scan

    points = scan.points
    levels = scan.levels
    aggregate_levels, stride = compute_aggregate_levels(levels, target_levels)
    aggregate_points = -(-points // window)

    point_starts = np.arange(0, points, window)
    level_starts = np.arange(0, levels, stride)
    widths = np.minimum(window, points - point_starts)
    heights = np.minimum(stride, levels - level_starts)
    middles = point_starts + widths // 2

    elevations = scan.elevations
    values = scan.values
    valid = values != Config.MISSING_VALUE

    cell_counts = np.outer(widths, heights)
    mean_elevations = _rectangle_sums(elevations, point_starts, level_starts) / cell_counts

    data_sums = _rectangle_sums(np.where(valid, values, 0.0), point_starts, level_starts)
    data_counts = _rectangle_sums(valid.astype(np.int64), point_starts, level_starts)
    mean_values = np.full(data_sums.shape, Config.MISSING_VALUE)
    np.divide(data_sums, data_counts, out=mean_values, where=data_counts > 0)

    buffers = scan.buffers
    for array in (buffers.timestamps, buffers.longitudes, buffers.latitudes):
        array[:aggregate_points] = array[middles]

    cells = aggregate_points * aggregate_levels
    buffers.elevations[:cells] = mean_elevations.ravel()
    buffers.values[:cells] = mean_values.ravel()

    if scan.has_thickness:
        mean_thicknesses = (_rectangle_sums(scan.thicknesses, point_starts,
                                            level_starts) / cell_counts)
        buffers.thicknesses[:cells] = mean_thicknesses.ravel()

    logger.debug(f"Aggregated {points} x {levels} to {aggregate_points} x "
                 f"{aggregate_levels} (window {window}, level stride {stride})")
    return scan.with_shape(aggregate_points, aggregate_levels)
