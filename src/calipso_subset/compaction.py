"""
Compaction: Spatial and Elevation Subsetting
============================================

Packs the ground points inside a longitude-latitude domain, and the run of
vertical levels inside an elevation range, into the leading part of the
swath buffers.

All points of a scan share one vertical grid, so the level window is found
once from the first point's elevation column.
"""

import logging
from typing import Optional, Tuple

import numpy as np

from .geometry import Bounds
from .swath import SwathScan

logger = logging.getLogger(__name__)


def elevation_window(elevations: np.ndarray, minimum: float,
                     maximum: float) -> Optional[Tuple[int, int]]:
    """
    Find the contiguous run of ascending elevations within [minimum, maximum].

    Args:
        elevations: One point's elevation column, ascending (meters)
        minimum: Minimum elevation (meters)
        maximum: Maximum elevation (meters)

    Returns:
        (first, last) inclusive level indices, or None if no level qualifies
    """
    above = np.flatnonzero(elevations >= minimum)

    if above.size == 0:
        return None

    first = int(above[0])

    if elevations[first] > maximum:
        return None

    last = first
    while last + 1 < elevations.size and elevations[last + 1] <= maximum:
        last += 1

    return first, last


def _check_cursors(destination: np.ndarray, source: np.ndarray, what: str):
    # In-place packing is only safe if no write lands past its read.
    if np.any(destination > source):
        raise AssertionError(f"Compaction {what} output index exceeds input index")


def compact_points_in_subset(domain: Bounds, minimum_elevation: float,
                             maximum_elevation: float,
                             scan: SwathScan) -> Optional[SwathScan]:
    """
    Compact scan data in place to the points and levels within the subset.

    Args:
        domain: Longitude-latitude subset
        minimum_elevation: Minimum elevation of subset (meters)
        maximum_elevation: Maximum elevation of subset (meters)
        scan: Scan to compact; its buffers are overwritten

    Returns:
        Re-shaped scan over the compacted prefix, or None if nothing survives
    """
    if scan.is_empty:
        return None

    window = elevation_window(scan.elevations[0], minimum_elevation,
                              maximum_elevation)

    if window is None:
        logger.debug("No levels within elevation range "
                     f"[{minimum_elevation}, {maximum_elevation}]")
        return None

    first, last = window
    inside = np.flatnonzero(domain.contains(scan.longitudes, scan.latitudes))

    if inside.size == 0:
        logger.debug("No points within domain")
        return None

    points = inside.size
    levels = last - first + 1
    buffers = scan.buffers

    output_points = np.arange(points)
    _check_cursors(output_points, inside, "point")

    for array in (buffers.timestamps, buffers.longitudes, buffers.latitudes):
        array[:points] = array[inside]

    source_cells = (inside[:, np.newaxis] * scan.levels +
                    np.arange(first, last + 1)).ravel()
    output_cells = np.arange(points * levels)
    _check_cursors(output_cells, source_cells, "level")

    cell_buffers = [buffers.elevations, buffers.values]
    if buffers.thicknesses is not None:
        cell_buffers.append(buffers.thicknesses)

    for array in cell_buffers:
        array[:points * levels] = array[source_cells]

    logger.debug(f"Compacted {scan.points} x {scan.levels} to {points} x {levels}")
    return scan.with_shape(points, levels)
