"""
Elevation Reconstruction
========================

Converts CALIPSO altitude fields to absolute elevations (meters above mean
sea level) in surface-to-sky level order.

Modes:
- Layered products: per-layer base/top altitudes (km) give the layer
  middle elevation and thickness
- Profile products: a shared altitude grid (km, sky-to-surface) is clamped
  below by each point's surface elevation
"""

import logging
from typing import Optional, Tuple

import numpy as np

from .config import Config, FileReadError

logger = logging.getLogger(__name__)

# Ordered by preference:
SURFACE_ELEVATION_VARIABLES = (
    'Surface_Elevation',
    'Surface_Elevation_Statistics',
    'DEM_Surface_Elevation',
    'Lidar_Surface_Elevation',
)

MET_DATA_LEVELS = 33


def layered_elevations(bottom_km: np.ndarray,
                       top_km: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Compute layer middle elevations and thicknesses.

    Args:
        bottom_km: Layer_Base_Altitude, shape (points, levels), sky-to-surface
        top_km: Layer_Top_Altitude, shape (points, levels), sky-to-surface

    Returns:
        (elevations, thicknesses) in meters, surface-to-sky. Invalid layers
        (negative base or top not above base) are 0 in both.
    """
    bottom = np.asarray(bottom_km, dtype=np.float64)[:, ::-1]
    top = np.asarray(top_km, dtype=np.float64)[:, ::-1]

    invalid = (bottom < 0.0) | (top <= bottom)
    bottom_m = bottom * Config.KILOMETERS_TO_METERS
    top_m = top * Config.KILOMETERS_TO_METERS

    elevations = np.where(invalid, 0.0, (top_m + bottom_m) * 0.5)
    thicknesses = np.where(invalid, 0.0, top_m - bottom_m)
    return elevations, thicknesses


def surface_elevation_from_components(values: np.ndarray) -> np.ndarray:
    """
    Reduce a (points, components) surface elevation variable to one per point.

    One component is used as-is, two are averaged (ignoring missing values)
    and with three or more the third (index 2, the mean statistic) is used.
    """
    values = np.asarray(values, dtype=np.float64)

    if values.ndim == 1:
        return values.copy()

    components = values.shape[1]

    if components == 1:
        return values[:, 0].copy()

    if components == 2:
        valid = values > Config.MISSING_VALUE
        counts = valid.sum(axis=1)
        sums = np.where(valid, values, 0.0).sum(axis=1)
        result = np.full(values.shape[0], Config.MISSING_VALUE)
        np.divide(sums, counts, out=result, where=counts > 0)
        return result

    return values[:, 2].copy()


def profile_elevations(surface_m: np.ndarray, altitudes_km: np.ndarray,
                       levels: int) -> np.ndarray:
    """
    Expand a shared altitude grid to per-point elevations.

    Args:
        surface_m: Surface elevation per point (meters)
        altitudes_km: Shared altitudes, sky-to-surface (km)
        levels: Number of levels

    Returns:
        Elevations of shape (points, levels), surface-to-sky, never below
        the point's surface
    """
    altitudes = np.asarray(altitudes_km, dtype=np.float64)[:levels]

    if altitudes.size != levels:
        raise ValueError(f"Expected {levels} altitudes, got {altitudes.size}")

    grid = altitudes[::-1] * Config.KILOMETERS_TO_METERS
    return np.maximum(grid[np.newaxis, :], np.asarray(surface_m)[:, np.newaxis])


def _find_surface_variable(file) -> Optional[str]:
    for variable in SURFACE_ELEVATION_VARIABLES:
        if file.variable_exists(variable):
            return variable
    return None


def read_surface_elevations(file, product: str, points: int) -> np.ndarray:
    """
    Read per-point surface elevation in meters.

    Vertical feature mask files carry no surface elevation and are placed
    at sea level.
    """
    variable = _find_surface_variable(file)

    if variable is None:
        if product == Config.L2_VFM:
            logger.debug("No surface elevation in VFM file, using sea level")
            return np.zeros(points)
        raise FileReadError(f"No surface elevation variable found for {product}")

    rank, dims = file.read_dimensions(variable)

    if rank != 2 or dims[0] != points or dims[1] < 1:
        raise FileReadError(f"Invalid dimensions of variable {variable}: {dims}")

    _, raw = file.read_variable(variable, rank, dims)
    surface = surface_elevation_from_components(
        np.asarray(raw, dtype=np.float64).reshape(dims))
    logger.debug(f"Surface elevation from {variable} ({dims[1]} components)")
    return surface * Config.KILOMETERS_TO_METERS


def read_calipso_elevations(file, product: str, points: int, levels: int,
                            elevations: np.ndarray,
                            thicknesses: Optional[np.ndarray] = None):
    """
    Read elevations (and layer thicknesses) into (points, levels) arrays.

    Args:
        file: Open CALIPSO file
        product: Product type
        points: Number of ground points
        levels: Number of levels
        elevations: Output elevations (meters), shape (points, levels)
        thicknesses: Output thicknesses (meters), required for layered
            products with more than one level
    """
    if levels > 1 and Config.is_layered(product):
        if thicknesses is None:
            raise ValueError("Layered elevations require a thickness array")

        dims = [points, levels]
        _, bottom = file.read_variable('Layer_Base_Altitude', 2, dims)
        _, top = file.read_variable('Layer_Top_Altitude', 2, dims)
        elevations[:], thicknesses[:] = layered_elevations(
            np.reshape(bottom, dims), np.reshape(top, dims))
        return

    surface = read_surface_elevations(file, product, points)

    if levels == 1:
        elevations[:] = surface.reshape(points, 1)
        return

    grid_variable = ('Met_Data_Altitudes' if levels == MET_DATA_LEVELS
                     else 'Lidar_Data_Altitudes')
    altitudes = file.read_vdata(grid_variable, levels)
    elevations[:] = profile_elevations(surface, altitudes, levels)
