"""
CALIPSO Variable Reading
========================

Reads a named CALIPSO variable, and its timestamps and coordinates, into
(points, levels) arrays with one value per cell.

Several CALIPSO datasets carry more than one value per cell (a vector, a
pair of CAD scores, the first/middle/last of three laser shots, ...).
These are reduced to a single component here, and multi-level data are
reordered from the file's sky-to-surface order to surface-to-sky.
"""

import logging
from typing import Optional, Tuple

import numpy as np

from .config import Config, FileReadError
from .geometry import clamp_invalid_coordinates

logger = logging.getLogger(__name__)

# Variables stored as first/middle/last shot of each profile:
SHOT_VARIABLES = ('Profile_UTC_Time', 'Profile_Time', 'Latitude', 'Longitude')

# Variables stored as statistics (minimum, maximum, mean, ...) per profile:
STATISTICS_VARIABLES = ('Surface_Elevation_Statistics', 'DEM_Surface_Elevation')

_REDUCED_VARIABLES = (('Profile_ID', 'Lidar_Surface_Elevation') +
                      SHOT_VARIABLES + STATISTICS_VARIABLES)


def split_vector_name(variable: str) -> Tuple[str, Optional[int]]:
    """
    Split a vector component name such as 'Surface_Wind_Speeds_Y'.

    Returns:
        (dataset name, component index 0..2) or (variable, None)
    """
    if len(variable) > 2 and variable[-2] == '_' and variable[-1] in 'XYZ':
        return variable[:-2], 'XYZ'.index(variable[-1])
    return variable, None


def worst_cad_score(score1: float, score2: float) -> float:
    """
    Worst of two CAD scores.

    Scores are in [-100, 100] with values furthest from 0 most confident;
    magnitudes above 100 are special values and are always worse.
    """
    magnitude1 = abs(score1)
    magnitude2 = abs(score2)

    if magnitude1 > 100.0:
        if magnitude2 > 100.0 and magnitude2 > magnitude1:
            return score2
        return score1
    if magnitude2 > 100.0 or magnitude2 < magnitude1:
        return score2
    return score1


def copy_worst_cad_score(pairs: np.ndarray) -> np.ndarray:
    """
    Reduce (..., 2) CAD score pairs to the worst score of each pair.
    """
    first = pairs[..., 0]
    second = pairs[..., 1]
    magnitude1 = np.abs(first)
    magnitude2 = np.abs(second)
    special1 = magnitude1 > 100.0
    special2 = magnitude2 > 100.0
    take_second = np.where(special1,
                           special2 & (magnitude2 > magnitude1),
                           special2 | (magnitude2 < magnitude1))
    return np.where(take_second, second, first)


def copy_maximum_component(vectors: np.ndarray) -> np.ndarray:
    """Maximum of the last axis, never less than MISSING_VALUE."""
    return np.maximum(vectors.max(axis=-1), Config.MISSING_VALUE)


def copy_mean_components(vectors: np.ndarray) -> np.ndarray:
    """Mean of the non-missing values of the last axis, else MISSING_VALUE."""
    valid = vectors > Config.MISSING_VALUE
    counts = valid.sum(axis=-1)
    sums = np.where(valid, vectors, 0.0).sum(axis=-1)
    means = np.full(counts.shape, Config.MISSING_VALUE)
    np.divide(sums, counts, out=means, where=counts > 0)
    return means


def _vector_component(raw: np.ndarray, base: str, component: int) -> np.ndarray:
    length = 2 if 'Surface_Wind' in base else 3

    if raw.shape[-1] != length or component >= length:
        raise FileReadError(
            f"Invalid vector variable {base}: {raw.shape[-1]} components "
            f"(expected {length})")

    return raw[..., component]


def read_calipso_variable_dimensions(file, variable: str) -> Tuple[int, int]:
    """
    Read the subset dimensions of a CALIPSO variable.

    Args:
        file: Open CALIPSO file
        variable: Variable name, possibly with a vector suffix _X, _Y or _Z

    Returns:
        (points, levels) of the variable after component selection
    """
    base, component = split_vector_name(variable)
    rank, dims = file.read_dimensions(base)

    if rank not in (2, 3):
        raise FileReadError(
            f"Invalid rank for variable '{base}' (rank = {rank}, expected 2 or 3)")

    points = dims[0]
    levels = dims[1]

    if component is not None or (rank == 2 and base in _REDUCED_VARIABLES):
        levels = 1

    logger.debug(f"{variable}: {points} x {levels} (rank {rank}, dims {dims})")
    return points, levels


def read_calipso_variable(file, product: str, variable: str,
                          points: int, levels: int) -> Tuple[str, np.ndarray]:
    """
    Read a CALIPSO variable reduced to one value per (point, level).

    Args:
        file: Open CALIPSO file
        product: Product type (e.g., 'L1')
        variable: Variable name, possibly with a vector suffix
        points: Expected number of ground points
        levels: Expected number of levels

    Returns:
        (units, data) with data of shape (points, levels) in surface-to-sky order
    """
    base, component = split_vector_name(variable)
    rank, dims = file.read_dimensions(base)
    units, raw = file.read_variable(base, rank, dims)
    raw = np.asarray(raw, dtype=np.float64).reshape(dims)

    if rank == 3:
        if dims[2] == 1:
            values = raw[:, :, 0]
        elif component is not None:
            values = _vector_component(raw, base, component)
        elif base == 'CAD_Score':
            values = copy_worst_cad_score(raw[:, :, :2])
        elif base == 'Atmospheric_Volume_Description':
            # 2nd of the pair classifies the lower bin.
            values = raw[:, :, 1]
        else:
            values = copy_maximum_component(raw)
    elif dims[1] > 1:
        if base == 'Profile_ID':
            values = raw[:, 0]
        elif base == 'Lidar_Surface_Elevation':
            values = copy_mean_components(raw)
        elif base in SHOT_VARIABLES:
            values = raw[:, 1]
        elif base in STATISTICS_VARIABLES:
            values = raw[:, dims[1] // 2]
        elif component is not None:
            values = _vector_component(raw, base, component)
        else:
            values = raw
    else:
        values = raw

    if values.size != points * levels:
        raise FileReadError(
            f"Variable {variable} of {product} has {values.size} values, "
            f"expected {points} x {levels}")

    values = values.reshape(points, levels)

    if levels > 1:
        values = values[:, ::-1]

    return units, np.ascontiguousarray(values)


def _read_shot_middle(file, variable: str, points: int) -> np.ndarray:
    rank, dims = file.read_dimensions(variable)

    if rank != 2 or dims[0] != points:
        raise FileReadError(f"Invalid dimensions of variable {variable}: {dims}")

    components = dims[1]

    if components not in (1, 3):
        raise FileReadError(
            f"Invalid dimensions for variable {variable}: "
            f"components = {components} (expected 1 or 3)")

    _, raw = file.read_variable(variable, rank, dims)
    raw = np.asarray(raw, dtype=np.float64).reshape(dims)
    return raw[:, components // 2]


def read_calipso_timestamps(file, points: int, out: np.ndarray):
    """Read Profile_UTC_Time as yyyymmdd.f into out[points]."""
    out[:] = _read_shot_middle(file, 'Profile_UTC_Time', points)
    out += Config.YEAR_2000_OFFSET  # yymmdd.f to yyyymmdd.f


def read_calipso_coordinates(file, points: int, longitudes: np.ndarray,
                             latitudes: np.ndarray):
    """
    Read Longitude and Latitude into the given arrays.

    Invalid coordinates are clamped to a valid neighbor.
    """
    longitudes[:] = _read_shot_middle(file, 'Longitude', points)
    latitudes[:] = _read_shot_middle(file, 'Latitude', points)

    if not clamp_invalid_coordinates(longitudes, latitudes):
        raise FileReadError("Failed to read valid coordinates")
