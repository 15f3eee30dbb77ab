"""
Geometry: Longitude-Latitude Bounds
====================================

Validity predicates, a 2x2 bounds record and whole-array bounds computation.

Key Functions:
- compute_bounds: Single pass min/max of longitudes and latitudes
- bounds_overlap: Axis-aligned box overlap test
- clamp_invalid_coordinates: Replace out-of-range points with a valid neighbor

Longitude ranges that cross the +/-180 meridian are widened to the full
[-180, 180] span rather than represented as a wraparound interval.
"""

import logging
from dataclasses import dataclass

import numpy as np

from .config import Config

logger = logging.getLogger(__name__)


def is_valid_longitude(longitude: float) -> bool:
    return Config.LONGITUDE_RANGE[0] <= longitude <= Config.LONGITUDE_RANGE[1]


def is_valid_latitude(latitude: float) -> bool:
    return Config.LATITUDE_RANGE[0] <= latitude <= Config.LATITUDE_RANGE[1]


def is_valid_elevation(elevation: float) -> bool:
    """Is the elevation (meters above mean sea level) plausible?"""
    return Config.ELEVATION_RANGE[0] <= elevation <= Config.ELEVATION_RANGE[1]


@dataclass
class Bounds:
    """Longitude-latitude rectangle in degrees."""
    longitude_minimum: float
    longitude_maximum: float
    latitude_minimum: float
    latitude_maximum: float

    @classmethod
    def from_domain(cls, longitude_minimum: float, latitude_minimum: float,
                    longitude_maximum: float, latitude_maximum: float) -> 'Bounds':
        """Build bounds from the <min_lon> <min_lat> <max_lon> <max_lat> order."""
        return cls(longitude_minimum, longitude_maximum,
                   latitude_minimum, latitude_maximum)

    def is_valid(self) -> bool:
        return (is_valid_longitude(self.longitude_minimum) and
                self.longitude_minimum <= self.longitude_maximum <= 180.0 and
                is_valid_latitude(self.latitude_minimum) and
                self.latitude_minimum <= self.latitude_maximum <= 90.0)

    def overlaps(self, other: 'Bounds') -> bool:
        return bounds_overlap(self, other)

    def contains(self, longitudes: np.ndarray, latitudes: np.ndarray) -> np.ndarray:
        """Return boolean mask of points inside (or on the edge of) the bounds."""
        return ((longitudes >= self.longitude_minimum) &
                (longitudes <= self.longitude_maximum) &
                (latitudes >= self.latitude_minimum) &
                (latitudes <= self.latitude_maximum))

    def as_array(self) -> np.ndarray:
        """Return [[lon_min, lon_max], [lat_min, lat_max]]."""
        return np.array([[self.longitude_minimum, self.longitude_maximum],
                         [self.latitude_minimum, self.latitude_maximum]],
                        dtype=np.float64)

    def __repr__(self):
        return (f"Bounds(lon=[{self.longitude_minimum:.4f}, {self.longitude_maximum:.4f}], "
                f"lat=[{self.latitude_minimum:.4f}, {self.latitude_maximum:.4f}])")


GLOBAL_BOUNDS = Bounds(-180.0, 180.0, -90.0, 90.0)


def widen_if_crossing_dateline(bounds: Bounds) -> Bounds:
    """
    Expand longitude to the whole globe when a swath crosses the +/-180 line.

    Granule metadata reports such swaths with longitude_minimum >
    longitude_maximum.
    """
    if bounds.longitude_minimum > bounds.longitude_maximum:
        return Bounds(-180.0, 180.0,
                      bounds.latitude_minimum, bounds.latitude_maximum)
    return bounds


def compute_bounds(longitudes: np.ndarray, latitudes: np.ndarray) -> Bounds:
    """
    Compute range of longitudes and latitudes.

    Args:
        longitudes: Longitudes in degrees
        latitudes: Latitudes in degrees

    Returns:
        Bounds of the points
    """
    longitudes = np.asarray(longitudes, dtype=np.float64)
    latitudes = np.asarray(latitudes, dtype=np.float64)

    if longitudes.size == 0 or longitudes.size != latitudes.size:
        raise ValueError("compute_bounds requires equal-length non-empty coordinates")

    bounds = Bounds(float(longitudes.min()), float(longitudes.max()),
                    float(latitudes.min()), float(latitudes.max()))
    logger.debug(f"scan bounds: {bounds}")
    return bounds


def bounds_overlap(a: Bounds, b: Bounds) -> bool:
    """Do the given bounds overlap (edges touching counts)?"""
    outside = (a.latitude_minimum > b.latitude_maximum or
               a.latitude_maximum < b.latitude_minimum or
               a.longitude_minimum > b.longitude_maximum or
               a.longitude_maximum < b.longitude_minimum)
    return not outside


def _valid_coordinates(longitudes: np.ndarray, latitudes: np.ndarray) -> np.ndarray:
    return ((longitudes >= -180.0) & (longitudes <= 180.0) &
            (latitudes >= -90.0) & (latitudes <= 90.0))


def clamp_invalid_coordinates(longitudes: np.ndarray, latitudes: np.ndarray) -> bool:
    """
    Clamp invalid longitude-latitude points in place.

    Points before the first valid point take its coordinates; every later
    invalid point takes the coordinates of the previous valid point.

    Args:
        longitudes: Longitudes to check (modified in place)
        latitudes: Latitudes to check (modified in place)

    Returns:
        True if at least one valid point was found
    """
    valid = _valid_coordinates(longitudes, latitudes)

    if not valid.any():
        return False

    if valid.all():
        return True

    # Index of the most recent valid point at or before each position:
    positions = np.where(valid, np.arange(valid.size), -1)
    source = np.maximum.accumulate(positions)
    source[source < 0] = int(np.argmax(valid))

    clamped = np.count_nonzero(~valid)
    longitudes[:] = longitudes[source]
    latitudes[:] = latitudes[source]
    logger.debug(f"Clamped {clamped} invalid coordinate(s)")
    return True
