"""
Shared fixtures: an in-memory stand-in for an open CALIPSO HDF file.
"""

import numpy as np
import pytest

from calipso_subset.config import FileReadError
from calipso_subset.geometry import Bounds


class FakeCALIPSOFile:
    """Serves variables from a dict with the read interface of CALIPSOFile."""

    def __init__(self, variables=None, vdata=None, bounds=None, units=None):
        self.variables = {name: np.asarray(values, dtype=np.float64)
                          for name, values in (variables or {}).items()}
        self.vdata = {name: np.asarray(values, dtype=np.float64)
                      for name, values in (vdata or {}).items()}
        self.bounds = bounds or Bounds(-180.0, 180.0, -90.0, 90.0)
        self.units = units or {}
        self.closed = False

    def read_bounds(self):
        return self.bounds

    def variable_exists(self, variable):
        values = self.variables.get(variable)
        return values is not None and values.ndim == 2 and min(values.shape) > 0

    def read_dimensions(self, variable):
        if variable not in self.variables:
            raise FileReadError(f"Failed to find {variable}")
        values = self.variables[variable]
        return values.ndim, list(values.shape)

    def read_variable(self, variable, rank, dims):
        values = self.variables.get(variable)
        if values is None:
            raise FileReadError(f"Failed to find {variable}")
        if values.ndim != rank or list(values.shape) != list(dims):
            raise FileReadError(f"Mismatched dimensions of {variable}")
        return self.units.get(variable, '-'), values.copy()

    def read_vdata(self, variable, count):
        if variable not in self.vdata:
            raise FileReadError(f"Failed to read Vdata for '{variable}'")
        return self.vdata[variable][:count].copy()

    def close(self):
        self.closed = True


def file_order(surface_to_sky):
    """Flip (points, levels[, n]) arrays to the sky-to-surface order of files."""
    return np.asarray(surface_to_sky)[:, ::-1]


APRO_FILE_NAME = "CAL_LID_L2_05kmAPro-Prov-V3-01.2006-07-05T10-21-01ZN.hdf"

# Sky-to-surface, km:
ALTITUDES_KM = [20.0, 12.0, 8.0, 4.0, 0.1]


def make_profile_file(points=10, levels=5):
    """
    A 05kmAPro-like file with Relative_Humidity[p, l] = 10 * p + l in file
    (sky-to-surface) order. Points 2, 3 and 4 lie in [-110, -75] x [35, 36].
    """
    longitudes = np.array([-130.0, -120.0, -105.0, -95.0, -85.0,
                           -60.0, -50.0, -40.0, -30.0, -20.0])[:points]
    humidity = (10.0 * np.arange(points)[:, np.newaxis] +
                np.arange(levels)[np.newaxis, :])
    return FakeCALIPSOFile(
        variables={
            'Profile_UTC_Time': np.column_stack(
                [np.full(points, 60705.4), np.full(points, 60705.5),
                 np.full(points, 60705.6)]),
            'Longitude': longitudes[:, np.newaxis],
            'Latitude': np.full((points, 1), 35.5),
            'Surface_Elevation': np.zeros((points, 1)),
            'Relative_Humidity': humidity,
        },
        vdata={'Lidar_Data_Altitudes': ALTITUDES_KM[:levels]},
        bounds=Bounds(-135.0, -15.0, 30.0, 40.0),
        units={'Relative_Humidity': 'percent'},
    )


@pytest.fixture
def profile_file():
    return make_profile_file()
