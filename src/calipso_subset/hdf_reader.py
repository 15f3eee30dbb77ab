"""
CALIPSO HDF4 File Access
========================

Thin pyhdf-backed wrapper exposing the read operations the subsetting
pipeline needs: file bounds, variable existence, dimensions, variable data
(with units and scale_factor applied) and Vdata fields.

File Structure:
- Scientific datasets (SDS): per-profile variables, shape (points, levels[, n])
- Global attribute 'coremetadata': ECS metadata holding MINLAT/MAXLAT/...
- Vdata 'metadata': shared fields such as Lidar_Data_Altitudes
"""

import logging
import re
from pathlib import Path
from typing import List, Optional, Tuple, Union

import numpy as np

from .config import FileReadError
from .geometry import Bounds, widen_if_crossing_dateline

logger = logging.getLogger(__name__)

# Try to import HDF4 library for reading CALIPSO files
try:
    from pyhdf.SD import SD, SDC
    from pyhdf.HDF import HDF, HC
    from pyhdf.error import HDF4Error
    HDF4_AVAILABLE = True
except ImportError:
    HDF4_AVAILABLE = False
    logger.debug("pyhdf not available - CALIPSO HDF files cannot be opened")

_NUMBER = r'([-+]?[0-9]*\.?[0-9]+(?:[eE][-+]?[0-9]+)?)'


def normalize_units(variable: str, units: Optional[str]) -> str:
    """
    Convert problematic units attribute values to consistent names.

    Args:
        variable: Variable name (e.g., 'Profile_UTC_Time')
        units: Raw units attribute, or None if absent

    Returns:
        Normalized units string, '-' for unitless variables
    """
    value = (units or '-').replace(' ', '_')

    if value in ('mb', 'millibars', 'hPA'):
        return 'hPa'
    if variable == 'Profile_Time':
        return 'seconds_since_1993-01-01'
    if variable == 'Profile_UTC_Time':
        return 'yyyymmdd.f'
    if value in ('NoUnits', 'None', 'none'):
        return '-'
    if 'egrees' in value:
        return 'deg'
    return value


def parse_core_metadata_bounds(text: str) -> Bounds:
    """
    Parse swath lon-lat bounds from an ECS coremetadata string.

    Args:
        text: Contents of the coremetadata attribute

    Returns:
        Bounds of the swath, widened to all longitudes if it crosses +/-180

    Raises:
        FileReadError: If the bounds are absent or invalid
    """
    values = {}

    for name in ('MINLAT', 'MINLON', 'MAXLAT', 'MAXLON'):
        match = re.search(r'=\s*' + name + r'\b.*?VALUE\s*=\s*' + _NUMBER,
                          text, re.DOTALL)
        if not match:
            raise FileReadError(f"Invalid file metadata for lon-lat bounds: no {name}")
        values[name] = float(match.group(1))

    bounds = widen_if_crossing_dateline(
        Bounds(values['MINLON'], values['MAXLON'],
               values['MINLAT'], values['MAXLAT']))

    if not bounds.is_valid():
        raise FileReadError(f"Invalid file metadata for lon-lat bounds: {bounds}")

    return bounds


class CALIPSOFile:
    """
    Read access to one CALIPSO HDF4 file.

    Usage:
        with CALIPSOFile(path) as hdf:
            rank, dims = hdf.read_dimensions('Latitude')
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.name = self.path.name
        if not HDF4_AVAILABLE:
            raise FileReadError("pyhdf not available - install with: pip install pyhdf")
        try:
            self._sd = SD(str(self.path), SDC.READ)
        except HDF4Error as e:
            raise FileReadError(f"Failed to open HDF file for reading: {self.path}: {e}")
        self._hdf = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        """Close the file. Safe to call more than once."""
        if self._hdf is not None:
            self._hdf.close()
            self._hdf = None
        if self._sd is not None:
            self._sd.end()
            self._sd = None

    def read_bounds(self) -> Bounds:
        """Read the file lon-lat bounds from the coremetadata attribute."""
        attributes = self._sd.attributes()
        text = attributes.get('coremetadata')

        if not isinstance(text, str):
            raise FileReadError(f"No coremetadata attribute in {self.name}")

        bounds = parse_core_metadata_bounds(text)
        logger.debug(f"{self.name} swath bounds: {bounds}")
        return bounds

    def _info(self, variable: str):
        if variable not in self._sd.datasets():
            raise FileReadError(f"Failed to find {variable} in {self.name}")
        sds = self._sd.select(variable)
        try:
            _, rank, dims, data_type, _ = sds.info()
        finally:
            sds.endaccess()
        dims = [dims] if rank == 1 else list(dims)
        return rank, dims, data_type

    def variable_exists(self, variable: str) -> bool:
        """Does a rank-2 variable with positive dimensions exist?"""
        try:
            rank, dims, data_type = self._info(variable)
        except (FileReadError, HDF4Error):
            return False
        # 32-bit reals and 16-bit integers only
        return (rank == 2 and data_type in (SDC.FLOAT32, SDC.INT16) and
                dims[0] > 0 and dims[1] > 0)

    def read_dimensions(self, variable: str) -> Tuple[int, List[int]]:
        """
        Read variable dimensions.

        Returns:
            (rank, dims) with rank 2 or 3 and dims[0] the number of points
        """
        try:
            rank, dims, _ = self._info(variable)
        except HDF4Error as e:
            raise FileReadError(f"Failed to get valid info on {variable}: {e}")

        if rank not in (2, 3) or dims[0] < 1 or dims[-1] < 1:
            raise FileReadError(
                f"Failed to read valid dimensions of {variable}: rank {rank} {dims}")

        return rank, dims

    def read_variable(self, variable: str, rank: int,
                      dims: List[int]) -> Tuple[str, np.ndarray]:
        """
        Read variable data as float64 with scale_factor applied.

        Args:
            variable: Name of the variable
            rank: Expected rank
            dims: Expected dimensions

        Returns:
            (units, data) where data has shape dims
        """
        try:
            sds = self._sd.select(variable)
        except HDF4Error as e:
            raise FileReadError(f"Failed to select {variable}: {e}")

        try:
            _, rank0, dims0, _, _ = sds.info()
            dims0 = [dims0] if rank0 == 1 else list(dims0)

            if rank0 != rank or dims0 != list(dims):
                raise FileReadError(
                    f"Failed to get matching info on {variable}: "
                    f"rank {rank0} {dims0} != rank {rank} {list(dims)}")

            data = np.asarray(sds.get(), dtype=np.float64)
            attributes = sds.attributes()
        except HDF4Error as e:
            raise FileReadError(f"Failed to read '{variable}': {e}")
        finally:
            sds.endaccess()

        scale_factor = attributes.get('scale_factor', 1.0)
        if scale_factor != 1.0:
            data *= scale_factor

        units = normalize_units(variable, attributes.get('units'))
        logger.debug(f"{variable} ({units}) shape={data.shape}")
        return units, data

    def read_vdata(self, variable: str, count: int) -> np.ndarray:
        """
        Read a field of the 'metadata' Vdata.

        Args:
            variable: Field name (e.g., 'Lidar_Data_Altitudes')
            count: Number of values expected

        Returns:
            float64 array of count values
        """
        try:
            if self._hdf is None:
                self._hdf = HDF(str(self.path), HC.READ)
            vs = self._hdf.vstart()
            try:
                vd = vs.attach(vs.find('metadata'))
                try:
                    vd.setfields(variable)
                    records = vd.read(1)
                finally:
                    vd.detach()
            finally:
                vs.end()
        except HDF4Error as e:
            raise FileReadError(f"Failed to read Vdata for '{variable}': {e}")

        values = np.asarray(records[0][0], dtype=np.float64).ravel()

        if values.size < count:
            raise FileReadError(
                f"Vdata '{variable}' has {values.size} values, expected {count}")

        return values[:count]


def open_file(path: Union[str, Path]) -> CALIPSOFile:
    """Open a CALIPSO HDF file for reading."""
    return CALIPSOFile(path)
