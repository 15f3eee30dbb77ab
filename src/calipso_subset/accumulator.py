"""
Multi-File Subset Accumulator
=============================

Reads a list of CALIPSO files, subsets each one to the requested time
range, lon-lat domain and elevation range, and spools the resulting scans
to a temporary file. Once all files are processed the scans are streamed
behind an ASCII header as big-endian binary arrays.

Per-file workflow:
1. Parse file name timestamp and check it is within the time range
2. Open file, read its bounds and check overlap with the domain
3. Read variable dimensions, reallocating buffers only if they changed
4. Read timestamps, coordinates, elevations and variable; QC filter
5. Compact to the domain and elevation range
6. Aggregate (L1 only)
7. Record scan metadata and append scan data to the spool

A failure abandons only the current file.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Callable, List, Optional, Tuple

import numpy as np

from .aggregation import aggregate_calipso_data
from .compaction import compact_points_in_subset
from .config import (Config, CALIPSOError, FileReadError, InvalidArgumentError,
                     product_type_of_file)
from .elevation import read_calipso_elevations
from .geometry import Bounds, bounds_overlap, compute_bounds, is_valid_elevation
from .hdf_reader import open_file
from .qc_filter import filter_calipso_data
from .read_data import (read_calipso_coordinates, read_calipso_timestamps,
                        read_calipso_variable, read_calipso_variable_dimensions)
from .swath import ScanMetadata, SwathBuffers, SwathScan
from .utils import (ProgressTracker, convert_timestamp, is_valid_yyyydddhhmm,
                    is_valid_yyyymmddhh, is_valid_yyyymmddhhmm, offset_timestamp)

logger = logging.getLogger(__name__)

# File names end with a timestamp: ...2006-07-04T23-21-01ZN.hdf
FILE_NAME_TIMESTAMP_OFFSET = 25


@dataclass
class SubsetRequest:
    """Arguments of a subset run."""
    files: List[str]
    variable: str
    yyyymmddhh: int
    hours: int
    description: str = ""
    tmpdir: str = Config.DEFAULT_TMPDIR
    domain: Bounds = field(default_factory=lambda: Bounds(-180.0, 180.0, -90.0, 90.0))
    minimum_elevation: float = Config.ELEVATION_RANGE[0]
    maximum_elevation: float = Config.ELEVATION_RANGE[1]
    minimum_cad: float = Config.DEFAULT_MINIMUM_CAD
    maximum_uncertainty: float = Config.DEFAULT_MAXIMUM_UNCERTAINTY

    def validate(self):
        """Raise InvalidArgumentError if any argument is out of range."""
        if not self.variable:
            raise InvalidArgumentError("Invalid variable name")
        # One ASCII header line.
        if not self.description.isascii() or '\n' in self.description:
            raise InvalidArgumentError(f"Invalid description {self.description!r}")
        if not is_valid_yyyymmddhh(self.yyyymmddhh):
            raise InvalidArgumentError(f"Invalid timestamp {self.yyyymmddhh}")
        if self.hours < 1:
            raise InvalidArgumentError(f"Invalid hours {self.hours}")
        if not self.domain.is_valid():
            raise InvalidArgumentError(f"Invalid domain {self.domain}")
        if not (is_valid_elevation(self.minimum_elevation) and
                is_valid_elevation(self.maximum_elevation) and
                self.minimum_elevation <= self.maximum_elevation):
            raise InvalidArgumentError(
                f"Invalid elevation range [{self.minimum_elevation}, "
                f"{self.maximum_elevation}]")
        low, high = Config.MINIMUM_CAD_RANGE
        if not low <= self.minimum_cad <= high:
            raise InvalidArgumentError(f"Invalid minimumCAD {self.minimum_cad}")
        low, high = Config.MAXIMUM_UNCERTAINTY_RANGE
        if not low <= self.maximum_uncertainty <= high:
            raise InvalidArgumentError(
                f"Invalid maximumUncertainty {self.maximum_uncertainty}")

    def time_range(self) -> Tuple[int, int]:
        """First and last yyyydddhhmm of the subset, inclusive."""
        first = convert_timestamp(self.yyyymmddhh * 100)
        return first, offset_timestamp(first, self.hours)


def data_file_timestamp(file_name: str) -> int:
    """
    Parse the timestamp of a CALIPSO file name.

    File names look like: CAL_LID_L1-Prov-V1-10.2006-07-04T23-21-01ZN.hdf

    Returns:
        yyyydddhhmm of the file

    Raises:
        FileReadError: If the name carries no valid timestamp
    """
    stamp = file_name[-FILE_NAME_TIMESTAMP_OFFSET:]

    try:
        yyyy = int(stamp[0:4])
        mo = int(stamp[5:7])
        dd = int(stamp[8:10])
        hh = int(stamp[11:13])
        mm = int(stamp[14:16])
        ss = int(stamp[17:19])
    except ValueError:
        raise FileReadError(f"Invalid file name timestamp '{file_name}'")

    yyyymmddhhmm = (((yyyy * 100 + mo) * 100 + dd) * 100 + hh) * 100 + mm

    if (len(file_name) < FILE_NAME_TIMESTAMP_OFFSET or
            not 1900 <= yyyy <= 3000 or not 0 <= ss <= 59 or
            not is_valid_yyyymmddhhmm(yyyymmddhhmm)):
        raise FileReadError(f"Invalid file name timestamp '{file_name}'")

    result = convert_timestamp(yyyymmddhhmm)

    if not is_valid_yyyydddhhmm(result):
        raise FileReadError(f"Invalid file name timestamp '{file_name}'")

    return result


def read_calipso_data(file, product: str, variable: str, scan: SwathScan,
                      minimum_cad: float, maximum_uncertainty: float) -> str:
    """
    Read, filter and process CALIPSO data for a variable into scan.

    Args:
        file: Open CALIPSO file
        product: Product type
        variable: Name of variable to read
        scan: Full-size scan to fill
        minimum_cad: Minimum CAD score magnitude
        maximum_uncertainty: Maximum acceptable uncertainty

    Returns:
        Units of the variable
    """
    points, levels = scan.points, scan.levels
    read_calipso_timestamps(file, points, scan.timestamps)
    read_calipso_coordinates(file, points, scan.longitudes, scan.latitudes)
    read_calipso_elevations(file, product, points, levels,
                            scan.elevations, scan.thicknesses)
    units, values = read_calipso_variable(file, product, variable, points, levels)
    scan.values[:] = values
    filter_calipso_data(file, product, variable, minimum_cad,
                        maximum_uncertainty, scan.elevations, scan.values)
    return units


class CALIPSOSubsetter:
    """
    Accumulates subset scans from many CALIPSO files.

    Usage:
        with CALIPSOSubsetter(request) as subsetter:
            if subsetter.run():
                subsetter.stream(sys.stdout.buffer)
    """

    def __init__(self, request: SubsetRequest,
                 opener: Callable[[str], object] = open_file):
        request.validate()
        self.request = request
        self.opener = opener
        self.buffers = SwathBuffers()
        self.scans: List[ScanMetadata] = []
        self.units = '-'
        self.has_thickness = False
        self.spool_path = (Path(request.tmpdir) /
                           f"{Config.TEMP_FILE_NAME}.{os.getpid():04d}")
        self._spool: Optional[BinaryIO] = None
        self.first_timestamp, self.last_timestamp = request.time_range()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        """Close and remove the spool file."""
        if self._spool is not None:
            self._spool.close()
            self._spool = None
        if self.spool_path.exists():
            self.spool_path.unlink()

    def run(self) -> bool:
        """
        Process every file of the request.

        Returns:
            True if at least one scan was written
        """
        files = self.request.files
        progress = ProgressTracker(len(files), "Subsetting CALIPSO files")

        for file_name in files:
            try:
                self.process_file(file_name)
            except (CALIPSOError, MemoryError) as e:
                logger.warning(f"Skipping {Path(file_name).name}: {e}")
                progress.update(skipped=True)
            else:
                progress.update()

        progress.finish()

        if self._spool is not None:
            self._spool.flush()

        logger.info(f"Wrote {len(self.scans)} scan(s) of {self.request.variable}")
        return len(self.scans) > 0

    def process_file(self, file_name: str) -> Optional[ScanMetadata]:
        """
        Subset one file, appending its scan to the spool.

        Returns:
            Metadata of the written scan, or None if the file lies outside
            the subset
        """
        request = self.request
        yyyydddhhmm = data_file_timestamp(file_name)

        if not self.first_timestamp <= yyyydddhhmm <= self.last_timestamp:
            logger.debug(f"{file_name} outside time range")
            return None

        product = product_type_of_file(Path(file_name).name)

        if product is None:
            raise FileReadError(f"Unknown CALIPSO product type of {file_name}")

        file = self.opener(file_name)
        try:
            if not bounds_overlap(file.read_bounds(), request.domain):
                logger.debug(f"{file_name} outside domain")
                return None

            points, levels = read_calipso_variable_dimensions(file, request.variable)
            has_thickness = Config.is_layered(product) and levels > 1

            if self.buffers.ensure_capacity(points, levels, has_thickness):
                logger.debug(f"Dimensions changed to {points} x {levels}")

            scan = self.buffers.scan()
            units = read_calipso_data(file, product, request.variable, scan,
                                      request.minimum_cad,
                                      request.maximum_uncertainty)
        except ValueError as e:
            raise FileReadError(f"Invalid data in {Path(file_name).name}: {e}") from e
        finally:
            file.close()

        subset = compact_points_in_subset(request.domain,
                                          request.minimum_elevation,
                                          request.maximum_elevation, scan)

        if subset is None:
            logger.info(f"No data of {Path(file_name).name} within subset")
            return None

        if product == Config.L1:
            subset = aggregate_calipso_data(subset,
                                            Config.L1_AGGREGATION_WINDOW,
                                            Config.L1_AGGREGATION_TARGET_LEVELS)

        metadata = ScanMetadata(yyyydddhhmm,
                                compute_bounds(subset.longitudes, subset.latitudes),
                                subset.points, subset.levels)
        self._write_scan(subset)
        self.scans.append(metadata)
        self.units = units
        self.has_thickness = has_thickness
        logger.info(f"✓ {Path(file_name).name}: {subset.points} x {subset.levels}")
        return metadata

    def _write_scan(self, scan: SwathScan):
        if self._spool is None:
            try:
                self._spool = open(self.spool_path, 'wb')
            except OSError as e:
                raise FileReadError(
                    f"Can't create temporary output file '{self.spool_path}': {e}")

        arrays = [scan.timestamps, scan.longitudes, scan.latitudes]
        arrays.extend(scan.cell_arrays())
        offset = self._spool.tell()

        try:
            for array in arrays:
                self._spool.write(np.ascontiguousarray(array, dtype='>f8').tobytes())
        except OSError as e:
            # Drop the partial scan so the spool holds whole scans only.
            self._spool.seek(offset)
            self._spool.truncate()
            raise FileReadError(
                f"Failed to write scan to '{self.spool_path}': {e}") from e

    def header(self) -> str:
        """ASCII header describing the streamed arrays."""
        request = self.request
        yyyymmddhh = request.yyyymmddhh
        thickness = self.has_thickness
        domain = request.domain
        lines = [
            Config.OUTPUT_FORMAT_TAG,
            request.description,
            f"{yyyymmddhh // 1000000:04d}-{yyyymmddhh // 10000 % 100:02d}-"
            f"{yyyymmddhh // 100 % 100:02d}T{yyyymmddhh % 100:02d}:00:00-0000",
            "# Dimensions: variables timesteps profiles:",
            f"{5 + thickness} {request.hours} {len(self.scans)}",
            "# Variable names:",
            " ".join(Config.GROUND_VARIABLES + ['Elevation', request.variable] +
                     (['Thickness'] if thickness else [])),
            "# Variable units:",
            " ".join(Config.GROUND_UNITS + ['m', self.units] +
                     (['m'] if thickness else [])),
            "# Domain: <min_lon> <min_lat> <max_lon> <max_lat>",
            f"{domain.longitude_minimum:g} {domain.latitude_minimum:g} "
            f"{domain.longitude_maximum:g} {domain.latitude_maximum:g}",
            "# MSB 64-bit integers (yyyydddhhmm) profile_timestamps[profiles] and",
            "# IEEE-754 64-bit reals profile_bounds[profiles][2=<lon,lat>]"
            "[2=<min,max>] and",
            "# MSB 64-bit integers profile_dimensions[profiles][2=<points,levels>] and",
            "# IEEE-754 64-bit reals profile_data_1[variables][points_1][levels]"
            " ... profile_data_S[variables][points_S][levels]:",
        ]
        return "\n".join(lines) + "\n"

    def stream(self, output: BinaryIO):
        """
        Write header, per-scan metadata arrays and spooled scan data.

        Args:
            output: Binary stream (e.g., sys.stdout.buffer)
        """
        if not self.scans:
            raise CALIPSOError("No scans to stream")

        output.write(self.header().encode('ascii'))

        timestamps = np.array([scan.yyyydddhhmm for scan in self.scans], dtype='>i8')
        bounds = np.array([scan.bounds.as_array() for scan in self.scans], dtype='>f8')
        dimensions = np.array([(scan.points, scan.levels) for scan in self.scans],
                              dtype='>i8')
        output.write(timestamps.tobytes())
        output.write(bounds.tobytes())
        output.write(dimensions.tobytes())

        if self._spool is not None:
            self._spool.close()
            self._spool = None

        with open(self.spool_path, 'rb') as spool:
            while True:
                chunk = spool.read(1 << 20)
                if not chunk:
                    break
                output.write(chunk)

        output.flush()


def subset_files(request: SubsetRequest, output: BinaryIO,
                 opener: Callable[[str], object] = open_file) -> int:
    """
    Run a subset request and stream the result.

    Returns:
        Number of scans streamed (0 means nothing was written)
    """
    with CALIPSOSubsetter(request, opener) as subsetter:
        if not subsetter.run():
            logger.error("No data within subset")
            return 0
        subsetter.stream(output)
        return len(subsetter.scans)


def read_file_list(list_file: str) -> List[str]:
    """Read the names of CALIPSO files, one per line."""
    with open(list_file) as f:
        files = [line.strip() for line in f if line.strip()]

    if not files:
        raise InvalidArgumentError(f"Invalid list file '{list_file}'")

    return files
