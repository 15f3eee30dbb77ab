"""
Command-Line Interface
======================

Read a set of CALIPSO files and extract swath data subsetted by date-time
range, lon-lat rectangle, elevation range and variable. The subset is
written to stdout as an ASCII header followed by big-endian binary arrays.
"""

import argparse
import logging
import sys
from typing import List, Optional

from .accumulator import SubsetRequest, read_file_list, subset_files
from .config import Config, CALIPSOError
from .geometry import Bounds
from .utils import setup_logging

logger = logging.getLogger(__name__)

EPILOG = """
Example:
  calipso-subset \\
    -files testdata/files.txt \\
    -tmpdir testdata \\
    -desc https://eosweb.larc.nasa.gov/project/calipso/calipso_table,CALIPSOSubset \\
    -timestamp 2006070500 -hours 24 \\
    -variable Extinction_Coefficient_532 \\
    -domain -110 35 -75 36 -elevation 0 16000 > subset.xdr

Extinction over part of the US on July 5, 2006 not more than 16km above
mean sea level. Timestamp is in UTC (GMT).

Note: Profile_UTC_Time Longitude Latitude are only for ground points,
i.e., implicitly dimensioned with levels = 1.
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='calipso-subset',
        description="Subset CALIPSO lidar swath data by time, domain, "
                    "elevation and variable",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=EPILOG,
    )

    # Required arguments
    parser.add_argument('-files', required=True, metavar='FILE',
                        help='File listing CALIPSO HDF files to read, one per line')
    parser.add_argument('-tmpdir', default=Config.DEFAULT_TMPDIR,
                        help=f'Directory for temporary files (default: {Config.DEFAULT_TMPDIR})')
    parser.add_argument('-desc', required=True, metavar='DESCRIPTION',
                        help='Description written to the output header')
    parser.add_argument('-timestamp', type=int, required=True, metavar='YYYYMMDDHH',
                        help='First hour of the subset (UTC)')
    parser.add_argument('-hours', type=int, required=True,
                        help='Number of hours in the subset')
    parser.add_argument('-variable', required=True,
                        help='Name of variable to subset (e.g., Extinction_Coefficient_532)')

    # Optional subset
    parser.add_argument('-domain', type=float, nargs=4, default=[-180.0, -90.0, 180.0, 90.0],
                        metavar=('MIN_LON', 'MIN_LAT', 'MAX_LON', 'MAX_LAT'),
                        help='Lon-lat rectangle (default: -180 -90 180 90)')
    parser.add_argument('-elevation', type=float, nargs=2,
                        default=list(Config.ELEVATION_RANGE),
                        metavar=('MIN_ELEVATION', 'MAX_ELEVATION'),
                        help='Elevation range in meters above mean sea level '
                             '(default: -500 100000)')
    parser.add_argument('-minimumCAD', type=float, default=Config.DEFAULT_MINIMUM_CAD,
                        help='Minimum CAD score magnitude, e.g., 20 accepts '
                             '[20, 100] (default: 20)')
    parser.add_argument('-maximumUncertainty', type=float,
                        default=Config.DEFAULT_MAXIMUM_UNCERTAINTY,
                        help='Maximum absolute uncertainty, in the units of the '
                             'variable (default: 99)')

    parser.add_argument('-log-level', default='WARNING',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        help='Logging level, logs go to stderr (default: WARNING)')
    return parser


def request_from_arguments(args: argparse.Namespace) -> SubsetRequest:
    """Build and validate a SubsetRequest from parsed arguments."""
    request = SubsetRequest(
        files=read_file_list(args.files),
        variable=args.variable,
        yyyymmddhh=args.timestamp,
        hours=args.hours,
        description=args.desc,
        tmpdir=args.tmpdir,
        domain=Bounds.from_domain(*args.domain),
        minimum_elevation=args.elevation[0],
        maximum_elevation=args.elevation[1],
        minimum_cad=args.minimumCAD,
        maximum_uncertainty=args.maximumUncertainty,
    )
    request.validate()
    return request


def main(argv: Optional[List[str]] = None, output=None) -> int:
    """
    Run the subsetter.

    Returns:
        0 if at least one scan was written, else 1
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    try:
        request = request_from_arguments(args)
    except (CALIPSOError, OSError) as e:
        logger.error(f"Invalid/insufficient command-line arguments: {e}")
        return 1

    output = output if output is not None else sys.stdout.buffer
    scans = subset_files(request, output)
    return 0 if scans else 1


if __name__ == "__main__":
    sys.exit(main())
