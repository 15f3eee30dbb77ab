"""
CALIPSO Lidar Swath Subsetting Package
======================================

Extracts, quality-filters and resamples CALIPSO lidar swath data into a
compact big-endian binary stream, subset to a time range, lon-lat box and
elevation range.

Stages:
1. Read - Timestamps, coordinates, elevations and the requested variable
2. Filter - Table-driven QC rules, uncertainty and near-surface filtering
3. Compact - Keep points inside the domain and levels inside the elevation range
4. Aggregate - Reduce L1 333m scans to 5km ground resolution
5. Stream - Spool scans and write them behind an ASCII header
"""

__version__ = '0.1.0'
__author__ = 'CALIPSO Subset Team'

from .config import (Config, ProductConfig, CALIPSOError, FileReadError,
                     InvalidArgumentError, NoDataError, product_type_of_file)
from .geometry import Bounds, GLOBAL_BOUNDS, compute_bounds, bounds_overlap
from .swath import SwathBuffers, SwathScan, ScanMetadata
from .compaction import compact_points_in_subset
from .aggregation import aggregate_calipso_data
from .qc_filter import FILTER_TABLE, FilterRule, filter_calipso_data
from .accumulator import CALIPSOSubsetter, SubsetRequest, subset_files

__all__ = [
    'Config',
    'ProductConfig',
    'CALIPSOError',
    'FileReadError',
    'InvalidArgumentError',
    'NoDataError',
    'product_type_of_file',
    'Bounds',
    'GLOBAL_BOUNDS',
    'compute_bounds',
    'bounds_overlap',
    'SwathBuffers',
    'SwathScan',
    'ScanMetadata',
    'compact_points_in_subset',
    'aggregate_calipso_data',
    'FILTER_TABLE',
    'FilterRule',
    'filter_calipso_data',
    'CALIPSOSubsetter',
    'SubsetRequest',
    'subset_files',
]
