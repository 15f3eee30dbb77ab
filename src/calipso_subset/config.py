"""
Configuration file for CALIPSO lidar subsetting
================================================

Contains constants, product definitions and the exception hierarchy used
across all processing stages.
"""

import os
from dataclasses import dataclass
from typing import Optional


class CALIPSOError(Exception):
    """Base class for failures that abandon the current file."""


class FileReadError(CALIPSOError):
    """A file, variable, dimension or attribute could not be read."""


class InvalidArgumentError(CALIPSOError):
    """A caller-supplied argument is out of range or malformed."""


class NoDataError(CALIPSOError):
    """A processing stage left no valid data values."""


@dataclass(frozen=True)
class ProductConfig:
    """Configuration for a specific CALIPSO product type."""
    name: str
    file_tag: str
    layered: bool
    description: str


class Config:
    """Global configuration for the CALIPSO subset workflow."""

    # ========================
    # Data Values
    # ========================
    MISSING_VALUE = -9999.0
    KILOMETERS_TO_METERS = 1000.0

    # Profile_UTC_Time is stored as yymmdd.f
    YEAR_2000_OFFSET = 20000000.0

    # ========================
    # Valid Ranges
    # ========================
    LONGITUDE_RANGE = (-180.0, 180.0)
    LATITUDE_RANGE = (-90.0, 90.0)
    ELEVATION_RANGE = (-500.0, 1e5)  # meters above mean sea level
    MINIMUM_CAD_RANGE = (0.0, 100.0)
    MAXIMUM_UNCERTAINTY_RANGE = (0.0, 99.0)

    # ========================
    # Filtering Settings
    # ========================
    # 2012-02-09 NASA Langley CALIPSO Team: L2 profile data within 180m of
    # the surface is possibly invalid.
    NEAR_SURFACE_METERS = 180.0
    BAD_UNCERTAINTY = 99.99
    DEFAULT_MINIMUM_CAD = 20.0          # Accepts |score| in [20, 100]
    DEFAULT_MAXIMUM_UNCERTAINTY = 99.0  # Same units as the data variable

    # ========================
    # Aggregation Settings
    # ========================
    L1_AGGREGATION_WINDOW = 15          # 333m to 5km ground points
    L1_AGGREGATION_TARGET_LEVELS = 100  # Curtain height pixels

    # ========================
    # Output Settings
    # ========================
    OUTPUT_FORMAT_TAG = "CALIPSO 1.0"
    GROUND_VARIABLES = ['Profile_UTC_Time', 'Longitude', 'Latitude']
    GROUND_UNITS = ['yyyymmdd.f', 'deg', 'deg']

    # ========================
    # File Paths
    # ========================
    TEMP_FILE_NAME = "junk_CALIPSOSubset"
    DEFAULT_TMPDIR = os.environ.get('CALIPSO_TMPDIR', '/tmp')

    # ========================
    # Products
    # ========================
    L1 = 'L1'
    L2_05KMAPRO = 'L2_05KMAPRO'
    L2_05KMCPRO = 'L2_05KMCPRO'
    L2_05KMALAY = 'L2_05KMALAY'
    L2_05KMCLAY = 'L2_05KMCLAY'
    L2_01KMCLAY = 'L2_01KMCLAY'
    L2_333MCLAY = 'L2_333MCLAY'
    L2_VFM = 'L2_VFM'

    PRODUCTS = {
        L1: ProductConfig(
            L1, "CAL_LID_L1", False,
            "Level 1B 333m attenuated backscatter profiles"),
        L2_05KMAPRO: ProductConfig(
            L2_05KMAPRO, "CAL_LID_L2_05kmAPro", False,
            "Level 2 5km aerosol profiles"),
        L2_05KMCPRO: ProductConfig(
            L2_05KMCPRO, "CAL_LID_L2_05kmCPro", False,
            "Level 2 5km cloud profiles"),
        L2_05KMALAY: ProductConfig(
            L2_05KMALAY, "CAL_LID_L2_05kmALay", True,
            "Level 2 5km aerosol layers"),
        L2_05KMCLAY: ProductConfig(
            L2_05KMCLAY, "CAL_LID_L2_05kmCLay", True,
            "Level 2 5km cloud layers"),
        L2_01KMCLAY: ProductConfig(
            L2_01KMCLAY, "CAL_LID_L2_01kmCLay", True,
            "Level 2 1km cloud layers"),
        L2_333MCLAY: ProductConfig(
            L2_333MCLAY, "CAL_LID_L2_333mCLay", True,
            "Level 2 333m cloud layers"),
        L2_VFM: ProductConfig(
            L2_VFM, "CAL_LID_L2_VFM", False,
            "Level 2 vertical feature mask"),
    }

    @classmethod
    def get_product_config(cls, product: str) -> Optional[ProductConfig]:
        """
        Get configuration for a product type.

        Args:
            product: Product type name (e.g., 'L1', 'L2_05KMAPRO')

        Returns:
            ProductConfig object or None if not found
        """
        return cls.PRODUCTS.get(product.upper())

    @classmethod
    def is_layered(cls, product: str) -> bool:
        config = cls.get_product_config(product)
        return config is not None and config.layered


def product_type_of_file(file_name: str) -> Optional[str]:
    """
    Determine the CALIPSO product type from a file name.

    File names look like: CAL_LID_L2_05kmAPro-Prov-V3-01.2006-07-04T23-21-01ZN.hdf

    Args:
        file_name: Name (or path) of a CALIPSO HDF file

    Returns:
        Product type name or None if the name is not a CALIPSO product
    """
    for product, config in Config.PRODUCTS.items():
        if config.file_tag in file_name:
            return product
    return None
