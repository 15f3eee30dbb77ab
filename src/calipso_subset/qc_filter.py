"""
QC Filtering
============

Nulls out data values that fail the NASA Langley CALIPSO team's
recommended quality criteria (2012-02-09).

Filtering of one variable applies, in order:
1. Every FILTER_TABLE rule matching (product, variable): data range plus an
   optional companion QC variable tested by bit mask or value range
2. The variable's *_Uncertainty companion, if present in the file
3. For multi-level L2 profile products, the band within 180m of the surface

Companion QC values may be propagated down each column (sky to surface)
before testing, so a bad reading invalidates every level beneath it.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np
from numba import njit

from .config import Config, FileReadError, NoDataError
from .read_data import read_calipso_variable

logger = logging.getLogger(__name__)

MASK_CLEAR_BITS_6_TO_9 = 0xfffffc3f
MASK_CLEAR_BITS_0_1_4 = 0xffffffec


@dataclass(frozen=True)
class FilterRule:
    """One acceptance rule for a (product, variable) pair."""
    product: str
    variable: str
    data_minimum: float
    data_maximum: float
    missing_value: float = Config.MISSING_VALUE
    qc_variable: Optional[str] = None
    qc_levels: int = 0            # 0 means the variable's levels
    qc_minimum: float = 0.0
    qc_maximum: float = 0.0
    mask: int = 0                 # Non-0: accept iff (qc & mask) == 0
    propagate_down: bool = False

    @property
    def is_cad(self) -> bool:
        return self.qc_variable == 'CAD_Score'


def _coefficient_rules(product: str, variable: str, minimum: float,
                       maximum: float, flag: str, cad: Tuple[float, float],
                       flag_range: Optional[Tuple[float, float]] = None):
    flag_minimum, flag_maximum = flag_range or (minimum, maximum)
    return (
        FilterRule(product, variable, flag_minimum, flag_maximum,
                   qc_variable=flag, mask=MASK_CLEAR_BITS_0_1_4),
        FilterRule(product, variable, minimum, maximum,
                   qc_variable='CAD_Score',
                   qc_minimum=cad[0], qc_maximum=cad[1]),
    )


def _build_filter_table() -> Tuple[FilterRule, ...]:
    aerosol = (-100.0, -20.0)
    cloud = (20.0, 100.0)
    apro = Config.L2_05KMAPRO
    cpro = Config.L2_05KMCPRO
    l1 = Config.L1
    rules = []

    for variable, maximum in (('Total_Attenuated_Backscatter_532', 2.5),
                              ('Perpendicular_Attenuated_Backscatter_532', 1.5),
                              ('Attenuated_Backscatter_1064', 2.5)):
        rules.append(FilterRule(l1, variable, -0.075, maximum,
                                qc_variable='QC_Flag', qc_levels=1,
                                mask=MASK_CLEAR_BITS_6_TO_9))

    rules.append(FilterRule(l1, 'Depolarization_Gain_Ratio_532', 0.0, 2.0))

    for variable, minimum, maximum, flag in (
            ('Extinction_Coefficient_532', -0.2, 2.5, 'Extinction_QC_Flag_532'),
            ('Extinction_Coefficient_1064', -0.2, 2.5, 'Extinction_QC_Flag_1064'),
            ('Total_Backscatter_Coefficient_532', -0.01, 0.125, 'Extinction_QC_Flag_532'),
            ('Perpendicular_Backscatter_Coefficient_532', -0.01, 0.025,
             'Extinction_QC_Flag_532'),
            ('Backscatter_Coefficient_1064', -0.01, 0.075, 'Extinction_QC_Flag_1064'),
            ('Particulate_Depolarization_Ratio_Profile_532', -0.05, 0.8,
             'Extinction_QC_Flag_532')):
        rules.extend(_coefficient_rules(apro, variable, minimum, maximum,
                                        flag, aerosol))

    # Cloud_Layer_Fraction in 05kmAPro is filtered out; use 05kmCPro instead.
    rules.append(FilterRule(apro, 'Aerosol_Layer_Fraction', 0.0, 30.0,
                            qc_variable='CAD_Score',
                            qc_minimum=aerosol[0], qc_maximum=aerosol[1]))
    rules.append(FilterRule(apro, 'Cloud_Layer_Fraction', 0.0, 30.0,
                            qc_variable='CAD_Score',
                            qc_minimum=cloud[0], qc_maximum=cloud[1]))

    for variable in ('Column_Optical_Depth_Aerosols_532',
                     'Column_Optical_Depth_Aerosols_1064',
                     'Column_Optical_Depth_Cloud_532'):
        rules.append(FilterRule(apro, variable, 0.0, 5.0))

    for variable, minimum, maximum, flag_range in (
            ('Extinction_Coefficient_532', -0.2, 2.5, None),
            ('Total_Backscatter_Coefficient_532', -0.01, 0.125, None),
            ('Perpendicular_Backscatter_Coefficient_532', -0.01, 0.025, None),
            ('Particulate_Depolarization_Ratio_Profile_532', -0.05, 0.8, (0.0, 1.0))):
        rules.extend(_coefficient_rules(cpro, variable, minimum, maximum,
                                        'Extinction_QC_Flag_532', cloud,
                                        flag_range))

    rules.append(FilterRule(cpro, 'Aerosol_Layer_Fraction', 0.0, 30.0,
                            qc_variable='CAD_Score',
                            qc_minimum=aerosol[0], qc_maximum=aerosol[1]))
    rules.append(FilterRule(cpro, 'Cloud_Layer_Fraction', 0.0, 30.0,
                            qc_variable='CAD_Score',
                            qc_minimum=cloud[0], qc_maximum=cloud[1]))

    for variable in ('Column_Optical_Depth_Cloud_532',
                     'Column_Optical_Depth_Aerosols_532'):
        rules.append(FilterRule(cpro, variable, 0.0, 5.0))

    return tuple(rules)


FILTER_TABLE = _build_filter_table()

# Variables with a *_Uncertainty companion:
UNCERTAINTY_VARIABLES = frozenset((
    'Depolarization_Gain_Ratio_532',
    'Column_Optical_Depth_Cloud_532',
    'Column_Optical_Depth_Aerosols_532',
    'Column_Optical_Depth_Aerosols_1064',
    'Column_Optical_Depth_Stratospheric_532',
    'Column_Optical_Depth_Stratospheric_1064',
    'Total_Backscatter_Coefficient_532',
    'Perpendicular_Backscatter_Coefficient_532',
    'Particulate_Depolarization_Ratio_Profile_532',
    'Extinction_Coefficient_532',
    'Backscatter_Coefficient_1064',
    'Extinction_Coefficient_1064',
    'Parallel_Column_Reflectance_532',
    'Perpendicular_Column_Reflectance_532',
    'Integrated_Attenuated_Backscatter_532',
    'Integrated_Attenuated_Backscatter_1064',
    'Integrated_Volume_Depolarization_Ratio',
    'Integrated_Attenuated_Total_Color_Ratio',
    'Measured_Two_Way_Transmittance_532',
    'Normalization_Constant_532',
    'Feature_Optical_Depth_532',
    'Feature_Optical_Depth_1064',
    'Integrated_Particulate_Color_Ratio',
    'Integrated_Particulate_Depolarization_Ratio',
    'Cirrus_Shape_Parameter',
    'Ice_Water_Path',
))


def rules_for(product: str, variable: str,
              table: Sequence[FilterRule] = FILTER_TABLE) -> Tuple[FilterRule, ...]:
    """All rules of table matching (product, variable), in table order."""
    return tuple(rule for rule in table
                 if rule.product == product and rule.variable == variable)


def cad_adjusted_range(rule: FilterRule, minimum_cad: float) -> Tuple[float, float]:
    """
    QC acceptance range of a rule, with CAD_Score bounds set by minimum_cad.

    Aerosol rules (negative scores) accept [-100, -minimum_cad], cloud rules
    accept [minimum_cad, 100].
    """
    if not rule.is_cad:
        return rule.qc_minimum, rule.qc_maximum
    if rule.qc_minimum < 0.0:
        return rule.qc_minimum, -minimum_cad
    return minimum_cad, rule.qc_maximum


def uncertainty_variable(variable: str) -> Optional[str]:
    """
    Name of the uncertainty companion of variable, if it has one.

    E.g., Extinction_Coefficient_532 -> Extinction_Coefficient_Uncertainty_532
    """
    if variable not in UNCERTAINTY_VARIABLES:
        return None

    for tag in ('_532', '_1064'):
        position = variable.find(tag)
        if position != -1:
            return variable[:position] + '_Uncertainty' + variable[position:]

    return variable + '_Uncertainty'


@njit(cache=True)
def propagate_bad_uncertainty_downward(uncertainty, bad_uncertainty):
    """
    Once bad_uncertainty is seen scanning from the top level down, every
    lower level is set to it.
    """
    points, levels = uncertainty.shape
    for point in range(points):
        found = False
        for level in range(levels - 1, -1, -1):
            if uncertainty[point, level] == bad_uncertainty:
                found = True
            if found:
                uncertainty[point, level] = bad_uncertainty


@njit(cache=True)
def propagate_worst_cad_score_downward(score):
    """
    Propagate the worst CAD score down each column.

    A magnitude above 100 is worse than any in-range score; among in-range
    scores the smaller magnitude is worse.
    """
    points, levels = score.shape
    for point in range(points):
        worst = score[point, levels - 1]
        for level in range(levels - 2, -1, -1):
            value = score[point, level]
            magnitude = abs(value)
            worst_magnitude = abs(worst)
            if worst_magnitude > 100.0:
                if magnitude > 100.0 and magnitude > worst_magnitude:
                    worst = value
            elif magnitude > 100.0:
                worst = value
            elif magnitude < worst_magnitude:
                worst = value
            score[point, level] = worst


@njit(cache=True)
def propagate_worst_qc_flag_downward(mask, qc):
    """
    Propagate the worst QC flag down each column.

    With a mask, flags compare by their masked unsigned 32-bit value,
    otherwise by raw value. A level worse than all above keeps its own flag.
    """
    points, levels = qc.shape
    for point in range(points):
        worst = qc[point, levels - 1]
        for level in range(levels - 2, -1, -1):
            value = qc[point, level]
            if mask:
                masked = np.int64(value) & 0xffffffff & mask
                worst_masked = np.int64(worst) & 0xffffffff & mask
                if masked > worst_masked:
                    worst = value
                else:
                    qc[point, level] = worst
            elif value > worst:
                worst = value
            else:
                qc[point, level] = worst


def filter_data(data_minimum: float, data_maximum: float, missing_value: float,
                data: np.ndarray, qc: Optional[np.ndarray] = None,
                qc_minimum: float = 0.0, qc_maximum: float = 0.0,
                mask: int = 0) -> int:
    """
    Filter data in place by value range and optional QC values.

    Args:
        data_minimum: Minimum valid data value
        data_maximum: Maximum valid data value
        missing_value: Value written to filtered cells
        data: Data of shape (points, levels)
        qc: Optional QC values of shape (points, 1) or (points, levels)
        qc_minimum: Minimum acceptable QC value (no mask)
        qc_maximum: Maximum acceptable QC value (no mask)
        mask: If non-0, accept iff (unsigned 32-bit qc & mask) == 0

    Returns:
        Number of unfiltered (non-missing) cells
    """
    if data_minimum > data_maximum:
        raise ValueError(f"Invalid data range [{data_minimum}, {data_maximum}]")

    present = data != missing_value
    reject = present & ((data < data_minimum) | (data > data_maximum))

    if qc is not None:
        qc = np.asarray(qc, dtype=np.float64)
        if qc.ndim == 1:
            qc = qc[:, np.newaxis]
        if qc.shape[0] != data.shape[0] or qc.shape[1] not in (1, data.shape[1]):
            raise ValueError(f"QC shape {qc.shape} does not match data {data.shape}")

        if mask:
            masked = qc.astype(np.int64) & 0xffffffff & mask
            qc_reject = masked != 0
        else:
            qc_reject = (qc < qc_minimum) | (qc > qc_maximum)

        reject |= present & qc_reject

    data[reject] = missing_value
    return int(np.count_nonzero(present & ~reject))


def propagate_qc_downward(qc_variable: str, mask: int, qc: np.ndarray):
    """Apply the propagation policy implied by the QC variable's name."""
    if '_Uncertainty' in qc_variable:
        propagate_bad_uncertainty_downward(qc, Config.BAD_UNCERTAINTY)
    elif qc_variable == 'CAD_Score':
        propagate_worst_cad_score_downward(qc)
    elif 'QC_Flag' in qc_variable:
        propagate_worst_qc_flag_downward(mask, qc)


def read_qc_values(file, product: str, qc_variable: str, points: int,
                   qc_levels: int) -> np.ndarray:
    """
    Read a companion QC variable with the expected number of levels.
    """
    rank, dims = file.read_dimensions(qc_variable)

    if rank not in (2, 3) or dims[0] != points:
        raise FileReadError(f"Invalid dimensions of QC variable {qc_variable}: {dims}")

    levels_read = dims[1]

    if levels_read != qc_levels:
        raise FileReadError(
            f"QC variable {qc_variable} has {levels_read} levels, expected {qc_levels}")

    _, qc = read_calipso_variable(file, product, qc_variable, points, levels_read)
    return qc


def filter_data_by_qc(file, product: str, rule: FilterRule, data: np.ndarray,
                      qc_minimum: Optional[float] = None,
                      qc_maximum: Optional[float] = None) -> int:
    """
    Filter data by a rule, reading its QC companion from file.

    Args:
        file: Open CALIPSO file
        product: Product type
        rule: Rule to apply
        data: Data of shape (points, levels), filtered in place
        qc_minimum: Overrides rule.qc_minimum (e.g., CAD adjusted)
        qc_maximum: Overrides rule.qc_maximum

    Returns:
        Number of unfiltered cells

    Raises:
        NoDataError: If no cells survive
    """
    points, levels = data.shape
    qc_minimum = rule.qc_minimum if qc_minimum is None else qc_minimum
    qc_maximum = rule.qc_maximum if qc_maximum is None else qc_maximum
    qc = None

    if rule.qc_variable:
        qc_levels = rule.qc_levels or levels
        qc = read_qc_values(file, product, rule.qc_variable, points, qc_levels)

        if rule.propagate_down:
            propagate_qc_downward(rule.qc_variable, rule.mask, qc)

    count = filter_data(rule.data_minimum, rule.data_maximum, rule.missing_value,
                        data, qc, qc_minimum, qc_maximum, rule.mask)

    logger.debug(f"{rule.variable} by {rule.qc_variable or 'range'}: "
                 f"{count} of {data.size} values remain")

    if count == 0:
        raise NoDataError(f"No valid {rule.variable} values remain after "
                          f"filtering by {rule.qc_variable or 'range'}")

    return count


def filter_data_near_surface(elevations: np.ndarray, data: np.ndarray,
                             near_surface: float = Config.NEAR_SURFACE_METERS,
                             missing_value: float = Config.MISSING_VALUE):
    """
    Null out data within near_surface meters of each point's surface.

    Scanning up from the surface level, cells are nulled until the first
    level above the threshold.
    """
    threshold = elevations[:, :1] + near_surface
    near = elevations <= threshold
    # Contiguous run from the surface only:
    band = np.logical_and.accumulate(near, axis=1)
    data[band] = missing_value


def filter_calipso_data(file, product: str, variable: str, minimum_cad: float,
                        maximum_uncertainty: float, elevations: np.ndarray,
                        data: np.ndarray,
                        table: Sequence[FilterRule] = FILTER_TABLE):
    """
    Filter CALIPSO data by applicable QC variables and rules.

    Args:
        file: Open CALIPSO file
        product: Product type
        variable: Name of the data variable
        minimum_cad: Minimum CAD score magnitude (e.g., 20 accepts [20, 100])
        maximum_uncertainty: Maximum acceptable absolute uncertainty, in the
            units of the data variable
        elevations: Elevations (meters), shape (points, levels)
        data: Data of shape (points, levels), filtered in place

    Raises:
        NoDataError: If a stage leaves no valid values
    """
    levels = data.shape[1]

    for rule in rules_for(product, variable, table):
        qc_minimum, qc_maximum = cad_adjusted_range(rule, minimum_cad)
        filter_data_by_qc(file, product, rule, data, qc_minimum, qc_maximum)

    uncertainty = uncertainty_variable(variable)

    if uncertainty and file.variable_exists(uncertainty):
        rule = FilterRule(product, variable, -1000.0, 1000.0,
                          qc_variable=uncertainty, qc_levels=levels,
                          qc_maximum=maximum_uncertainty)
        filter_data_by_qc(file, product, rule, data)

    if levels > 1 and product != Config.L1 and not Config.is_layered(product):
        filter_data_near_surface(elevations, data)
