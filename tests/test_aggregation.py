import numpy as np
import pytest

from calipso_subset.aggregation import (aggregate_calipso_data, compute_aggregate_levels,
                                        compute_stride)
from calipso_subset.config import Config
from calipso_subset.swath import SwathBuffers

M = Config.MISSING_VALUE


def make_scan(points, levels):
    buffers = SwathBuffers()
    buffers.ensure_capacity(points, levels, False)
    scan = buffers.scan()
    scan.timestamps[:] = 20060705.0 + np.arange(points)
    scan.longitudes[:] = -100.0 + np.arange(points)
    scan.latitudes[:] = 30.0 + np.arange(points)
    scan.elevations[:] = 10.0 * np.arange(levels)[np.newaxis, :]
    scan.values[:] = (np.arange(points)[:, np.newaxis] * levels +
                      np.arange(levels)[np.newaxis, :])
    return scan


def test_compute_stride():
    assert compute_stride(208, 100) == 2
    assert compute_stride(583, 100) == 6
    assert compute_stride(50, 100) == 1
    assert compute_stride(50, 0) == 1


def test_compute_aggregate_levels():
    assert compute_aggregate_levels(208, 100) == (104, 2)
    assert compute_aggregate_levels(583, 100) == (98, 6)
    assert compute_aggregate_levels(33, 100) == (33, 1)
    with pytest.raises(ValueError):
        compute_aggregate_levels(0, 100)


def test_aggregation_scenario():
    scan = make_scan(33, 208)
    result = aggregate_calipso_data(scan, 15, 100)

    assert result.points == 3
    assert result.levels == 104
    # Middle points of windows [0, 15), [15, 30), [30, 33):
    np.testing.assert_array_equal(result.longitudes, -100.0 + np.array([7, 22, 31]))
    np.testing.assert_array_equal(result.timestamps, 20060705.0 + np.array([7, 22, 31]))


def test_aggregation_conserves_means():
    points, levels = 7, 5
    scan = make_scan(points, levels)
    expected_values = scan.values.copy()
    result = aggregate_calipso_data(scan, 3, 2)

    # Windows of 3, 3, 1 points and level stride round(5/2) = 3: 3, 2 levels.
    assert (result.points, result.levels) == (3, 2)
    np.testing.assert_allclose(result.values[0, 0], expected_values[0:3, 0:3].mean())
    np.testing.assert_allclose(result.values[1, 1], expected_values[3:6, 3:5].mean())
    np.testing.assert_allclose(result.values[2, 0], expected_values[6:7, 0:3].mean())
    np.testing.assert_allclose(result.elevations[0], [10.0, 35.0])


def test_aggregation_ignores_missing_values():
    scan = make_scan(4, 2)
    scan.values[:] = [[1.0, M], [M, M], [3.0, M], [M, M]]
    result = aggregate_calipso_data(scan, 2, 2)

    assert (result.points, result.levels) == (2, 2)
    np.testing.assert_array_equal(result.values, [[1.0, M], [3.0, M]])


def test_aggregation_without_window_is_noop():
    scan = make_scan(5, 3)
    values = scan.values.copy()
    assert aggregate_calipso_data(scan, 1, 100) is scan
    np.testing.assert_array_equal(scan.values, values)


def test_aggregation_averages_thicknesses():
    buffers = SwathBuffers()
    buffers.ensure_capacity(4, 2, True)
    scan = buffers.scan()
    scan.timestamps[:] = 20060705.0
    scan.longitudes[:] = -100.0
    scan.latitudes[:] = 30.0
    scan.elevations[:] = np.arange(8.0).reshape(4, 2)
    scan.values[:] = 1.0
    scan.thicknesses[:] = [[10.0, 20.0], [30.0, 40.0], [50.0, 60.0], [70.0, 80.0]]

    result = aggregate_calipso_data(scan, 2, 100)

    assert (result.points, result.levels) == (2, 2)
    np.testing.assert_array_equal(result.elevations, [[1.0, 2.0], [5.0, 6.0]])
    np.testing.assert_array_equal(result.thicknesses, [[20.0, 30.0], [60.0, 70.0]])
