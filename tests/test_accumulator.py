import io
import os

import numpy as np
import pytest

from calipso_subset.accumulator import (CALIPSOSubsetter, SubsetRequest,
                                        data_file_timestamp, read_file_list,
                                        subset_files)
from calipso_subset.config import Config, FileReadError, InvalidArgumentError
from calipso_subset.geometry import Bounds

from conftest import APRO_FILE_NAME, FakeCALIPSOFile, make_profile_file

M = Config.MISSING_VALUE
HEADER_LINES = 15
L1_FILE_NAME = "CAL_LID_L1-Prov-V1-10.2006-07-05T10-21-01ZN.hdf"
ALAY_FILE_NAME = "CAL_LID_L2_05kmALay-Prov-V3-01.2006-07-05T10-21-01ZN.hdf"


def make_request(tmp_path, files=(APRO_FILE_NAME,), **kwargs):
    arguments = dict(
        files=list(files),
        variable='Relative_Humidity',
        yyyymmddhh=2006070500,
        hours=24,
        description='https://eosweb.larc.nasa.gov/project/calipso,CALIPSOSubset',
        tmpdir=str(tmp_path),
        domain=Bounds.from_domain(-110.0, 35.0, -75.0, 36.0),
        minimum_elevation=0.0,
        maximum_elevation=16000.0,
    )
    arguments.update(kwargs)
    return SubsetRequest(**arguments)


def split_stream(stream):
    position = 0
    for _ in range(HEADER_LINES):
        position = stream.index(b"\n", position) + 1
    return stream[:position].decode('ascii').splitlines(), stream[position:]


def shot_times(points):
    return np.column_stack([np.full(points, 60705.4), np.full(points, 60705.5),
                            np.full(points, 60705.6)])


def make_l1_file(points=30, levels=210):
    """An L1-like file with a 100 m altitude grid over a flat surface."""
    return FakeCALIPSOFile(
        variables={
            'Profile_UTC_Time': shot_times(points),
            'Longitude': np.linspace(-100.0, -90.0, points)[:, np.newaxis],
            'Latitude': np.full((points, 1), 35.5),
            'Surface_Elevation': np.zeros((points, 1)),
            'Total_Attenuated_Backscatter_532': np.full((points, levels), 0.5),
            'QC_Flag': np.zeros((points, 1)),
        },
        vdata={'Lidar_Data_Altitudes': np.linspace(20.9, 0.0, levels)},
        bounds=Bounds(-135.0, -15.0, 30.0, 40.0),
    )


def make_layer_file():
    """A 05kmALay-like file of 4 points x 3 layers; points 1 and 2 are in the domain."""
    points, levels = 4, 3
    return FakeCALIPSOFile(
        variables={
            'Profile_UTC_Time': shot_times(points),
            'Longitude': np.array([[-130.0], [-100.0], [-90.0], [-20.0]]),
            'Latitude': np.full((points, 1), 35.5),
            # Sky-to-surface, km:
            'Layer_Base_Altitude': np.tile([6.0, 3.0, 1.0], (points, 1)),
            'Layer_Top_Altitude': np.tile([8.0, 4.0, 2.0], (points, 1)),
            'Feature_Optical_Depth_532': (10.0 * np.arange(points)[:, np.newaxis] +
                                          np.arange(levels)[np.newaxis, :]),
        },
        bounds=Bounds(-135.0, -15.0, 30.0, 40.0),
    )


class FailingSpool:
    """Wraps a spool file so that every write after the first fails."""

    def __init__(self, spool):
        self.spool = spool
        self.writes = 0

    def write(self, data):
        self.writes += 1
        if self.writes > 1:
            raise OSError(28, "No space left on device")
        return self.spool.write(data)

    def __getattr__(self, name):
        return getattr(self.spool, name)


def test_data_file_timestamp():
    assert data_file_timestamp(APRO_FILE_NAME) == 20061861021
    assert data_file_timestamp(
        "/data/CAL_LID_L1-Prov-V1-10.2006-07-04T23-21-01ZN.hdf") == 20061852321
    with pytest.raises(FileReadError):
        data_file_timestamp("CAL_LID_L1-Prov-V1-10.2006-02-30T23-21-01ZN.hdf")
    with pytest.raises(FileReadError):
        data_file_timestamp("short.hdf")


def test_request_validation(tmp_path):
    make_request(tmp_path).validate()
    with pytest.raises(InvalidArgumentError):
        make_request(tmp_path, yyyymmddhh=2006023000).validate()
    with pytest.raises(InvalidArgumentError):
        make_request(tmp_path, hours=0).validate()
    with pytest.raises(InvalidArgumentError):
        make_request(tmp_path, minimum_elevation=20000.0).validate()
    with pytest.raises(InvalidArgumentError):
        make_request(tmp_path, minimum_cad=101.0).validate()
    with pytest.raises(InvalidArgumentError):
        make_request(tmp_path, maximum_uncertainty=100.0).validate()
    with pytest.raises(InvalidArgumentError):
        make_request(tmp_path, domain=Bounds(10.0, 0.0, 0.0, 1.0)).validate()
    with pytest.raises(InvalidArgumentError):
        make_request(tmp_path, description='Données CALIPSO').validate()
    with pytest.raises(InvalidArgumentError):
        make_request(tmp_path, description='two\nlines').validate()


def test_time_range(tmp_path):
    assert make_request(tmp_path).time_range() == (20061860000, 20061870000)


def test_subset_stream(tmp_path):
    output = io.BytesIO()
    scans = subset_files(make_request(tmp_path), output,
                         opener=lambda name: make_profile_file())
    assert scans == 1

    header, body = split_stream(output.getvalue())
    assert header[0] == "CALIPSO 1.0"
    assert header[2] == "2006-07-05T00:00:00-0000"
    assert header[4] == "5 24 1"
    assert header[6] == ("Profile_UTC_Time Longitude Latitude Elevation "
                         "Relative_Humidity")
    assert header[8] == "yyyymmdd.f deg deg m percent"
    assert header[10] == "-110 35 -75 36"

    timestamps = np.frombuffer(body, dtype='>i8', count=1)
    bounds = np.frombuffer(body, dtype='>f8', count=4, offset=8)
    dimensions = np.frombuffer(body, dtype='>i8', count=2, offset=40)
    data = np.frombuffer(body, dtype='>f8', offset=56)

    assert timestamps[0] == 20061861021
    np.testing.assert_array_equal(bounds, [-105.0, -85.0, 35.5, 35.5])
    np.testing.assert_array_equal(dimensions, [3, 4])
    assert data.size == 3 * 3 + 2 * 3 * 4

    np.testing.assert_allclose(data[0:3], 20060705.5)
    np.testing.assert_array_equal(data[3:6], [-105.0, -95.0, -85.0])
    np.testing.assert_array_equal(data[6:9], 35.5)
    np.testing.assert_allclose(data[9:21].reshape(3, 4),
                               np.tile([100.0, 4000.0, 8000.0, 12000.0], (3, 1)))
    # File levels run sky-to-surface; the band near the surface is filtered.
    np.testing.assert_array_equal(data[21:33].reshape(3, 4),
                                  [[M, 23.0, 22.0, 21.0],
                                   [M, 33.0, 32.0, 31.0],
                                   [M, 43.0, 42.0, 41.0]])

    assert not any(name.startswith(Config.TEMP_FILE_NAME) for name in os.listdir(tmp_path))


def test_subset_skips_bad_and_outside_files(tmp_path):
    outside_time = "CAL_LID_L2_05kmAPro-Prov-V3-01.2006-07-07T10-21-01ZN.hdf"
    unknown = "CAL_LID_L3_Foo-Prov-V3-01.2006-07-05T10-21-01ZN.hdf"
    opened = []

    def opener(name):
        opened.append(name)
        return make_profile_file()

    request = make_request(tmp_path, files=[outside_time, unknown, APRO_FILE_NAME,
                                            APRO_FILE_NAME])
    with CALIPSOSubsetter(request, opener) as subsetter:
        assert subsetter.run()
        assert len(subsetter.scans) == 2
        assert [scan.points for scan in subsetter.scans] == [3, 3]
        output = io.BytesIO()
        subsetter.stream(output)

    assert opened == [APRO_FILE_NAME, APRO_FILE_NAME]
    header, _ = split_stream(output.getvalue())
    assert header[4] == "5 24 2"


def test_subset_domain_outside_file_bounds(tmp_path):
    request = make_request(tmp_path, domain=Bounds.from_domain(0.0, 0.0, 10.0, 10.0))
    output = io.BytesIO()
    assert subset_files(request, output, opener=lambda name: make_profile_file()) == 0
    assert output.getvalue() == b""


def test_subset_elevation_outside_profile(tmp_path):
    request = make_request(tmp_path, minimum_elevation=25000.0,
                           maximum_elevation=30000.0)
    output = io.BytesIO()
    assert subset_files(request, output, opener=lambda name: make_profile_file()) == 0


def test_read_file_list(tmp_path):
    list_file = tmp_path / "files.txt"
    list_file.write_text(f"{APRO_FILE_NAME}\n\n  other.hdf  \n")
    assert read_file_list(str(list_file)) == [APRO_FILE_NAME, "other.hdf"]

    empty = tmp_path / "empty.txt"
    empty.write_text("\n")
    with pytest.raises(InvalidArgumentError):
        read_file_list(str(empty))


def test_malformed_vector_file_keeps_earlier_scans(tmp_path):
    good = make_profile_file()
    good.variables['Relative_Humidity'] = good.variables['Relative_Humidity'][:, :3]
    malformed = make_profile_file()
    malformed.variables['Relative_Humidity'] = malformed.variables['Relative_Humidity'][:, :2]
    files = iter([good, malformed])

    request = make_request(tmp_path, files=[APRO_FILE_NAME, APRO_FILE_NAME],
                           variable='Relative_Humidity_X')
    output = io.BytesIO()
    assert subset_files(request, output, opener=lambda name: next(files)) == 1

    header, body = split_stream(output.getvalue())
    assert header[4] == "5 24 1"
    np.testing.assert_array_equal(np.frombuffer(body, dtype='>i8', count=2, offset=40),
                                  [3, 1])
    data = np.frombuffer(body, dtype='>f8', offset=56)
    assert data.size == 3 * 3 + 2 * 3
    np.testing.assert_array_equal(data[9:12], 0.0)
    np.testing.assert_array_equal(data[12:15], [20.0, 30.0, 40.0])


def test_failed_spool_write_drops_partial_scan(tmp_path):
    request = make_request(tmp_path)

    with CALIPSOSubsetter(request, lambda name: make_profile_file()) as subsetter:
        subsetter.process_file(APRO_FILE_NAME)
        size = subsetter._spool.tell()
        subsetter._spool = FailingSpool(subsetter._spool)

        with pytest.raises(FileReadError, match="No space left"):
            subsetter.process_file(APRO_FILE_NAME)

        assert len(subsetter.scans) == 1
        assert subsetter._spool.tell() == size

        subsetter._spool = subsetter._spool.spool
        output = io.BytesIO()
        subsetter.stream(output)

    header, body = split_stream(output.getvalue())
    assert header[4] == "5 24 1"
    assert len(body) == 56 + 8 * (3 * 3 + 2 * 3 * 4)


def test_subset_l1_aggregates_to_5km(tmp_path):
    request = make_request(tmp_path, files=[L1_FILE_NAME],
                           variable='Total_Attenuated_Backscatter_532',
                           minimum_elevation=-100.0, maximum_elevation=30000.0)
    output = io.BytesIO()
    assert subset_files(request, output, opener=lambda name: make_l1_file()) == 1

    header, body = split_stream(output.getvalue())
    assert header[4] == "5 24 1"
    assert header[6] == ("Profile_UTC_Time Longitude Latitude Elevation "
                         "Total_Attenuated_Backscatter_532")

    # 30 points in windows of 15, 210 levels in strides of round(210 / 100) = 2.
    longitudes = np.linspace(-100.0, -90.0, 30)[[7, 22]]
    bounds = np.frombuffer(body, dtype='>f8', count=4, offset=8)
    dimensions = np.frombuffer(body, dtype='>i8', count=2, offset=40)
    data = np.frombuffer(body, dtype='>f8', offset=56)

    np.testing.assert_array_equal(dimensions, [2, 105])
    np.testing.assert_allclose(bounds, [longitudes[0], longitudes[1], 35.5, 35.5])
    assert data.size == 3 * 2 + 2 * 2 * 105
    np.testing.assert_allclose(data[0:2], 20060705.5)
    np.testing.assert_allclose(data[2:4], longitudes)
    np.testing.assert_allclose(data[6:216].reshape(2, 105),
                               np.tile(50.0 + 200.0 * np.arange(105), (2, 1)),
                               atol=1e-6)
    np.testing.assert_array_equal(data[216:426], 0.5)


def test_subset_layered_streams_thickness(tmp_path):
    request = make_request(tmp_path, files=[ALAY_FILE_NAME],
                           variable='Feature_Optical_Depth_532')
    output = io.BytesIO()
    assert subset_files(request, output, opener=lambda name: make_layer_file()) == 1

    header, body = split_stream(output.getvalue())
    assert header[4] == "6 24 1"
    assert header[6] == ("Profile_UTC_Time Longitude Latitude Elevation "
                         "Feature_Optical_Depth_532 Thickness")
    assert header[8] == "yyyymmdd.f deg deg m - m"

    dimensions = np.frombuffer(body, dtype='>i8', count=2, offset=40)
    data = np.frombuffer(body, dtype='>f8', offset=56)

    np.testing.assert_array_equal(dimensions, [2, 3])
    assert data.size == 3 * 2 + 3 * 2 * 3
    np.testing.assert_array_equal(data[2:4], [-100.0, -90.0])
    # Layer middles and thicknesses, surface-to-sky:
    np.testing.assert_array_equal(data[6:12].reshape(2, 3),
                                  [[1500.0, 3500.0, 7000.0]] * 2)
    np.testing.assert_array_equal(data[12:18].reshape(2, 3),
                                  [[12.0, 11.0, 10.0], [22.0, 21.0, 20.0]])
    np.testing.assert_array_equal(data[18:24].reshape(2, 3),
                                  [[1000.0, 1000.0, 2000.0]] * 2)
