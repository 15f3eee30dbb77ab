import logging

import pytest

from calipso_subset.utils import (ProgressTracker, convert_timestamp, format_bytes,
                                  is_leap_year, is_valid_yyyydddhhmm,
                                  is_valid_yyyymmddhh, offset_timestamp,
                                  setup_logging)


def test_is_leap_year():
    assert is_leap_year(2008)
    assert is_leap_year(2000)
    assert not is_leap_year(1900)
    assert not is_leap_year(2006)


def test_is_valid_yyyymmddhh():
    assert is_valid_yyyymmddhh(2006070500)
    assert is_valid_yyyymmddhh(2008022923)
    assert not is_valid_yyyymmddhh(2006022900)
    assert not is_valid_yyyymmddhh(2006133100)
    assert not is_valid_yyyymmddhh(2006070524)


def test_convert_timestamp():
    assert convert_timestamp(200607052330) == 20061862330
    assert convert_timestamp(200801010000) == 20080010000
    assert convert_timestamp(200812312359) == 20083662359
    with pytest.raises(ValueError):
        convert_timestamp(200602300000)


def test_offset_timestamp():
    assert offset_timestamp(20061860000, 24) == 20061870000
    assert offset_timestamp(20061862330, 1) == 20061870030
    assert offset_timestamp(20063652300, 2) == 20070010100
    assert offset_timestamp(20083652300, 2) == 20083660100
    assert offset_timestamp(20061860000, 0) == 20061860000
    with pytest.raises(ValueError):
        offset_timestamp(20061860000, -1)


def test_is_valid_yyyydddhhmm():
    assert is_valid_yyyydddhhmm(20083662359)
    assert not is_valid_yyyydddhhmm(20063660000)
    assert not is_valid_yyyydddhhmm(20060000000)


def test_format_bytes():
    assert format_bytes(512) == "512.0 B"
    assert format_bytes(1536) == "1.5 KB"


def test_setup_logging_rejects_unknown_level():
    with pytest.raises(ValueError):
        setup_logging("CHATTY")


def test_progress_tracker_logs(caplog):
    with caplog.at_level(logging.INFO, logger="calipso_subset.utils"):
        progress = ProgressTracker(2, "Subsetting")
        progress.update()
        progress.update(skipped=True)
        progress.finish()
    assert progress.current == 2
    assert progress.skipped == 1
    assert "Subsetting: 2/2" in caplog.text
    assert "Subsetting completed: 1 of 2 files" in caplog.text
    assert "(1 skipped)" in caplog.text
