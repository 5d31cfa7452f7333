"""
Tests for BIP68 sequence encoding and date parsing.
"""

import pytest

from bitpolicy.timelock import (
    SEQUENCE_TYPE_FLAG, BlockHeight, BlockTime, TimelockValueError,
    duration_to_sequence, parse_datetime,
)


class TestDurationToSequence:
    """Relative timelock encoding."""

    def test_blocks(self):
        assert duration_to_sequence(BlockHeight(144)) == 144

    def test_time_rounds_up(self):
        assert duration_to_sequence(BlockTime(1209600)) == 2363 | SEQUENCE_TYPE_FLAG
        assert duration_to_sequence(BlockTime(1)) == 1 | SEQUENCE_TYPE_FLAG
        assert duration_to_sequence(BlockTime(512)) == 1 | SEQUENCE_TYPE_FLAG
        assert duration_to_sequence(BlockTime(513)) == 2 | SEQUENCE_TYPE_FLAG

    def test_heightwise(self):
        assert duration_to_sequence(BlockTime(86400, heightwise=True)) == 144
        assert duration_to_sequence(BlockTime(601, heightwise=True)) == 2

    def test_zero_rejected(self):
        with pytest.raises(TimelockValueError):
            duration_to_sequence(BlockHeight(0))
        with pytest.raises(TimelockValueError):
            duration_to_sequence(BlockTime(0))

    def test_too_long(self):
        assert duration_to_sequence(BlockHeight(0xFFFF)) == 0xFFFF
        with pytest.raises(TimelockValueError):
            duration_to_sequence(BlockHeight(0x10000))
        with pytest.raises(TimelockValueError):
            duration_to_sequence(BlockTime(512 * 0x10000 + 1))

    def test_display(self):
        assert str(BlockHeight(6)) == "6 blocks"
        assert str(BlockTime(60)) == "60 seconds"
        assert str(BlockTime(600, True)) == "600 seconds heightwise"


class TestParseDatetime:
    """Absolute timelock dates."""

    def test_date(self):
        assert parse_datetime("2030-01-01") == 1893456000

    def test_date_and_time(self):
        assert parse_datetime("2030-01-01 12:30") == 1893456000 + 45000
        assert parse_datetime("2030-01-01T12:30:15") == 1893456000 + 45015

    def test_before_locktime_threshold(self):
        with pytest.raises(TimelockValueError):
            parse_datetime("1980-01-01")

    def test_unrecognised(self):
        with pytest.raises(TimelockValueError):
            parse_datetime("next tuesday")
