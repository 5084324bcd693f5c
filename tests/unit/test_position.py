"""Unit tests for oplog positions."""

import pytest
from datetime import datetime, timedelta, timezone
from bson import Timestamp

from oplog_tailer.connectors.cdc.errors import ConfigError
from oplog_tailer.connectors.cdc.position import (
    position_of, time_of, encode_position, decode_position, position_before
)


class TestPositionOf:
    """Test position_of and time_of."""
    
    def test_no_record_has_no_position(self):
        assert position_of(None) is None
    
    def test_returns_ts_field_unchanged(self):
        ts = Timestamp(100, 1)
        record = {"ts": ts, "ns": "app.users", "op": "i"}
        assert position_of(record) is ts
    
    def test_no_record_has_no_time(self):
        assert time_of(None) is None
    
    def test_time_is_utc_seconds_of_position(self):
        record = {"ts": Timestamp(1700000000, 7)}
        assert time_of(record) == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
    
    def test_positions_order_by_seconds_then_ordinal(self):
        assert Timestamp(100, 0) < Timestamp(100, 1) < Timestamp(101, 0)


class TestPositionEncoding:
    """Test the text form of positions."""
    
    def test_encode(self):
        assert encode_position(Timestamp(100, 3)) == "100:3"
    
    def test_decode(self):
        assert decode_position("100:3") == Timestamp(100, 3)
    
    def test_decode_seconds_only(self):
        assert decode_position("100") == Timestamp(100, 0)
    
    def test_decode_what_encode_wrote(self):
        ts = Timestamp(1700000000, 42)
        assert decode_position(encode_position(ts)) == ts
    
    @pytest.mark.parametrize("text", ["", "abc", "1:x", "-5:0"])
    def test_decode_invalid(self, text):
        with pytest.raises(ConfigError, match="Invalid oplog position"):
            decode_position(text)
    
    def test_encode_rejects_non_timestamp(self):
        with pytest.raises(TypeError):
            encode_position("100:3")


class TestPositionBefore:
    """Test the exclusive upper bound used for historical lookups."""
    
    def test_epoch_seconds(self):
        assert position_before(25) == Timestamp(26, 0)
    
    def test_fractional_seconds_truncate(self):
        assert position_before(25.9) == Timestamp(26, 0)
    
    def test_naive_datetime_is_utc(self):
        assert position_before(datetime(1970, 1, 1, 0, 0, 25)) == Timestamp(26, 0)
    
    def test_aware_datetime(self):
        when = datetime(1970, 1, 1, 1, 0, 25, tzinfo=timezone(timedelta(hours=1)))
        assert position_before(when) == Timestamp(26, 0)
    
    def test_rejects_other_types(self):
        with pytest.raises(TypeError):
            position_before("25")
