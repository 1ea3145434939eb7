"""
Tests for column conversions and parameter binding.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from sqlcache.exceptions import CacheValidationError
from sqlcache.storage import columns

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)
NOW_MICROS = 1_704_067_200_000_000


class TestTimeConversion:
    def test_to_db_time(self) -> None:
        assert columns.to_db_time(NOW) == NOW_MICROS

    def test_to_db_time_keeps_microseconds(self) -> None:
        assert columns.to_db_time(NOW + timedelta(microseconds=7)) == NOW_MICROS + 7

    def test_from_db_time(self) -> None:
        value = columns.from_db_time(NOW_MICROS + 1_500_000)

        assert value == NOW + timedelta(seconds=1.5)
        assert value.tzinfo is not None

    def test_epoch(self) -> None:
        assert columns.to_db_time(datetime(1970, 1, 1, tzinfo=timezone.utc)) == 0


class TestSlidingConversion:
    @pytest.mark.parametrize(
        "window, seconds",
        [
            (None, None),
            (timedelta(seconds=10), 10),
            (timedelta(seconds=10, microseconds=1), 11),
            (timedelta(milliseconds=1), 1),
            (timedelta(hours=1), 3600),
        ],
    )
    def test_rounds_up_to_whole_seconds(self, window, seconds) -> None:
        assert columns.sliding_to_seconds(window) == seconds


class TestValidation:
    def test_key_at_limit(self) -> None:
        key = "k" * columns.CACHE_ITEM_ID_MAX_LENGTH
        assert columns.validate_key(key) == key

    def test_key_over_limit(self) -> None:
        with pytest.raises(CacheValidationError) as exc_info:
            columns.validate_key("k" * (columns.CACHE_ITEM_ID_MAX_LENGTH + 1))

        assert exc_info.value.context["length"] == columns.CACHE_ITEM_ID_MAX_LENGTH + 1

    @pytest.mark.parametrize("key", [None, 42, b"bytes"])
    def test_key_must_be_string(self, key) -> None:
        with pytest.raises(CacheValidationError):
            columns.validate_key(key)

    @pytest.mark.parametrize("key", ["\ud800", "ok\udfffok"])
    def test_key_with_lone_surrogate_rejected(self, key) -> None:
        with pytest.raises(CacheValidationError, match="UTF-8"):
            columns.validate_key(key)

    def test_non_ascii_key_is_allowed(self) -> None:
        assert columns.validate_key("clé-键-🔑") == "clé-键-🔑"

    def test_empty_key_is_allowed(self) -> None:
        assert columns.validate_key("") == ""

    def test_encode_bytes_like(self) -> None:
        assert columns.encode_value(b"a") == b"a"
        assert columns.encode_value(bytearray(b"b")) == b"b"
        assert columns.encode_value(memoryview(b"c")) == b"c"

    @pytest.mark.parametrize("value", [None, "text", 1])
    def test_encode_rejects_other_values(self, value) -> None:
        with pytest.raises(CacheValidationError):
            columns.encode_value(value)


class TestBinding:
    def test_bind_set(self) -> None:
        params = columns.bind_set(
            "k", b"v", NOW, timedelta(seconds=5), NOW + timedelta(seconds=20)
        )

        assert params == {
            "id": "k",
            "value": b"v",
            "utc_now": NOW_MICROS,
            "sliding_expiration_in_seconds": 5,
            "absolute_expiration": NOW_MICROS + 20_000_000,
        }

    def test_bind_set_without_absolute(self) -> None:
        params = columns.bind_set("k", b"v", NOW, timedelta(seconds=5), None)
        assert params["absolute_expiration"] is None

    def test_bind_get(self) -> None:
        assert columns.bind_get("k", NOW) == {"id": "k", "utc_now": NOW_MICROS}

    def test_bind_delete_expired(self) -> None:
        assert columns.bind_delete_expired(NOW) == {"utc_now": NOW_MICROS}

    def test_row_to_entry_info(self) -> None:
        row = ("k", NOW_MICROS + 10_000_000, 10, None, b"v")

        info = columns.row_to_entry_info(row)

        assert info.key == "k"
        assert info.value == b"v"
        assert info.expires_at == NOW + timedelta(seconds=10)
        assert info.sliding_expiration == timedelta(seconds=10)
        assert info.absolute_expiration is None
