"""Tests for byte formatting and address helpers."""

import pytest
from beartype.roar import BeartypeCallHintParamViolation

from section_tracker import format_bytes, format_bytes_map, ip_in_list, remote_addr


class TestFormatBytes:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (0, "0 B"),
            (1, "1 B"),
            (1023, "1023 B"),
            (1024, "1 KB"),
            (1536, "1.5 KB"),
            (18 * 1024**2, "18 MB"),
            (1_567_000_000, "1.46 GB"),
            (1024**8, "1 YB"),
            (1024**9, "1024 YB"),
        ],
    )
    def test_units(self, value, expected):
        assert format_bytes(value) == expected

    def test_negative_keeps_sign(self):
        assert format_bytes(-2048) == "-2 KB"

    def test_precision(self):
        assert format_bytes(1_567_000_000, precision=0) == "1 GB"
        assert format_bytes(1_567_000_000, precision=4) == "1.4594 GB"

    def test_negative_precision_raises(self):
        with pytest.raises(ValueError, match="non-negative"):
            format_bytes(10, precision=-1)

    def test_beartype_rejects_string(self):
        with pytest.raises(BeartypeCallHintParamViolation):
            format_bytes("10")


class TestFormatBytesMap:
    def test_formats_nested_numbers(self):
        data = {
            "memory": {"start": 1024, "end": 3072, "diff": 2048},
            "label": "Main",
        }
        assert format_bytes_map(data) == {
            "memory": {"start": "1 KB", "end": "3 KB", "diff": "2 KB"},
            "label": "Main",
        }

    def test_booleans_are_copied(self):
        assert format_bytes_map({"flag": True}) == {"flag": True}

    def test_input_not_mutated(self):
        data = {"start": 1024}
        format_bytes_map(data)
        assert data == {"start": 1024}


class TestRemoteAddr:
    def test_default_is_localhost(self):
        assert remote_addr({}) == "127.0.0.1"

    def test_header_priority(self):
        environ = {
            "HTTP_CLIENT_IP": "10.0.0.1",
            "HTTP_X_FORWARDED_FOR": "10.0.0.2",
            "REMOTE_ADDR": "10.0.0.3",
        }
        assert remote_addr(environ) == "10.0.0.1"
        del environ["HTTP_CLIENT_IP"]
        assert remote_addr(environ) == "10.0.0.2"

    def test_forwarded_list_uses_first(self):
        assert remote_addr({"HTTP_X_FORWARDED_FOR": " 203.0.113.5 , 10.0.0.1"}) == "203.0.113.5"

    def test_ipv6(self):
        assert remote_addr({"REMOTE_ADDR": "::1"}) == "::1"

    def test_invalid_address_raises(self):
        with pytest.raises(ValueError, match="Invalid IP"):
            remote_addr({"REMOTE_ADDR": "not-an-ip"})


class TestIpInList:
    def test_single_and_many(self):
        assert ip_in_list("1.1.1.1", ["1.1.1.1"])
        assert ip_in_list(["2.2.2.2", "1.1.1.1"], ("1.1.1.1",))
        assert not ip_in_list(["2.2.2.2"], ["1.1.1.1"])

    def test_empty(self):
        assert not ip_in_list([], ["1.1.1.1"])
        assert not ip_in_list("1.1.1.1", [])
