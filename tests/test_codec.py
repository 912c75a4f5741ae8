"""Tests for the registry value codec."""

from types import SimpleNamespace

import pytest

from windows_qos_mcp.errors import ValidationError
from windows_qos_mcp.registry import codec


class TestDecode:
    def test_none_is_empty(self):
        assert codec.decode(None) == ""

    def test_string_passes_through(self):
        assert codec.decode("63") == "63"

    def test_string_keeps_wildcard(self):
        assert codec.decode("*") == "*"

    def test_utf16_bytes_trailing_nulls_trimmed(self):
        raw = "UDP".encode("utf-16le") + b"\x00\x00\x00\x00"
        assert codec.decode(raw) == "UDP"

    def test_bytearray_and_memoryview(self):
        raw = "5060".encode("utf-16le") + b"\x00\x00"
        assert codec.decode(bytearray(raw)) == "5060"
        assert codec.decode(memoryview(raw)) == "5060"

    def test_odd_length_bytes_return_empty(self):
        assert codec.decode(b"\x41") == ""

    def test_int_is_decimal_text(self):
        assert codec.decode(63) == "63"

    def test_bool_is_digit(self):
        assert codec.decode(True) == "1"

    def test_multi_sz_joined(self):
        assert codec.decode(["a", "b"]) == "a,b"

    def test_wrapper_with_data_attribute(self):
        wrapped = SimpleNamespace(data="C:\\app.exe".encode("utf-16le") + b"\x00\x00")
        assert codec.decode(wrapped) == "C:\\app.exe"

    def test_wrapper_with_value_attribute(self):
        assert codec.decode(SimpleNamespace(value=None)) == ""

    def test_unstringable_object_returns_empty(self):
        class Broken:
            def __str__(self):
                raise RuntimeError("boom")

        assert codec.decode(Broken()) == ""

    def test_same_content_same_result(self):
        text = "Remote Port"
        forms = [text, text.encode("utf-16le") + b"\x00\x00", SimpleNamespace(value=text)]
        assert {codec.decode(f) for f in forms} == {text}


class TestDecodeText:
    def test_reg_sz(self):
        assert codec.decode_text("REG_SZ", "UDP") == "UDP"

    def test_empty_value(self):
        assert codec.decode_text("REG_SZ", "") == ""

    def test_dword_hex_matches_native_int(self):
        assert codec.decode_text("REG_DWORD", "0x3f") == codec.decode(63)

    def test_binary_matches_native_bytes(self):
        raw = "TCP".encode("utf-16le") + b"\x00\x00"
        assert codec.decode_text("REG_BINARY", raw.hex().upper()) == codec.decode(raw)

    def test_multi_sz_matches_native_list(self):
        assert codec.decode_text("REG_MULTI_SZ", "a\\0b") == codec.decode(["a", "b"])

    def test_bad_binary_returns_empty(self):
        assert codec.decode_text("REG_BINARY", "zz") == ""


class TestEncode:
    def test_attribute_name(self):
        encoded = codec.encode("dscp_value", "63")
        assert encoded.name == "DSCP Value"
        assert encoded.reg_type == "REG_SZ"
        assert encoded.data == "63"

    def test_registry_value_name(self):
        assert codec.encode("Remote Port", 5060).data == "5060"

    def test_none_becomes_empty_string(self):
        assert codec.encode("protocol", None).data == ""

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError):
            codec.encode("Color", "red")

    @pytest.mark.parametrize("value", ["63", "*", "", "C:\\Program Files\\App\\app.exe", "1.0"])
    def test_decode_of_encoded_is_identity(self, value):
        assert codec.decode(codec.encode("application_name", value).data) == value

    def test_to_str_or_empty(self):
        assert codec.to_str_or_empty(None) == ""
        assert codec.to_str_or_empty(8) == "8"
