from __future__ import annotations

import json

from app.utils.address import (
    address_in_data,
    normalize_address,
    pad_evm_address,
    validate_evm_address,
)
from app.utils.errors import (
    InvalidAddress,
    InvalidBlockRange,
    RegistryUnavailable,
    status_for,
)
from app.utils.sse import format_sse


class TestValidateEvmAddress:
    def test_valid_lowercase(self):
        assert validate_evm_address("0x" + "a" * 40) is True

    def test_valid_mixed_case(self):
        assert validate_evm_address("0xABCdef1234567890abcdef1234567890ABCDEF12") is True

    def test_missing_0x(self):
        assert validate_evm_address("a" * 40) is False

    def test_too_short(self):
        assert validate_evm_address("0x123") is False
        assert validate_evm_address("0x" + "a" * 39) is False

    def test_too_long(self):
        assert validate_evm_address("0x" + "a" * 41) is False

    def test_invalid_chars(self):
        assert validate_evm_address("0x" + "g" * 40) is False

    def test_not_an_address(self):
        assert validate_evm_address("not-an-address") is False

    def test_empty_string(self):
        assert validate_evm_address("") is False


class TestPadEvmAddress:
    def test_pads_to_32_bytes(self):
        padded = pad_evm_address("0x" + "b" * 40)
        assert padded == "0x" + "0" * 24 + "b" * 40
        assert len(padded) == 66

    def test_lowercases(self):
        assert pad_evm_address("0x" + "B" * 40) == "0x" + "0" * 24 + "b" * 40


class TestNormalizeAddress:
    def test_strips_and_lowercases(self):
        assert normalize_address("  0xABCDEF" + "0" * 34 + "  ") == "0xabcdef" + "0" * 34


class TestAddressInData:
    def test_abi_encoded_word_matches(self):
        wallet = "0x" + "c" * 40
        data = "0x" + "0" * 64 + "0" * 24 + "c" * 40
        assert address_in_data(wallet, data) is True

    def test_case_insensitive(self):
        wallet = "0x" + "c" * 40
        data = "0x" + "0" * 24 + "C" * 40
        assert address_in_data(wallet, data) is True

    def test_absent(self):
        assert address_in_data("0x" + "c" * 40, "0x" + "0" * 128) is False

    def test_empty_data(self):
        assert address_in_data("0x" + "c" * 40, "") is False
        assert address_in_data("0x" + "c" * 40, None) is False


class TestErrorStatus:
    def test_invalid_address_is_400(self):
        assert status_for(InvalidAddress("0x1")) == 400

    def test_invalid_range_is_400(self):
        assert status_for(InvalidBlockRange(10, 5)) == 400

    def test_registry_unavailable_is_503(self):
        assert status_for(RegistryUnavailable("down")) == 503

    def test_invalid_address_message(self):
        assert "0x1" in str(InvalidAddress("0x1"))


class TestFormatSse:
    def test_frame_layout(self):
        frame = format_sse("progress", {"current": 1, "total": 2})
        assert frame.startswith("event: progress\n")
        assert frame.endswith("\n\n")
        data_line = frame.split("\n")[1]
        assert data_line.startswith("data: ")
        assert json.loads(data_line[len("data: "):]) == {"current": 1, "total": 2}
