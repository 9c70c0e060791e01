from unittest.mock import patch

import pytest

from phonon.util import (
    bytes_to_float32,
    float32_to_bytes,
    pin_prompt,
    random_key,
    uint16_to_bytes,
)


def test_random_key_length_and_uniqueness():
    first = random_key(32)
    second = random_key(32)
    assert len(first) == 32
    assert first != second


def test_random_key_empty():
    assert random_key(0) == b""


@pytest.mark.parametrize("value", [0.0, 1.5, -2.25, 0.125, 1024.0])
def test_float32_round_trip(value):
    encoded = float32_to_bytes(value)
    assert len(encoded) == 4
    assert bytes_to_float32(encoded) == value


def test_float32_known_encoding():
    assert float32_to_bytes(1.0) == bytes.fromhex("3f800000")


def test_float32_rounds_to_single_precision():
    decoded = bytes_to_float32(float32_to_bytes(0.1))
    assert decoded != 0.1
    assert abs(decoded - 0.1) < 1e-7


def test_bytes_to_float32_ignores_trailing_bytes():
    assert bytes_to_float32(float32_to_bytes(0.5) + b"\xff\xff") == 0.5


def test_bytes_to_float32_short_input():
    with pytest.raises(ValueError):
        bytes_to_float32(b"\x3f\x80")


def test_float32_overflow():
    with pytest.raises(OverflowError):
        float32_to_bytes(1e300)


def test_uint16_known_encoding():
    assert uint16_to_bytes(0x0102) == b"\x01\x02"


@pytest.mark.parametrize("value", [0, 1, 255, 256, 0xFFFF])
def test_uint16_round_trip(value):
    encoded = uint16_to_bytes(value)
    assert len(encoded) == 2
    assert int.from_bytes(encoded, "big") == value


@pytest.mark.parametrize("value", [-1, 0x10000])
def test_uint16_out_of_range(value):
    with pytest.raises(ValueError):
        uint16_to_bytes(value)


def test_pin_prompt_returns_entered_pin(capsys):
    with patch("getpass.getpass", return_value="123456"):
        assert pin_prompt() == "123456"
    assert "Please enter 6 digit pin:" in capsys.readouterr().out


def test_pin_prompt_failure_propagates(capsys):
    with patch("getpass.getpass", side_effect=EOFError("closed")):
        with pytest.raises(EOFError):
            pin_prompt()
    assert "prompt failed" in capsys.readouterr().out