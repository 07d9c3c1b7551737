"""Tests for Base32 decoding and TOTP generation."""
import pytest

from twofa import (
    InvalidEncodingError, decode_secret, generate_totp, get_time_remaining, hotp
)

from conftest import DEMO_SECRET, RFC_SECRET


# RFC 6238 appendix B, SHA-1 column, truncated to six digits
@pytest.mark.parametrize("now, code, remaining", [
    (59, "287082", 1),
    (1111111109, "081804", 1),
    (1111111111, "050471", 29),
    (1234567890, "005924", 30),
    (2000000000, "279037", 10),
    (20000000000, "353130", 10),
])
def test_rfc6238_vectors(now, code, remaining):
    key = decode_secret(RFC_SECRET)

    assert generate_totp(key, now) == (code, remaining)


def test_rfc4226_hotp_vectors():
    key = b"12345678901234567890"
    expected = ["755224", "287082", "359152", "969429", "338314"]

    assert [hotp(key, counter) for counter in range(5)] == expected


def test_short_rfc_secret_decodes_to_ten_bytes():
    assert decode_secret("GEZDGNBVGY3TQOJQ") == b"1234567890"


@pytest.mark.parametrize("now", [0, 1, 29, 30, 31, 59, 60, 1700000000, 1700000015.75])
def test_code_is_six_ascii_digits(now):
    code, remaining = generate_totp(decode_secret(DEMO_SECRET), now)

    assert len(code) == 6
    assert code.isascii() and code.isdigit()
    assert 1 <= remaining <= 30


def test_remaining_is_full_window_on_step_boundary():
    assert get_time_remaining(60) == 30
    assert get_time_remaining(0) == 30
    assert get_time_remaining(61) == 29


def test_generation_is_deterministic():
    key = decode_secret(DEMO_SECRET)

    assert generate_totp(key, 1700000000) == generate_totp(key, 1700000000)


def test_same_window_gives_same_code():
    key = decode_secret(DEMO_SECRET)

    assert generate_totp(key, 30)[0] == generate_totp(key, 59)[0]


@pytest.mark.parametrize("secret", ["JBSWY3DPEHPK3PX1", "JBSWY3DPEHPK3PX8", "JBSWY3DPEHPK3PX0"])
def test_non_alphabet_character_is_rejected(secret):
    with pytest.raises(InvalidEncodingError) as exc_info:
        decode_secret(secret, "work")

    assert exc_info.value.account == "work"
    assert "work" in str(exc_info.value)


@pytest.mark.parametrize("secret", ["jbswy3dpehpk3pxp", "JBSWY3DPEHPK3PXP====", "JBSW Y3DP"])
def test_no_normalization_is_performed(secret):
    with pytest.raises(InvalidEncodingError):
        decode_secret(secret)


@pytest.mark.parametrize("secret", ["A", "ABC", "ABCDEF", "ABCDEFGHA"])
def test_length_without_whole_bytes_is_rejected(secret):
    with pytest.raises(InvalidEncodingError, match="whole bytes"):
        decode_secret(secret)


def test_empty_secret_is_rejected():
    with pytest.raises(InvalidEncodingError):
        decode_secret("", "blank")
