"""Token codec tests."""

import base64

import pytest

from usertokens.tokens import DecodeError
from usertokens.tokens.codec import (
    RAND_SIZE,
    EncryptedValue,
    HashedValue,
    RawValue,
    decode_from_transmission,
    digest,
    encode_for_transmission,
    generate_random_bytes,
)


class TestRandomBytes:
    """Tests for random byte generation."""

    def test_default_size(self):
        assert len(generate_random_bytes()) == RAND_SIZE == 32

    def test_unique(self):
        assert generate_random_bytes() != generate_random_bytes()


class TestTransmissionEncoding:
    """Tests for URL-safe encoding."""

    def test_round_trip(self):
        for _ in range(50):
            value = generate_random_bytes()
            assert decode_from_transmission(encode_for_transmission(value)) == value

    def test_unpadded_and_url_safe(self):
        text = encode_for_transmission(b"\xfb\xff" * 16)
        assert "=" not in text
        assert "+" not in text and "/" not in text
        assert len(text) == 43

    def test_matches_stdlib_encoding(self):
        value = bytes(range(32))
        assert encode_for_transmission(value) == base64.urlsafe_b64encode(value).decode().rstrip("=")

    def test_empty(self):
        assert encode_for_transmission(b"") == ""
        assert decode_from_transmission("") == b""

    @pytest.mark.parametrize(
        "text",
        [
            "not base64 at all!",
            "abc+def/",  # standard alphabet, not URL-safe
            "YWJj=",  # padding
            "YWJjZA==",
            "a",  # impossible length
            "YWJjZ",
            "YR",  # non-zero trailing bits
            "tökén",
        ],
    )
    def test_rejects_malformed(self, text):
        with pytest.raises(DecodeError):
            decode_from_transmission(text)

    def test_rejects_non_string(self):
        with pytest.raises(DecodeError):
            decode_from_transmission(b"YWJj")  # type: ignore[arg-type]


class TestDigest:
    """Tests for the one-way digest."""

    def test_deterministic(self):
        value = generate_random_bytes()
        assert digest(value) == digest(value)

    def test_sha256(self):
        assert digest(b"abc").hex() == (
            "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
        )
        assert len(digest(b"")) == 32

    def test_distinct_inputs(self):
        assert digest(b"a") != digest(b"b")


class TestStoredValue:
    """Tests for the stored value variants."""

    def test_raw_looks_up_token(self):
        stored = RawValue(b"x" * 32)
        assert stored.lookup_column == "token"
        assert stored.lookup_value == b"x" * 32

    def test_hashed_looks_up_token(self):
        stored = HashedValue(digest(b"x"))
        assert stored.lookup_column == "token"
        assert stored.lookup_value == digest(b"x")

    def test_encrypted_looks_up_digest(self):
        stored = EncryptedValue(ciphertext=b"ciphertext", digest=digest(b"x"))
        assert stored.lookup_column == "hashed_token"
        assert stored.lookup_value == digest(b"x")
