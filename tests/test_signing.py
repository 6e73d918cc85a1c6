"""Tests for the HMAC-SHA256 signature engine and base64url segments."""

import base64
import hashlib
import hmac

from gourmoire.service.signing import decode_segment, encode_segment, sign, verify


class TestSegments:
    def test_encode_strips_padding_and_uses_url_alphabet(self):
        # 0xfb 0xff encodes to "+/8=" in the standard alphabet
        encoded = encode_segment(b"\xfb\xff")
        assert encoded == "-_8"
        assert "=" not in encoded

    def test_decode_restores_padding(self):
        for raw in (b"a", b"ab", b"abc", b"abcd"):
            assert decode_segment(encode_segment(raw)) == raw


class TestSign:
    def test_matches_hmac_sha256_base64url(self):
        expected = (
            base64.urlsafe_b64encode(
                hmac.new(b"secret", b"header.payload", hashlib.sha256).digest()
            )
            .decode()
            .rstrip("=")
        )
        assert sign("header.payload", "secret") == expected

    def test_is_deterministic(self):
        assert sign("data", "key") == sign("data", "key")

    def test_signature_has_no_padding(self):
        signature = sign("data", "key")
        # 32 raw bytes -> 43 unpadded characters
        assert len(signature) == 43
        assert "=" not in signature
        assert "+" not in signature and "/" not in signature

    def test_different_secret_changes_signature(self):
        assert sign("data", "key-one") != sign("data", "key-two")


class TestVerify:
    def test_accepts_own_signature(self):
        assert verify("data", sign("data", "key"), "key")

    def test_rejects_other_secret(self):
        assert not verify("data", sign("data", "key"), "other")

    def test_rejects_modified_data(self):
        assert not verify("data!", sign("data", "key"), "key")

    def test_rejects_truncated_signature(self):
        assert not verify("data", sign("data", "key")[:-1], "key")

    def test_rejects_empty_signature(self):
        assert not verify("data", "", "key")
