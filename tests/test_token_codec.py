"""Tests for the three-segment credential codec."""

import json

import pytest

from gourmoire.service import token_codec
from gourmoire.service.signing import decode_segment, encode_segment, sign
from gourmoire.service.token_codec import FormatError

CLAIMS = {
    "userId": "42",
    "username": "user",
    "email": "",
    "type": "access",
    "iat": 1700000000,
    "exp": 1700086400,
}


class TestEncode:
    def test_header_is_fixed_literal(self):
        token = token_codec.encode(CLAIMS, "secret")
        header_segment = token.split(".")[0]
        assert decode_segment(header_segment) == b'{"alg":"HS256","typ":"JWT"}'

    def test_header_identical_across_credentials(self):
        first = token_codec.encode(CLAIMS, "secret")
        second = token_codec.encode({**CLAIMS, "userId": "7"}, "other")
        assert first.split(".")[0] == second.split(".")[0]

    def test_payload_is_compact_json_in_claim_order(self):
        token = token_codec.encode(CLAIMS, "secret")
        payload = decode_segment(token.split(".")[1]).decode()
        assert payload == json.dumps(CLAIMS, separators=(",", ":"))
        assert " " not in payload

    def test_signature_covers_header_and_payload(self):
        token = token_codec.encode(CLAIMS, "secret")
        header, payload, signature = token.split(".")
        assert signature == sign(f"{header}.{payload}", "secret")

    def test_no_padding_in_any_segment(self):
        token = token_codec.encode({**CLAIMS, "username": "ab"}, "secret")
        assert "=" not in token
        assert token.count(".") == 2


class TestSplit:
    @pytest.mark.parametrize("token", ["", "abc", "a.b", "a.b.c.d", "...."])
    def test_rejects_wrong_segment_count(self, token):
        with pytest.raises(FormatError):
            token_codec.split(token)

    def test_signing_input_joins_first_two_segments(self):
        parts = token_codec.split("aaa.bbb.ccc")
        assert parts.signing_input == "aaa.bbb"
        assert parts.signature == "ccc"


class TestDecode:
    def test_decode_returns_header_payload_signature(self):
        token = token_codec.encode(CLAIMS, "secret")
        decoded = token_codec.decode(token)
        assert decoded.header == {"alg": "HS256", "typ": "JWT"}
        assert decoded.payload == CLAIMS
        assert decoded.signature == token.split(".")[2]

    def test_decode_does_not_check_signature(self):
        token = token_codec.encode(CLAIMS, "secret")
        header, payload, _ = token.split(".")
        decoded = token_codec.decode(f"{header}.{payload}.not-a-signature")
        assert decoded.payload == CLAIMS

    def test_undecodable_json_raises_format_error(self):
        bad = encode_segment(b"{not json")
        with pytest.raises(FormatError):
            token_codec.decode(f"{bad}.{bad}.sig")

    def test_non_object_payload_raises_format_error(self):
        header = encode_segment(b'{"alg":"HS256","typ":"JWT"}')
        payload = encode_segment(b"[1,2,3]")
        with pytest.raises(FormatError):
            token_codec.decode(f"{header}.{payload}.sig")

    def test_invalid_utf8_raises_format_error(self):
        segment = encode_segment(b"\xff\xfe\xfd")
        with pytest.raises(FormatError):
            token_codec.decode_payload(segment)
