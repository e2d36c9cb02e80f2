# Tests for oauth/crypto.py

import pytest

from oauth.crypto import constant_time_equals, random_token, sha256_hex, sign, verify_signature


class TestTokens:
    def test_random_tokens_are_unique_and_long(self):
        tokens = {random_token() for _ in range(200)}
        assert len(tokens) == 200
        # 32 bytes -> 43 url-safe characters
        assert all(len(t) >= 43 for t in tokens)

    def test_sha256_hex_known_value(self):
        assert sha256_hex("abc") == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"


class TestSignature:
    def test_sign_and_verify(self):
        signature = sign('["a"]', "secret")
        assert verify_signature('["a"]', signature, "secret")

    def test_verify_rejects_other_secret(self):
        signature = sign('["a"]', "secret")
        assert not verify_signature('["a"]', signature, "rotated")

    def test_verify_rejects_tampered_data(self):
        signature = sign('["a"]', "secret")
        assert not verify_signature('["a","b"]', signature, "secret")

    @pytest.mark.parametrize("signature", ["é", "�", "\udcff", "日本"])
    def test_verify_rejects_non_ascii_signature(self, signature):
        assert verify_signature('["a"]', signature, "secret") is False


class TestConstantTimeEquals:
    def test_equal(self):
        assert constant_time_equals("tok", "tok")

    def test_non_ascii_compares_unequal(self):
        assert constant_time_equals("tok", "tök") is False
