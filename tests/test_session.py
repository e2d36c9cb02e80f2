# Tests for the state/session binding cookie.

import pytest

from oauth.crypto import sha256_hex
from oauth.errors import StateFailure
from oauth.session import SESSION_COOKIE, SessionBinder


@pytest.fixture
def binder():
    return SessionBinder(ttl_seconds=600)


def _jar(cookie) -> dict:
    return {cookie.key: cookie.value}


class TestBind:
    def test_cookie_holds_hash_of_state(self, binder):
        assert _jar(binder.bind("state-token")) == {SESSION_COOKIE: sha256_hex("state-token")}

    def test_cookie_attributes(self, binder):
        cookie = binder.bind("state-token")
        # Must survive the top-level redirect back from LINE
        assert cookie.samesite == "lax"
        assert cookie.max_age == 600
        assert not cookie.delete


class TestVerify:
    @pytest.mark.parametrize("state", ["a", "state-token", "x" * 64])
    def test_round_trip(self, binder, state):
        clear = binder.verify(state, _jar(binder.bind(state)))
        assert clear.key == SESSION_COOKIE
        assert clear.delete

    def test_cookie_for_other_state(self, binder):
        with pytest.raises(StateFailure) as exc:
            binder.verify("victim-state", _jar(binder.bind("attacker-state")))
        assert exc.value.kind == "SESSION_MISMATCH"
        assert exc.value.status_code == 403

    def test_missing_cookie(self, binder):
        with pytest.raises(StateFailure) as exc:
            binder.verify("state-token", {})
        assert exc.value.kind == "SESSION_COOKIE_MISSING"
        assert exc.value.status_code == 400

    def test_missing_state(self, binder):
        with pytest.raises(StateFailure) as exc:
            binder.verify("", _jar(binder.bind("state-token")))
        assert exc.value.kind == "STATE_MISSING"

    def test_non_ascii_cookie_is_a_mismatch(self, binder):
        with pytest.raises(StateFailure) as exc:
            binder.verify("state-token", {SESSION_COOKIE: "é" * 64})
        assert exc.value.kind == "SESSION_MISMATCH"
