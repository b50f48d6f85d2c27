"""Tests for the API key ring."""

from unittest.mock import patch

from weathershield.core import auth
from weathershield.core.config import settings
from tests.conftest import FARMER, OTHER_FARMER


class TestKeyRing:

    def test_issue_and_resolve(self):
        ring = auth.KeyRing()
        api_key, raw = ring.issue("field tablet", FARMER)

        assert raw.startswith(auth.KEY_PREFIX)
        assert len(raw) == len(auth.KEY_PREFIX) + 48
        assert api_key.key_hash == auth.digest(raw)
        assert api_key.prefix == raw[:14] + "..."
        assert ring.resolve(raw) is api_key
        assert ring.resolve(raw + "x") is None

    def test_list_by_account(self):
        ring = auth.KeyRing()
        first, _ = ring.issue("a", FARMER)
        second, _ = ring.issue("b", FARMER)
        other, _ = ring.issue("c", OTHER_FARMER)

        assert ring.list(FARMER) == [first, second]
        assert ring.list(OTHER_FARMER) == [other]
        assert ring.list("nobody") == []
        assert len(ring.list()) == 3

    def test_revoke(self):
        ring = auth.KeyRing()
        api_key, raw = ring.issue("a", FARMER)
        assert ring.revoke(api_key.id)
        assert ring.resolve(raw) is None
        assert not ring.get(api_key.id).active
        assert ring.list(FARMER) == [api_key]
        assert not ring.revoke("missing")

    def test_touch_counts_requests(self):
        api_key, _ = auth.KeyRing().issue("a", FARMER)
        api_key.touch("/v1/policies")
        api_key.touch("/v1/policies")
        api_key.touch("/v1/claims")
        assert api_key.total_requests == 3
        assert api_key.requests_by_endpoint == {"/v1/policies": 2, "/v1/claims": 1}
        assert api_key.last_request_at is not None


class TestBootstrap:

    def test_installs_configured_key(self):
        with patch.object(settings, "bootstrap_api_key", "ws_sk_operator-chosen"), \
                patch.object(settings, "bootstrap_account", "platform"):
            auth.bootstrap()
        api_key = auth.keyring.resolve("ws_sk_operator-chosen")
        assert api_key.id == auth.BOOTSTRAP_KEY_ID
        assert api_key.account == "platform"

    def test_reinstall_replaces_previous_key(self):
        auth.keyring.install("ws_sk_first", "platform")
        auth.keyring.install("ws_sk_second", "platform")
        assert auth.keyring.resolve("ws_sk_first") is None
        assert auth.keyring.resolve("ws_sk_second").id == auth.BOOTSTRAP_KEY_ID
        assert len(auth.keyring.list("platform")) == 1

    def test_noop_without_key(self):
        with patch.object(settings, "bootstrap_api_key", None):
            auth.bootstrap()
        assert auth.keyring.list() == []
