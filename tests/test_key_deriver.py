"""Unit tests for limiter key derivation."""

from types import SimpleNamespace

import pytest

from gatekeeper.core.keys import (
    KeyDeriver,
    KeyStrategy,
    RequestIdentity,
    resolve_client_ip,
)


class TestResolveClientIp:
    """IP precedence chain."""

    def test_cdn_header_wins_over_real_ip(self) -> None:
        identity = RequestIdentity(
            headers={"cf-connecting-ip": "9.9.9.9", "x-real-ip": "8.8.8.8"}
        )
        assert resolve_client_ip(identity) == "9.9.9.9"

    def test_forwarded_for_uses_first_hop(self) -> None:
        identity = RequestIdentity(headers={"x-forwarded-for": "3.3.3.3, 4.4.4.4"})
        assert resolve_client_ip(identity) == "3.3.3.3"

    def test_real_ip_wins_over_forwarded_for(self) -> None:
        identity = RequestIdentity(
            headers={"x-real-ip": "8.8.8.8", "x-forwarded-for": "3.3.3.3"}
        )
        assert resolve_client_ip(identity) == "8.8.8.8"

    def test_header_lookup_is_case_insensitive(self) -> None:
        identity = RequestIdentity(headers={"CF-Connecting-IP": "9.9.9.9"})
        assert resolve_client_ip(identity) == "9.9.9.9"

    @pytest.mark.parametrize("bad_value", ["", "   ", "not-an-ip", "999.1.1.1", "1.2.3.4:80"])
    def test_unparseable_header_is_skipped(self, bad_value: str) -> None:
        identity = RequestIdentity(
            headers={"cf-connecting-ip": bad_value, "x-real-ip": "8.8.8.8"}
        )
        assert resolve_client_ip(identity) == "8.8.8.8"

    def test_unparseable_first_hop_falls_through(self) -> None:
        identity = RequestIdentity(
            headers={"x-forwarded-for": "garbage, 4.4.4.4"},
            peer_address="10.0.0.7",
        )
        assert resolve_client_ip(identity) == "10.0.0.7"

    def test_ipv6_is_normalized(self) -> None:
        identity = RequestIdentity(headers={"x-real-ip": "2001:DB8:0:0::1"})
        assert resolve_client_ip(identity) == "2001:db8::1"

    def test_peer_address_used_before_unknown(self) -> None:
        identity = RequestIdentity(peer_address="192.168.1.20")
        assert resolve_client_ip(identity) == "192.168.1.20"

    def test_falls_back_to_unknown(self) -> None:
        assert resolve_client_ip(RequestIdentity()) == "unknown"
        assert resolve_client_ip(RequestIdentity(peer_address="testclient")) == "unknown"


class TestKeyDeriver:
    """Key namespacing and user-id precedence."""

    def test_ip_strategy_without_prefix(self) -> None:
        deriver = KeyDeriver()
        identity = RequestIdentity(headers={"cf-connecting-ip": "1.1.1.1"}, user_id="42")

        assert deriver.derive(identity) == "ip:1.1.1.1"

    def test_prefix_namespaces_key(self) -> None:
        deriver = KeyDeriver(prefix="auth")
        identity = RequestIdentity(headers={"x-real-ip": "8.8.8.8"})

        assert deriver(identity) == "auth:ip:8.8.8.8"

    def test_user_id_takes_precedence(self) -> None:
        deriver = KeyDeriver(strategy=KeyStrategy.USER_OR_IP, prefix="api")
        identity = RequestIdentity(headers={"x-real-ip": "8.8.8.8"}, user_id="user-7")

        assert deriver.derive(identity) == "api:user:user-7"

    @pytest.mark.parametrize("user_id", [None, "", "   "])
    def test_user_strategy_falls_back_to_ip(self, user_id) -> None:
        deriver = KeyDeriver(strategy=KeyStrategy.USER_OR_IP, prefix="api")
        identity = RequestIdentity(headers={"x-real-ip": "8.8.8.8"}, user_id=user_id)

        assert deriver.derive(identity) == "api:ip:8.8.8.8"

    def test_missing_headers_pool_into_unknown(self) -> None:
        deriver = KeyDeriver(prefix="contact")

        assert deriver.derive(RequestIdentity()) == "contact:ip:unknown"


class TestFromRequest:
    """Building identities from a Starlette-like request."""

    def _request(self, *, headers: dict, user_id=None, host: str | None = "10.1.1.1"):
        state = SimpleNamespace()
        if user_id is not None:
            state.user_id = user_id
        client = SimpleNamespace(host=host) if host else None
        return SimpleNamespace(headers=headers, state=state, client=client)

    def test_reads_headers_user_and_peer(self) -> None:
        request = self._request(headers={"X-Real-IP": "8.8.8.8"}, user_id=99)

        identity = RequestIdentity.from_request(request)

        assert identity.header("x-real-ip") == "8.8.8.8"
        assert identity.user_id == "99"
        assert identity.peer_address == "10.1.1.1"

    def test_peer_can_be_excluded(self) -> None:
        request = self._request(headers={})

        identity = RequestIdentity.from_request(request, include_peer=False)

        assert identity.peer_address is None
        assert resolve_client_ip(identity) == "unknown"

    def test_missing_client(self) -> None:
        identity = RequestIdentity.from_request(self._request(headers={}, host=None))

        assert identity.peer_address is None
        assert identity.user_id is None
