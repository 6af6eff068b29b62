import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from pydantic import ValidationError

from access_filter import AllowList, AllowListMiddleware, resolve_client_address


def build_app(allow_list, trust_proxy=False):
    """Minimal app guarded by the allow-list middleware."""
    app = FastAPI()
    app.add_middleware(AllowListMiddleware, allow_list=allow_list, trust_proxy=trust_proxy)

    @app.get("/ping")
    async def ping():
        return {"pong": True}

    return app


class TestResolveClientAddress:
    """
    Tests for the resolve_client_address precedence rules.
    """

    @pytest.mark.parametrize(
        "trusted, forwarded_for, peer, expected",
        [
            ("10.0.0.1", "1.2.3.4", "127.0.0.1", "10.0.0.1"),
            (None, "1.2.3.4, 5.6.7.8", "127.0.0.1", "1.2.3.4"),
            ("", "  1.2.3.4  ", "127.0.0.1", "1.2.3.4"),
            ("   ", None, "127.0.0.1", "127.0.0.1"),
            (None, "", "::1", "::1"),
            (None, " , 5.6.7.8", "127.0.0.1", "127.0.0.1"),
            (None, None, None, None),
        ],
        ids=[
            "trusted-wins",
            "first-forwarded-entry",
            "forwarded-trimmed",
            "blank-trusted-falls-through",
            "peer-fallback",
            "blank-first-hop-falls-to-peer",
            "nothing-available",
        ]
    )
    def test_precedence(self, trusted, forwarded_for, peer, expected):
        """
        Test that the first non-empty candidate wins.

        Args:
            trusted: Framework-trusted address
            forwarded_for: x-forwarded-for header value
            peer: Socket peer address
            expected: Expected resolved address
        """
        assert resolve_client_address(trusted, forwarded_for, peer) == expected


class TestAllowList:
    """
    Tests for AllowList construction and matching.
    """

    def test_from_csv_trims_and_skips_blanks(self):
        allow_list = AllowList.from_csv(" 127.0.0.1, ,::1,,127.0.0.1 ")

        assert allow_list.addresses == ("127.0.0.1", "::1")

    @pytest.mark.parametrize("value", [None, "", " , "], ids=["none", "empty", "only-separators"])
    def test_unconfigured_allow_list_permits_nobody(self, value):
        allow_list = AllowList.from_csv(value)

        assert allow_list.is_empty()
        assert not allow_list.permits("127.0.0.1")

    @pytest.mark.parametrize(
        "address, expected",
        [
            ("192.168.1.10", True),
            ("fe80::1", True),
            ("FE80::1", False),
            ("192.168.1.1", False),
            ("192.168.1.0/24", False),
            ("", False),
            (None, False),
        ],
        ids=["ipv4", "ipv6", "case-sensitive", "other-ip", "no-cidr", "empty", "none"]
    )
    def test_permits_exact_matches_only(self, address, expected):
        allow_list = AllowList.from_csv("192.168.1.10,fe80::1")

        assert allow_list.permits(address) is expected

    def test_allow_list_is_immutable(self):
        allow_list = AllowList.from_csv("127.0.0.1")

        with pytest.raises(ValidationError):
            allow_list.addresses = ("10.0.0.1",)


class TestAllowListMiddleware:
    """
    Tests for the middleware guarding every route.
    """

    def test_allowed_address_reaches_route(self):
        client = TestClient(build_app(AllowList.from_csv("testclient")))

        response = client.get("/ping")

        assert response.status_code == 200
        assert response.json() == {"pong": True}

    def test_unknown_address_gets_403(self):
        client = TestClient(build_app(AllowList.from_csv("10.0.0.1")))

        response = client.get("/ping")

        assert response.status_code == 403
        assert response.json() == {"statusCode": 403, "message": "Access denied", "error": "Forbidden"}

    def test_empty_allow_list_denies_everything(self):
        client = TestClient(build_app(AllowList()))

        assert client.get("/ping").status_code == 403

    def test_rejection_happens_before_routing(self):
        client = TestClient(build_app(AllowList.from_csv("10.0.0.1")))

        response = client.get("/does-not-exist")

        assert response.status_code == 403

    def test_forwarded_header_ignored_without_trust_proxy(self):
        client = TestClient(build_app(AllowList.from_csv("1.2.3.4")))

        response = client.get("/ping", headers={"x-forwarded-for": "1.2.3.4, 5.6.7.8"})

        assert response.status_code == 403

    def test_forwarded_header_used_behind_proxy(self):
        client = TestClient(build_app(AllowList.from_csv("1.2.3.4"), trust_proxy=True))

        response = client.get("/ping", headers={"x-forwarded-for": "1.2.3.4, 5.6.7.8"})

        assert response.status_code == 200

    def test_second_forwarded_entry_is_not_used(self):
        client = TestClient(build_app(AllowList.from_csv("5.6.7.8"), trust_proxy=True))

        response = client.get("/ping", headers={"x-forwarded-for": "1.2.3.4, 5.6.7.8"})

        assert response.status_code == 403

    def test_peer_used_behind_proxy_without_header(self):
        client = TestClient(build_app(AllowList.from_csv("testclient"), trust_proxy=True))

        assert client.get("/ping").status_code == 200
