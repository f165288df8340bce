"""Tests for client identity resolution."""

from unittest.mock import MagicMock

from stockgate.middleware.client_identity import (
    get_client_host,
    get_forwarded_for,
    resolve_identity,
)


class TestResolveIdentity:
    def test_first_forwarded_address_wins(self, request_factory):
        request = request_factory(headers={"X-Forwarded-For": " 198.51.100.4 , 10.0.0.1"})

        assert get_forwarded_for(request) == "198.51.100.4"
        assert resolve_identity(request) == "198.51.100.4"

    def test_real_ip_header(self, request_factory):
        request = request_factory(headers={"X-Real-IP": "198.51.100.8"}, client="10.0.0.2")

        assert resolve_identity(request) == "198.51.100.8"
        assert resolve_identity(request, trust_forwarded_for=False) == "10.0.0.2"

    def test_peer_address_without_forwarded_header(self, request_factory):
        assert resolve_identity(request_factory(client="192.0.2.10")) == "192.0.2.10"

    def test_forwarded_header_ignored_when_untrusted(self, request_factory):
        request = request_factory(headers={"X-Forwarded-For": "198.51.100.4"}, client="192.0.2.10")

        assert resolve_identity(request, trust_forwarded_for=False) == "192.0.2.10"

    def test_unknown_when_no_address(self, request_factory):
        assert resolve_identity(request_factory(client=None)) == "unknown"

    def test_empty_forwarded_header_falls_back(self, request_factory):
        request = request_factory(headers={"X-Forwarded-For": ""}, client="192.0.2.10")

        assert resolve_identity(request) == "192.0.2.10"

    def test_connection_without_client_attribute(self):
        connection = MagicMock(spec=["headers"])
        connection.headers = {}

        assert get_client_host(connection) == ""
        assert resolve_identity(connection) == "unknown"
