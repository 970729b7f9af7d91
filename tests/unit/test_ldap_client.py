"""
Unit tests for the ldap3 authentication probe and collaborator wiring.
"""

import pytest
from ldap3 import NTLM

from warden.config import ConfigurationError, WardenConfig
from warden.directory import ldap_client
from warden.directory.base import AuthProbeError
from warden.directory.ldap_client import Ldap3AuthProbe, connect_from_config


class RecordingConnection:
    """Stands in for ldap3.Connection; answers every bind with bind_result."""

    bind_result = {"result": 49, "description": "invalidCredentials",
                   "message": "80090308: LdapErr: DSID-0C09044E, comment: AcceptSecurityContext error, data 52e, v4563"}
    opened = []

    def __init__(self, server, user=None, password=None, authentication=None):
        self.user = user
        self.authentication = authentication
        self.result = dict(self.bind_result)
        self.unbound = False
        RecordingConnection.opened.append(self)

    def bind(self):
        return self.result.get("result") == 0

    def unbind(self):
        self.unbound = True


@pytest.fixture
def connections(monkeypatch):
    RecordingConnection.opened = []
    monkeypatch.setattr(ldap_client, "Connection", RecordingConnection)
    monkeypatch.setattr(ldap_client, "Server", lambda *args, **kwargs: object())
    return RecordingConnection


def config(**overrides):
    values = {"ldap_server": "dc01.corp.local", "bind_user": "CORP\\svc_warden", "bind_password": "x", "domain": ""}
    values.update(overrides)
    return WardenConfig(**values)


class TestLdap3AuthProbe:
    """Tests for Ldap3AuthProbe."""

    def test_domain_required(self):
        """Test that a probe without a domain cannot be built."""
        with pytest.raises(ConfigurationError):
            Ldap3AuthProbe("dc01.corp.local", domain="")

    def test_binds_as_domain_account(self, connections):
        """Test that the bind name carries the domain."""
        probe = Ldap3AuthProbe("dc01.corp.local", domain="CORP")

        assert probe.try_authenticate("jsmith", "wrong") is False

        [conn] = connections.opened
        assert conn.user == "CORP\\jsmith"
        assert conn.authentication == NTLM
        assert conn.unbound

    def test_success(self, connections, monkeypatch):
        monkeypatch.setattr(RecordingConnection, "bind_result", {"result": 0, "description": "success", "message": ""})
        assert Ldap3AuthProbe("dc01.corp.local", domain="CORP").try_authenticate("jsmith", "Summer2024!") is True

    def test_locked_sub_code_is_not_a_clean_rejection(self, connections, monkeypatch):
        monkeypatch.setattr(
            RecordingConnection,
            "bind_result",
            {"result": 49, "description": "invalidCredentials", "message": "AcceptSecurityContext error, data 775, v4563"},
        )
        with pytest.raises(AuthProbeError, match="account locked out"):
            Ldap3AuthProbe("dc01.corp.local", domain="CORP").try_authenticate("jsmith", "wrong")


class TestConnectFromConfig:
    """Tests for connect_from_config."""

    def test_no_domain_means_no_auth_probe(self):
        """Test that resolve-only setups work without a domain."""
        directory, schema_probe, auth_probe, validator = connect_from_config(config())
        assert auth_probe is None
        assert directory.server_host == "dc01.corp.local"

    def test_domain_builds_auth_probe(self):
        _, _, auth_probe, _ = connect_from_config(config(domain="CORP"))
        assert isinstance(auth_probe, Ldap3AuthProbe)
        assert auth_probe.domain == "CORP"

    def test_missing_server(self):
        with pytest.raises(ConfigurationError):
            connect_from_config(config(ldap_server=""))
