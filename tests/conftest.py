"""
Shared fixtures: in-memory directory, schema and authentication fakes.
"""

import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from warden.directory.base import (
    AuthProbeError,
    Candidate,
    DirectoryError,
    PasswordPolicy,
)

NOW = datetime(2024, 6, 3, 12, 0, tzinfo=timezone.utc)

JOHN_DN = "CN=John Smith,OU=Staff,DC=corp,DC=local"
MARY_DN = "CN=Mary Jones,OU=Staff,DC=corp,DC=local"


def make_account(dn: str, sam: str, given: str, surname: str, **extra: Any) -> Dict[str, Any]:
    """Attributes of an enabled, unlocked user."""
    attrs = {
        "distinguishedName": dn,
        "sAMAccountName": sam,
        "displayName": f"{given} {surname}",
        "givenName": given,
        "sn": surname,
        "mail": f"{given.lower()}.{surname.lower()}@corp.local",
        "userPrincipalName": f"{sam}@corp.local",
        "userAccountControl": 512,
        "msDS-User-Account-Control-Computed": 0,
        "accountExpires": 0,
        "badPasswordTime": None,
    }
    attrs.update(extra)
    return attrs


class FakeDirectory:
    """
    DirectoryClient over a dict of accounts.

    search() matches case-insensitive substrings, like a (attr=*text*)
    filter. replica_values overrides attributes per replica and
    failing_replicas raise DirectoryError.
    """

    def __init__(self, accounts: Optional[List[Dict[str, Any]]] = None, replicas: Optional[List[str]] = None):
        self.accounts: Dict[str, Dict[str, Any]] = {}
        for account in accounts or []:
            self.add(account)
        self.replicas = list(replicas or ["dc01.corp.local", "dc02.corp.local"])
        self.replica_values: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.failing_replicas: set = set()
        self.policy = PasswordPolicy(lockout_observation_window=timedelta(minutes=30), lockout_threshold=5)
        self.search_calls: List[tuple] = []
        self.get_account_calls: List[tuple] = []
        self._lock = threading.Lock()

    def add(self, account: Dict[str, Any]) -> None:
        self.accounts[account["distinguishedName"]] = dict(account)

    def set_replica_value(self, replica: str, dn: str, name: str, value: Any) -> None:
        self.replica_values.setdefault(replica, {}).setdefault(dn, {})[name] = value

    def _candidate(self, dn: str, properties: List[str], replica: Optional[str]) -> Candidate:
        attrs = dict(self.accounts[dn])
        attrs.update(self.replica_values.get(replica, {}).get(dn, {}))
        return Candidate(key=dn, attributes={p: attrs[p] for p in properties if p in attrs})

    @property
    def search_texts(self) -> List[str]:
        return [text for _, text in self.search_calls]

    def search(self, filter_attributes, wildcard_text, properties, replica=None):
        with self._lock:
            self.search_calls.append((list(filter_attributes), wildcard_text))
        needle = wildcard_text.lower()
        hits = []
        for dn, attrs in self.accounts.items():
            for name in filter_attributes:
                value = attrs.get(name)
                if value is not None and needle in str(value).lower():
                    hits.append(self._candidate(dn, properties, replica))
                    break
        return hits

    def get_account(self, identity, properties, replica=None):
        with self._lock:
            self.get_account_calls.append((identity, replica))
        if replica in self.failing_replicas:
            raise DirectoryError(f"{replica} is unreachable")
        for dn, attrs in self.accounts.items():
            if identity.lower() in (
                dn.lower(),
                str(attrs.get("sAMAccountName", "")).lower(),
                str(attrs.get("userPrincipalName", "")).lower(),
            ):
                return self._candidate(dn, properties, replica)
        return None

    def list_replicas(self):
        return list(self.replicas)

    def get_domain_password_policy(self, identity=None):
        return self.policy


class FakeSchemaProbe:
    """SchemaProbe reporting a fixed allow-list."""

    def __init__(self, allowed):
        self.allowed = set(allowed)
        self.calls = 0

    def allowed_attributes(self, object_class):
        self.calls += 1
        return set(self.allowed)


class FakeAuthProbe:
    """AuthProbe with known passwords; accounts in broken raise AuthProbeError."""

    def __init__(self, passwords: Optional[Dict[str, str]] = None):
        self.passwords = dict(passwords or {})
        self.broken: set = set()
        self.attempts: List[tuple] = []

    def try_authenticate(self, account_name, password):
        self.attempts.append((account_name, password))
        if account_name in self.broken:
            raise AuthProbeError(f"server refused bind for {account_name} (data 775)")
        return self.passwords.get(account_name) == password


@pytest.fixture
def directory() -> FakeDirectory:
    """Directory with two engineers."""
    return FakeDirectory([
        make_account(
            JOHN_DN, "jsmith", "John", "Smith",
            employeeID="100234",
            telephoneNumber="+1 555 0100",
            title="Engineer",
        ),
        make_account(
            MARY_DN, "mjones", "Mary", "Jones",
            employeeID="100567",
            telephoneNumber="+1 555 0199",
            title="Engineer",
        ),
    ])


@pytest.fixture
def auth_probe() -> FakeAuthProbe:
    return FakeAuthProbe({"jsmith": "Summer2024!", "mjones": "Winter2024!"})


@pytest.fixture
def clock():
    """Fixed clock at NOW."""
    return lambda: NOW
