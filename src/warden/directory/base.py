"""
Directory Collaborators

Core records and the capability interfaces Warden needs from its
environment:

- DirectoryClient: attribute-wildcard searches, single-account reads and
  per-replica targeting
- SchemaProbe: which attributes exist on an object class
- AuthProbe: a single authentication attempt
- PasswordPolicyValidator: pre-filter a clear password against policy

The ldap3-backed implementations live in warden.directory.ldap_client.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Protocol, Set


# Stable key of every directory object
KEY_ATTRIBUTE = "distinguishedName"


class DirectoryError(Exception):
    """Raised when a directory call fails for reasons other than 'no match'."""
    pass


class AuthProbeError(Exception):
    """Raised when an authentication probe fails without a clean rejection."""
    pass


@dataclass
class Candidate:
    """
    A resolved directory account.

    The distinguished name is the identity of a candidate: result sets are
    de-duplicated on it, never on attribute values.
    """
    key: str
    attributes: Dict[str, Any] = field(default_factory=dict)

    # Strategy that surfaced this candidate (basic, broad, ...)
    strategy: Optional[str] = None

    def get(self, name: str, default: Any = None) -> Any:
        """Case-insensitive attribute lookup."""
        if name in self.attributes:
            return self.attributes[name]
        lowered = name.lower()
        for attr, value in self.attributes.items():
            if attr.lower() == lowered:
                return value
        return default

    @property
    def account_name(self) -> Optional[str]:
        return self.get("sAMAccountName")

    @property
    def display_name(self) -> Optional[str]:
        return self.get("displayName")

    def without(self, names: Iterable[str]) -> "Candidate":
        """Copy of this candidate with the given attributes dropped."""
        drop = {n.lower() for n in names}
        kept = {k: v for k, v in self.attributes.items() if k.lower() not in drop}
        return Candidate(key=self.key, attributes=kept, strategy=self.strategy)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data = {KEY_ATTRIBUTE: self.key}
        data.update(self.attributes)
        data["strategy"] = self.strategy
        return data


@dataclass(frozen=True)
class PasswordPolicy:
    """Domain password and lockout policy."""
    min_length: int = 0
    complexity_enabled: bool = False
    lockout_observation_window: timedelta = timedelta(minutes=30)
    lockout_threshold: int = 0
    lockout_duration: timedelta = timedelta(minutes=30)
    max_length: int = 256


class ValidationStatus(str, Enum):
    """Result of a password policy pre-check."""
    SUCCESS = "success"
    TOO_SHORT = "too-short"
    TOO_LONG = "too-long"
    NOT_COMPLEX = "not-complex"
    HISTORY_CONFLICT = "history-conflict"
    FILTER_ERROR = "filter-error"
    UNKNOWN = "unknown"


class DirectoryClient(Protocol):
    """Read-only access to a directory service and its replicas."""

    def search(
        self,
        filter_attributes: List[str],
        wildcard_text: str,
        properties: List[str],
        replica: Optional[str] = None,
    ) -> List[Candidate]:
        ...

    def get_account(
        self,
        identity: str,
        properties: List[str],
        replica: Optional[str] = None,
    ) -> Optional[Candidate]:
        ...

    def list_replicas(self) -> List[str]:
        ...

    def get_domain_password_policy(self, identity: Optional[str] = None) -> PasswordPolicy:
        ...


class SchemaProbe(Protocol):
    """Reports which attributes an object class may carry."""

    def allowed_attributes(self, object_class: str) -> Set[str]:
        ...


class AuthProbe(Protocol):
    """
    Attempts one authentication.

    Returns False only for a clean credential rejection; anything else
    raises AuthProbeError.
    """

    def try_authenticate(self, account_name: str, password: str) -> bool:
        ...


class PasswordPolicyValidator(Protocol):
    """Checks a clear password against policy. Never proof of correctness."""

    def validate(
        self,
        account_name: str,
        password: str,
        replica: Optional[str] = None,
    ) -> ValidationStatus:
        ...
