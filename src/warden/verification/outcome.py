"""
Verification records.

A VerificationOutcome is written once per (identifier, candidate) and never
changed afterwards; lockouts found later are reported as separate
LockoutAlert records.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class OutcomeStatus(str, Enum):
    """Where a verification ended up."""
    NOT_FOUND = "not-found"
    FALSE_POSITIVE = "assumed-false-positive"
    SKIPPED = "skipped"
    VALID = "valid"
    INVALID = "invalid"
    SUSPICIOUS = "suspicious"


@dataclass(frozen=True)
class VerificationOutcome:
    """
    Result of checking one claimed credential against one account.

    Attributes:
        identifier: The identifier as supplied
        found: Whether an account was matched
        candidate_key: Distinguished name of the account ("" if none)
        display_name: Account display name
        password_checked: An authentication attempt was issued
        password_valid: The attempt succeeded
        notes: Ordered decision trail
        safe_until: When monitoring for this account may stop (only set
            when password_checked)
        status: Summary of the branch taken
        account_name: sAMAccountName of the account
        password: The claimed password, echoed for export
    """
    identifier: str
    found: bool
    candidate_key: str = ""
    display_name: Optional[str] = None
    password_checked: bool = False
    password_valid: bool = False
    notes: Tuple[str, ...] = ()
    safe_until: Optional[datetime] = None
    status: OutcomeStatus = OutcomeStatus.NOT_FOUND
    account_name: Optional[str] = None
    password: str = field(default="", repr=False)

    @property
    def suspicious(self) -> bool:
        return self.status == OutcomeStatus.SUSPICIOUS

    def to_dict(self) -> Dict[str, Any]:
        """Convert to an export record."""
        return {
            "identifier": self.identifier,
            "found": self.found,
            "candidate_key": self.candidate_key,
            "display_name": self.display_name,
            "account_name": self.account_name,
            "password_checked": self.password_checked,
            "password_valid": self.password_valid,
            "status": self.status.value,
            "notes": "; ".join(self.notes),
            "safe_until": self.safe_until.isoformat() if self.safe_until else None,
            "password": self.password,
        }


@dataclass(frozen=True)
class LockoutAlert:
    """An account found locked while the monitor was watching it."""
    candidate_key: str
    account_name: Optional[str]
    display_name: Optional[str]
    detected_at: datetime
    last_bad_password: Optional[datetime] = None
    last_bad_password_replicas: Tuple[str, ...] = ()
    contact: Dict[str, Any] = field(default_factory=dict)

    def describe(self) -> str:
        contact = ", ".join(f"{k}={v}" for k, v in self.contact.items() if v)
        return (
            f"{self.account_name or self.candidate_key} ({self.display_name or 'no display name'}) "
            f"locked out at {self.detected_at.isoformat()}"
            + (f"; contact: {contact}" if contact else "")
        )


@dataclass
class MonitorReport:
    """
    How the post-test lockout wait ended.

    last_bad_password holds the latest replica-aggregated reading per
    account; later_failures the accounts whose reading moved forward after
    the first pass.
    """
    watched: int = 0
    alerts: List[LockoutAlert] = field(default_factory=list)
    cancelled: bool = False
    abandoned: List[str] = field(default_factory=list)
    wait_until: Optional[datetime] = None
    passes: int = 0
    last_bad_password: Dict[str, Optional[datetime]] = field(default_factory=dict)
    later_failures: Dict[str, datetime] = field(default_factory=dict)

    @property
    def completed(self) -> bool:
        """True when the full observation window was waited out."""
        return not self.cancelled


@dataclass
class BatchReport:
    """Everything a verification batch produced."""
    outcomes: List[VerificationOutcome] = field(default_factory=list)
    monitor: Optional[MonitorReport] = None

    @property
    def wait_honored(self) -> bool:
        return self.monitor is None or self.monitor.completed

    def summary(self) -> Dict[str, int]:
        counts: Dict[str, int] = {status.value: 0 for status in OutcomeStatus}
        for outcome in self.outcomes:
            counts[outcome.status.value] += 1
        counts["lockouts"] = len(self.monitor.alerts) if self.monitor else 0
        return counts


@dataclass(frozen=True)
class CredentialEntry:
    """One claimed identifier/password pair from bulk input."""
    identifier: str
    password: str
    source: Optional[str] = None
