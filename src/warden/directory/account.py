"""
Account State - Interpret Active Directory account attributes.

Turns the raw attributes of a Candidate into the handful of facts the
verification gates care about (enabled, expired, locked, password expired,
last bad password). Timestamps may arrive as datetimes (ldap3 with schema
info) or as raw FILETIME integers.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from warden.directory.base import Candidate

# userAccountControl
UF_ACCOUNTDISABLE = 0x0002
# msDS-User-Account-Control-Computed
UF_LOCKOUT = 0x0010
UF_PASSWORD_EXPIRED = 0x800000

FILETIME_EPOCH = datetime(1601, 1, 1, tzinfo=timezone.utc)
FILETIME_NEVER = 0x7FFFFFFFFFFFFFFF

# Attributes AccountState reads
ACCOUNT_NAME = "sAMAccountName"
DISPLAY_NAME = "displayName"
ACCOUNT_EXPIRES = "accountExpires"
USER_ACCOUNT_CONTROL = "userAccountControl"
COMPUTED_ACCOUNT_CONTROL = "msDS-User-Account-Control-Computed"
LOCKOUT_TIME = "lockoutTime"
BAD_PASSWORD_TIME = "badPasswordTime"
PASSWORD_LAST_SET = "pwdLastSet"

STATE_PROPERTIES = [
    ACCOUNT_NAME,
    DISPLAY_NAME,
    ACCOUNT_EXPIRES,
    USER_ACCOUNT_CONTROL,
    COMPUTED_ACCOUNT_CONTROL,
    LOCKOUT_TIME,
    BAD_PASSWORD_TIME,
    PASSWORD_LAST_SET,
]

CONTACT_PROPERTIES = ["mail", "telephoneNumber", "mobile"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def filetime_to_datetime(value: Any) -> Optional[datetime]:
    """
    Convert a FILETIME (100ns ticks since 1601) or datetime to an aware datetime.

    Returns None for "never" markers (0, 0x7FFFFFFFFFFFFFFF, year 1601/9999).
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        if value.year <= 1601 or value.year >= 9999:
            return None
        return value
    try:
        ticks = int(value)
    except (TypeError, ValueError):
        return None
    if ticks <= 0 or ticks >= FILETIME_NEVER:
        return None
    try:
        return FILETIME_EPOCH + timedelta(microseconds=ticks // 10)
    except OverflowError:
        return None


def _as_int(value: Any) -> int:
    if value is None or value == []:
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


@dataclass
class AccountState:
    """Gate-relevant facts about one account."""
    account_name: Optional[str]
    display_name: Optional[str]
    enabled: bool
    locked: bool
    password_expired: bool
    expires: Optional[datetime]
    bad_password_time: Optional[datetime]

    def is_expired(self, now: datetime) -> bool:
        return self.expires is not None and self.expires <= now

    @classmethod
    def from_candidate(cls, candidate: Candidate) -> "AccountState":
        uac = _as_int(candidate.get(USER_ACCOUNT_CONTROL))
        computed = _as_int(candidate.get(COMPUTED_ACCOUNT_CONTROL))

        locked = bool(computed & UF_LOCKOUT)
        if not locked and candidate.get(COMPUTED_ACCOUNT_CONTROL) is None:
            # No constructed attribute (e.g. a GC read): fall back to lockoutTime
            locked = filetime_to_datetime(candidate.get(LOCKOUT_TIME)) is not None

        return cls(
            account_name=candidate.account_name,
            display_name=candidate.display_name,
            enabled=not (uac & UF_ACCOUNTDISABLE),
            locked=locked,
            password_expired=bool(computed & UF_PASSWORD_EXPIRED),
            expires=filetime_to_datetime(candidate.get(ACCOUNT_EXPIRES)),
            bad_password_time=filetime_to_datetime(candidate.get(BAD_PASSWORD_TIME)),
        )
