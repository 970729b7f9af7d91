"""
Password policy pre-filter.

Checks a clear password against the domain's length and complexity rules
before it is ever sent to a domain controller. A passing result says only
that the password *could* be current, never that it is.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, Optional

from warden.directory.base import (
    DirectoryClient,
    PasswordPolicy,
    ValidationStatus,
)

logger = logging.getLogger(__name__)

_CATEGORIES = (
    re.compile(r"[A-Z]"),
    re.compile(r"[a-z]"),
    re.compile(r"[0-9]"),
    re.compile(r"[^A-Za-z0-9]"),
)


def meets_complexity(account_name: str, password: str) -> bool:
    """
    Apply the Active Directory complexity rule.

    At least three of the four character categories, and the account name
    (when three or more characters long) must not appear in the password.
    """
    categories = sum(1 for pattern in _CATEGORIES if pattern.search(password))
    if categories < 3:
        return False
    if account_name and len(account_name) >= 3:
        if account_name.lower() in password.lower():
            return False
    return True


class DomainPolicyValidator:
    """
    PasswordPolicyValidator backed by the domain policy of a DirectoryClient.

    Password history cannot be evaluated without the native API, so
    HISTORY_CONFLICT is never returned here.

    Example:
        >>> validator = DomainPolicyValidator(directory)
        >>> validator.validate("jsmith", "Summer2024!")
        <ValidationStatus.SUCCESS: 'success'>
    """

    def __init__(self, directory: DirectoryClient):
        self.directory = directory
        self._policies: Dict[Optional[str], PasswordPolicy] = {}

    def _policy(self, replica: Optional[str]) -> PasswordPolicy:
        if replica not in self._policies:
            self._policies[replica] = self.directory.get_domain_password_policy()
        return self._policies[replica]

    def validate(
        self,
        account_name: str,
        password: str,
        replica: Optional[str] = None,
    ) -> ValidationStatus:
        try:
            policy = self._policy(replica)
        except Exception as e:
            logger.warning(f"Could not read password policy: {e}")
            return ValidationStatus.UNKNOWN

        if len(password) < policy.min_length:
            return ValidationStatus.TOO_SHORT
        if policy.max_length and len(password) > policy.max_length:
            return ValidationStatus.TOO_LONG
        if policy.complexity_enabled and not meets_complexity(account_name or "", password):
            return ValidationStatus.NOT_COMPLEX
        return ValidationStatus.SUCCESS
