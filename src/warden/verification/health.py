"""
Health Check - Decide whether testing a password is safe.

Cheap gates run first and stop at the first failure:
  empty password, account expired, disabled, locked, password expired,
  and (optionally) the password policy pre-filter.

Only when all of them pass is the one expensive check issued: the
latest bad-password time across every replica. A failure inside the
lockout observation window means one more bad attempt could lock the
account, so the password is not tested.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from warden.directory.account import BAD_PASSWORD_TIME, AccountState, filetime_to_datetime, utcnow
from warden.directory.base import Candidate, PasswordPolicyValidator, ValidationStatus
from warden.replicas.aggregator import AggregationMethod, ReplicaAggregator

logger = logging.getLogger(__name__)

# Validator verdicts that rule a password out
_POLICY_FAILURES = (
    ValidationStatus.TOO_SHORT,
    ValidationStatus.TOO_LONG,
    ValidationStatus.NOT_COMPLEX,
    ValidationStatus.FILTER_ERROR,
)


class HealthCheck:
    """
    Pre-authentication safety gates for one account.

    Example:
        >>> check = HealthCheck(aggregator, validator)
        >>> notes = []
        >>> check.evaluate(candidate, "Winter2024!", timedelta(minutes=30), notes)
        True
    """

    def __init__(
        self,
        aggregator: ReplicaAggregator,
        validator: Optional[PasswordPolicyValidator] = None,
        policy_prefilter: bool = True,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.aggregator = aggregator
        self.validator = validator
        self.policy_prefilter = policy_prefilter
        self.clock = clock or utcnow

    def evaluate(
        self,
        candidate: Candidate,
        password: str,
        observation_window: timedelta,
        notes: List[str],
    ) -> bool:
        """
        Run the gates, appending a note for every decision.

        Returns:
            True when a single authentication attempt is safe
        """
        if not self.precheck(candidate, password, notes):
            return False
        return self.no_recent_failure(candidate, observation_window, notes)

    def precheck(self, candidate: Candidate, password: str, notes: List[str]) -> bool:
        """Cheap gates only; no replica reads."""
        now = self.clock()
        state = AccountState.from_candidate(candidate)

        if not password:
            notes.append("password is empty")
            return False
        if state.is_expired(now):
            notes.append(f"account expired on {state.expires.isoformat()}")
            return False
        if not state.enabled:
            notes.append("account is disabled")
            return False
        if state.locked:
            notes.append("account is already locked out")
            return False
        if state.password_expired:
            notes.append("password is already expired")
            return False

        if self.policy_prefilter and self.validator is not None:
            try:
                status = self.validator.validate(state.account_name or "", password)
            except Exception as e:
                logger.warning(f"Policy validation failed for {state.account_name}: {e}")
                status = ValidationStatus.UNKNOWN
            if status in _POLICY_FAILURES:
                notes.append(f"password fails domain policy ({status.value})")
                return False
            if status != ValidationStatus.SUCCESS:
                notes.append(f"policy pre-check inconclusive ({status.value})")

        return True

    def no_recent_failure(
        self,
        candidate: Candidate,
        observation_window: timedelta,
        notes: List[str],
    ) -> bool:
        """The one expensive check: latest bad password across every replica."""
        try:
            result = self.aggregator.aggregate(
                candidate.key, [BAD_PASSWORD_TIME], AggregationMethod.MAXIMUM
            )[BAD_PASSWORD_TIME]
        except Exception as e:
            logger.warning(f"Replica bad-password check failed for {candidate.key}: {e}")
            notes.append(f"could not read last bad password across replicas ({e}); not testing")
            return False

        last_bad = filetime_to_datetime(result.value)
        if last_bad is None:
            notes.append("no bad password recorded on any replica")
            return True

        unsafe_until = last_bad + observation_window
        if unsafe_until > self.clock():
            replicas = ", ".join(result.source_replicas) or "unknown replica"
            notes.append(
                f"recent bad password at {last_bad.isoformat()} ({replicas}); "
                f"unsafe to test until {unsafe_until.isoformat()}"
            )
            return False

        notes.append(f"last bad password at {last_bad.isoformat()} is outside the observation window")
        return True
