"""
Credential Verifier - Safely test claimed credentials.

Per identifier/password pair:

  resolve -> not found | too many candidates | per candidate
  per candidate -> health check -> skipped | authentication attempt

Every outcome carries the full decision trail in its notes. A batch ends
with the Lockout Monitor watching every account that was actually tested.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Union

from warden.config import ConfigurationError
from warden.directory.account import STATE_PROPERTIES, utcnow
from warden.directory.base import (
    AuthProbe,
    Candidate,
    DirectoryClient,
    PasswordPolicy,
    PasswordPolicyValidator,
)
from warden.ingest.export import alerts_path, check_writable, export_alerts, export_outcomes
from warden.replicas.aggregator import ReplicaAggregator
from warden.resolution.names import split_email
from warden.resolution.planner import SearchQuery, StrategyHint
from warden.resolution.resolver import Resolver
from warden.verification.health import HealthCheck
from warden.verification.monitor import LockoutMonitor
from warden.verification.outcome import (
    BatchReport,
    CredentialEntry,
    OutcomeStatus,
    VerificationOutcome,
)

logger = logging.getLogger(__name__)

VERIFY_PROPERTIES = list(STATE_PROPERTIES)


class CredentialVerifier:
    """
    Resolve claimed identities and test their passwords without causing lockouts.

    Example:
        >>> verifier = CredentialVerifier(resolver, directory, auth_probe)
        >>> for outcome in verifier.verify("john.smith@corp.com", "Spring2024!"):
        ...     print(outcome.status, outcome.notes)
    """

    def __init__(
        self,
        resolver: Resolver,
        directory: DirectoryClient,
        auth_probe: Optional[AuthProbe],
        aggregator: Optional[ReplicaAggregator] = None,
        validator: Optional[PasswordPolicyValidator] = None,
        max_candidates: int = 5,
        health_check: bool = True,
        policy_prefilter: bool = True,
        thorough: bool = False,
        allow_substrings: bool = False,
        min_token_length: int = 3,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the verifier.

        Args:
            resolver: Resolver used to find candidate accounts
            directory: Directory client (lockout policy lookups)
            auth_probe: Performs the authentication attempt
            aggregator: Replica aggregator for the bad-password check
            validator: Optional password policy pre-filter
            max_candidates: More candidates than this are assumed false positives
            health_check: Set False to test without safety gates
            policy_prefilter: Reject passwords that fail policy before testing
            thorough: Run thorough searches for every identifier
            allow_substrings: Let the resolver fall back to token sub-searches
            min_token_length: Shortest token the recursive strategies search
            clock: Time source (for tests)
        """
        self.resolver = resolver
        self.directory = directory
        self.auth_probe = auth_probe
        self.aggregator = aggregator or ReplicaAggregator(directory)
        self.max_candidates = max_candidates
        self.health_check_enabled = health_check
        self.thorough = thorough
        self.allow_substrings = allow_substrings
        self.min_token_length = min_token_length
        self.clock = clock or utcnow
        self.health = HealthCheck(
            self.aggregator,
            validator=validator,
            policy_prefilter=policy_prefilter,
            clock=self.clock,
        )

    # ------------------------------------------------------------------
    # Resolving
    # ------------------------------------------------------------------

    def _search(self, query: SearchQuery, notes: List[str]) -> List[Candidate]:
        try:
            return self.resolver.resolve(query, VERIFY_PROPERTIES)
        except Exception as e:
            logger.warning(f"Resolution of '{query.text}' failed: {e}")
            notes.append(f"search failed ({e})")
            return []

    def _resolve(self, identifier: str, notes: List[str]) -> List[Candidate]:
        query = SearchQuery(
            text=identifier,
            thorough=self.thorough,
            allow_substrings=self.allow_substrings,
            min_token_length=self.min_token_length,
        )
        candidates = self._search(query, notes)
        if candidates:
            return candidates

        parts = split_email(identifier)
        if parts is None:
            return []

        local = parts[0]
        notes.append(f"no match for '{identifier}'; retried with local part '{local}'")
        retry = SearchQuery(
            text=local,
            hint=StrategyHint.NAME,
            thorough=True,
            min_token_length=self.min_token_length,
        )
        return self._search(retry, notes)

    def _observation_window(self, candidate: Candidate, notes: List[str]) -> timedelta:
        try:
            return self.directory.get_domain_password_policy(candidate.key).lockout_observation_window
        except Exception as e:
            window = PasswordPolicy().lockout_observation_window
            logger.warning(f"Could not read lockout policy for {candidate.key}: {e}")
            notes.append(f"lockout policy unreadable ({e}); assuming {window}")
            return window

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify(self, identifier: str, password: str) -> List[VerificationOutcome]:
        """
        Verify one claimed credential.

        Returns:
            One outcome per candidate account, or a single outcome when
            nothing (or too much) matched
        """
        if self.auth_probe is None:
            raise ConfigurationError("No authentication probe configured")

        notes: List[str] = []
        candidates = self._resolve(identifier, notes)

        if not candidates:
            notes.append("no matching account")
            logger.info(f"{identifier}: not found")
            return [VerificationOutcome(
                identifier=identifier,
                found=False,
                notes=tuple(notes),
                status=OutcomeStatus.NOT_FOUND,
                password=password,
            )]

        if len(candidates) > self.max_candidates:
            notes.append(
                f"{len(candidates)} candidates exceed the limit of {self.max_candidates}; "
                f"assumed false positive, no password tested"
            )
            logger.info(f"{identifier}: {len(candidates)} candidates, assumed false positive")
            return [VerificationOutcome(
                identifier=identifier,
                found=False,
                notes=tuple(notes),
                status=OutcomeStatus.FALSE_POSITIVE,
                password=password,
            )]

        return [
            self._verify_candidate(identifier, password, candidate, list(notes))
            for candidate in candidates
        ]

    def _verify_candidate(
        self,
        identifier: str,
        password: str,
        candidate: Candidate,
        notes: List[str],
    ) -> VerificationOutcome:
        account_name = candidate.account_name
        notes.append(f"matched {account_name or candidate.key} via {candidate.strategy or 'search'}")

        def outcome(status: OutcomeStatus, checked: bool = False, safe_until: Optional[datetime] = None):
            return VerificationOutcome(
                identifier=identifier,
                found=True,
                candidate_key=candidate.key,
                display_name=candidate.display_name,
                account_name=account_name,
                password_checked=checked,
                password_valid=status == OutcomeStatus.VALID,
                notes=tuple(notes),
                safe_until=safe_until,
                status=status,
                password=password,
            )

        if not account_name:
            notes.append("account has no sAMAccountName; cannot test")
            return outcome(OutcomeStatus.SKIPPED)

        if self.health_check_enabled:
            passed = self.health.precheck(candidate, password, notes)
            if passed:
                window = self._observation_window(candidate, notes)
                passed = self.health.no_recent_failure(candidate, window, notes)
            if not passed:
                logger.info(f"{identifier} -> {account_name}: skipped ({notes[-1]})")
                return outcome(OutcomeStatus.SKIPPED)
        elif not password:
            notes.append("password is empty")
            return outcome(OutcomeStatus.SKIPPED)
        else:
            notes.append("health check disabled; testing without safety gates")
            window = self._observation_window(candidate, notes)

        safe_until = self.clock() + window
        try:
            valid = self.auth_probe.try_authenticate(account_name, password)
        except Exception as e:
            logger.error(f"{identifier} -> {account_name}: unexpected authentication failure: {e}")
            notes.append(f"unexpected failure during authentication ({e}); result suspicious")
            return outcome(OutcomeStatus.SUSPICIOUS, checked=True, safe_until=safe_until)

        if valid:
            notes.append("password is valid")
            logger.warning(f"{identifier} -> {account_name}: password is VALID")
            return outcome(OutcomeStatus.VALID, checked=True, safe_until=safe_until)

        notes.append("password rejected")
        logger.info(f"{identifier} -> {account_name}: password rejected")
        return outcome(OutcomeStatus.INVALID, checked=True, safe_until=safe_until)

    def verify_batch(
        self,
        entries: Iterable[Union[CredentialEntry, tuple]],
        monitor: Optional[LockoutMonitor] = None,
        cancel_event: Optional[threading.Event] = None,
        export_path: Optional[Union[str, Path]] = None,
    ) -> BatchReport:
        """
        Verify many credentials, export them, then watch for lockouts.

        With an export path, lockout alerts from the wait are written to
        its alerts sidecar.

        Raises:
            ConfigurationError: Before any attempt, if the export path is not
                writable or no auth probe is configured
        """
        if self.auth_probe is None:
            raise ConfigurationError("No authentication probe configured")
        if export_path is not None:
            check_writable(export_path)
            check_writable(alerts_path(export_path))

        report = BatchReport()
        for entry in entries:
            if cancel_event is not None and cancel_event.is_set():
                logger.warning("Batch cancelled; remaining credentials were not tested")
                break
            if not isinstance(entry, CredentialEntry):
                entry = CredentialEntry(*entry)
            report.outcomes.extend(self.verify(entry.identifier, entry.password))

        summary = report.summary()
        logger.info(f"Verified {len(report.outcomes)} outcome(s): {summary}")

        if export_path is not None:
            export_outcomes(report.outcomes, export_path)

        if monitor is not None:
            report.monitor = monitor.watch(report.outcomes, cancel_event)
            if export_path is not None and report.monitor.alerts:
                export_alerts(report.monitor.alerts, export_path)
            if not report.wait_honored:
                logger.warning("Lockout observation wait was not honored fully")
        return report
