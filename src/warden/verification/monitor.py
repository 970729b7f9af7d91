"""
Lockout Monitor - Watch tested accounts until their observation windows close.

After a batch, every account that received an authentication attempt is
polled on a fixed interval. Each pass reads the account state and the
latest bad-password time across every replica. A locked account is
reported immediately (with contact details for the responder) and dropped
from the watch set; accounts whose safe_until has passed are dropped
quietly. A bad-password time that moves between passes is recorded as a
failure that happened after the test. The wait ends
when the watch set is empty or the cancel event is set.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from warden.directory.account import (
    BAD_PASSWORD_TIME,
    CONTACT_PROPERTIES,
    STATE_PROPERTIES,
    AccountState,
    filetime_to_datetime,
    utcnow,
)
from warden.directory.base import DirectoryClient
from warden.replicas.aggregator import AggregationMethod, ReplicaAggregator
from warden.verification.outcome import LockoutAlert, MonitorReport, VerificationOutcome

logger = logging.getLogger(__name__)

MONITOR_PROPERTIES = list(STATE_PROPERTIES) + list(CONTACT_PROPERTIES)


class LockoutMonitor:
    """
    Poll tested accounts for lockouts.

    Example:
        >>> monitor = LockoutMonitor(directory, aggregator, interval_seconds=60)
        >>> report = monitor.watch(outcomes, cancel_event)
        >>> report.completed, len(report.alerts)
        (True, 0)
    """

    def __init__(
        self,
        directory: DirectoryClient,
        aggregator: ReplicaAggregator,
        interval_seconds: float = 60.0,
        clock: Optional[Callable[[], datetime]] = None,
        on_lockout: Optional[Callable[[LockoutAlert], None]] = None,
    ):
        """
        Initialize the monitor.

        Args:
            directory: Directory client for account state reads
            aggregator: Replica aggregator for the last bad-password time
            interval_seconds: Pause between polling passes
            clock: Time source (for tests)
            on_lockout: Called with every alert as soon as it is raised
        """
        self.directory = directory
        self.aggregator = aggregator
        self.interval_seconds = interval_seconds
        self.clock = clock or utcnow
        self.on_lockout = on_lockout

    def _last_bad_password(self, key: str) -> Tuple[bool, Optional[datetime], List[str]]:
        """(read ok, latest bad password across replicas, replicas holding it)"""
        try:
            result = self.aggregator.aggregate(
                key, [BAD_PASSWORD_TIME], AggregationMethod.MAXIMUM
            )[BAD_PASSWORD_TIME]
        except Exception as e:
            logger.warning(f"Could not read last bad password for {key}: {e}")
            return False, None, []
        return True, filetime_to_datetime(result.value), list(result.source_replicas)

    @staticmethod
    def _record_bad_password(
        key: str,
        last_bad: Optional[datetime],
        replicas: List[str],
        report: MonitorReport,
    ) -> None:
        first_reading = key not in report.last_bad_password
        previous = report.last_bad_password.get(key)
        report.last_bad_password[key] = last_bad
        if first_reading or last_bad is None:
            return
        if previous is None or last_bad > previous:
            report.later_failures[key] = last_bad
            logger.warning(
                f"New bad password for {key} at {last_bad.isoformat()} "
                f"({', '.join(replicas) or 'unknown replica'}) while monitoring"
            )

    def _check(
        self,
        outcome: VerificationOutcome,
        now: datetime,
        report: MonitorReport,
    ) -> Optional[LockoutAlert]:
        """Poll one account; returns an alert if it is locked."""
        key = outcome.candidate_key
        read, last_bad, replicas = self._last_bad_password(key)
        if read:
            self._record_bad_password(key, last_bad, replicas, report)

        try:
            account = self.directory.get_account(key, MONITOR_PROPERTIES)
        except Exception as e:
            logger.warning(f"Could not poll {key}: {e}")
            return None
        if account is None:
            logger.warning(f"{key} no longer found while monitoring")
            return None

        if not AccountState.from_candidate(account).locked:
            return None

        return LockoutAlert(
            candidate_key=key,
            account_name=account.account_name or outcome.account_name,
            display_name=account.display_name or outcome.display_name,
            detected_at=now,
            last_bad_password=last_bad,
            last_bad_password_replicas=tuple(replicas),
            contact={name: account.get(name) for name in CONTACT_PROPERTIES},
        )

    def _raise_alert(self, alert: LockoutAlert, report: MonitorReport) -> None:
        report.alerts.append(alert)
        logger.error(f"LOCKOUT: {alert.describe()}")
        if self.on_lockout is not None:
            self.on_lockout(alert)

    def watch(
        self,
        outcomes: Iterable[VerificationOutcome],
        cancel_event: Optional[threading.Event] = None,
    ) -> MonitorReport:
        """
        Watch every tested account until it is safe, locked, or the wait is cancelled.

        Args:
            outcomes: Verification outcomes; only those with password_checked
                are watched
            cancel_event: Set to stop waiting early

        Returns:
            MonitorReport; cancelled is True (and abandoned lists the keys
            still being watched) when the wait was cut short
        """
        cancel = cancel_event or threading.Event()
        watching: Dict[str, VerificationOutcome] = {}
        for outcome in outcomes:
            if outcome.password_checked and outcome.candidate_key and outcome.safe_until:
                current = watching.get(outcome.candidate_key)
                if current is None or outcome.safe_until > current.safe_until:
                    watching[outcome.candidate_key] = outcome

        report = MonitorReport(watched=len(watching))
        if not watching:
            return report

        report.wait_until = max(o.safe_until for o in watching.values())
        logger.info(f"Watching {len(watching)} account(s) for lockouts until {report.wait_until.isoformat()}")

        while watching:
            if cancel.is_set():
                self._abandon(watching, report)
                break

            report.passes += 1
            now = self.clock()
            for key, outcome in list(watching.items()):
                alert = self._check(outcome, now, report)
                if alert is not None:
                    self._raise_alert(alert, report)
                    del watching[key]
                elif now >= outcome.safe_until:
                    logger.info(f"{outcome.account_name or key} is past its observation window")
                    del watching[key]

            if not watching:
                break

            remaining = (report.wait_until - self.clock()).total_seconds()
            if cancel.wait(max(0.0, min(self.interval_seconds, remaining))):
                self._abandon(watching, report)
                break

        logger.info(f"Lockout monitoring finished after {report.passes} pass(es), {len(report.alerts)} lockout(s)")
        return report

    @staticmethod
    def _abandon(watching: Dict[str, VerificationOutcome], report: MonitorReport) -> None:
        report.cancelled = True
        report.abandoned = sorted(watching)
        watching.clear()
        logger.warning(
            f"Lockout wait cancelled; {len(report.abandoned)} account(s) not fully verified: "
            f"{', '.join(report.abandoned)}"
        )
