"""
Integration test for the verification pipeline.

Loads a credential dump, verifies every entry against an in-memory
directory, exports the outcomes and waits out the lockout window.
"""

import threading
from datetime import timedelta

import pandas as pd
import pytest

from warden.directory.account import UF_LOCKOUT, UF_PASSWORD_EXPIRED
from warden.ingest.loader import load_credentials
from warden.replicas.aggregator import ReplicaAggregator
from warden.resolution.resolver import Resolver
from warden.verification.monitor import LockoutMonitor
from warden.verification.outcome import OutcomeStatus
from warden.verification.verifier import CredentialVerifier

from conftest import JOHN_DN, MARY_DN, NOW, FakeAuthProbe, make_account

ANN_DN = "CN=Ann Lee,OU=Staff,DC=corp,DC=local"
BOB_DN = "CN=Bob Stone,OU=Staff,DC=corp,DC=local"


class LockingAuthProbe(FakeAuthProbe):
    """Locks an account after one bad password, like a threshold of one."""

    def __init__(self, directory, passwords):
        super().__init__(passwords)
        self.directory = directory

    def try_authenticate(self, account_name, password):
        valid = super().try_authenticate(account_name, password)
        if not valid:
            for attrs in self.directory.accounts.values():
                if attrs["sAMAccountName"] == account_name:
                    attrs["msDS-User-Account-Control-Computed"] = UF_LOCKOUT
        return valid


class SteppingClock:
    """Clock that moves forward by a fixed step on every read."""

    def __init__(self, start, step):
        self.now = start
        self.step = step

    def __call__(self):
        current = self.now
        self.now += self.step
        return current


@pytest.fixture
def populated(directory):
    directory.add(make_account(ANN_DN, "alee", "Ann", "Lee", **{"msDS-User-Account-Control-Computed": UF_PASSWORD_EXPIRED}))
    directory.add(make_account(BOB_DN, "bstone", "Bob", "Stone"))
    directory.set_replica_value("dc02.corp.local", BOB_DN, "badPasswordTime", NOW - timedelta(minutes=3))
    return directory


@pytest.fixture
def dump(tmp_path):
    path = tmp_path / "dump.txt"
    path.write_text(
        "# credentials from paste site\n"
        "john.smith@corp.local:Summer2024!\n"
        "Jones, Mary:guess1\n"
        "alee:Spring2024!\n"
        "bstone:Autumn2024!\n"
        "ghost.user@corp.local:whatever\n"
    )
    return path


class TestVerificationPipeline:
    """End-to-end verification tests."""

    def test_batch_with_lockout(self, populated, dump, tmp_path):
        """Test one valid, one lockout, two skips and one miss."""
        probe = LockingAuthProbe(populated, {"jsmith": "Summer2024!", "mjones": "Winter2024!"})
        aggregator = ReplicaAggregator(populated)
        verifier = CredentialVerifier(
            Resolver(populated),
            populated,
            probe,
            aggregator=aggregator,
            clock=lambda: NOW,
        )
        alerts = []
        monitor = LockoutMonitor(
            populated,
            aggregator,
            interval_seconds=0,
            clock=SteppingClock(NOW, timedelta(minutes=10)),
            on_lockout=alerts.append,
        )
        export = tmp_path / "results.csv"

        report = verifier.verify_batch(load_credentials(dump), monitor=monitor, export_path=export)

        statuses = {o.identifier: o.status for o in report.outcomes}
        assert statuses == {
            "john.smith@corp.local": OutcomeStatus.VALID,
            "Jones, Mary": OutcomeStatus.INVALID,
            "alee": OutcomeStatus.SKIPPED,
            "bstone": OutcomeStatus.SKIPPED,
            "ghost.user@corp.local": OutcomeStatus.NOT_FOUND,
        }
        assert [name for name, _ in probe.attempts] == ["jsmith", "mjones"]

        assert report.wait_honored
        assert report.monitor.watched == 2
        assert [a.candidate_key for a in alerts] == [MARY_DN]
        assert report.summary()["lockouts"] == 1

        frame = pd.read_csv(export)
        assert len(frame) == 5
        assert frame.loc[frame["identifier"] == "alee", "notes"].iloc[0].endswith("password is already expired")

        alerts_file = pd.read_csv(tmp_path / "results.alerts.csv")
        assert list(alerts_file["candidate_key"]) == [MARY_DN]
        assert list(alerts_file["account_name"]) == ["mjones"]

    def test_cancelled_batch(self, populated, dump):
        """Test that cancelling the wait leaves tested accounts unverified."""
        probe = FakeAuthProbe({"jsmith": "Summer2024!"})
        aggregator = ReplicaAggregator(populated)
        verifier = CredentialVerifier(Resolver(populated), populated, probe, aggregator=aggregator, clock=lambda: NOW)
        cancel = threading.Event()
        timers = []

        def monitor_clock():
            # Interrupt from another thread once the monitor is polling
            if not timers:
                timers.append(threading.Timer(0.1, cancel.set))
                timers[0].start()
            return NOW

        monitor = LockoutMonitor(populated, aggregator, interval_seconds=3600, clock=monitor_clock)
        try:
            report = verifier.verify_batch(load_credentials(dump), monitor=monitor, cancel_event=cancel)
        finally:
            for timer in timers:
                timer.cancel()

        assert not report.wait_honored
        assert sorted(report.monitor.abandoned) == sorted([JOHN_DN, MARY_DN])
