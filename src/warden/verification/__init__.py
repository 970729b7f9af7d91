"""
Warden Verification Module

Safe testing of claimed credentials.

Key components:
- CredentialVerifier: Resolve, gate and test each credential
- HealthCheck: Pre-authentication safety gates
- LockoutMonitor: Post-test lockout watch
"""

from warden.verification.outcome import (
    BatchReport,
    CredentialEntry,
    LockoutAlert,
    MonitorReport,
    OutcomeStatus,
    VerificationOutcome,
)
from warden.verification.health import HealthCheck
from warden.verification.monitor import LockoutMonitor
from warden.verification.verifier import CredentialVerifier

__all__ = [
    "BatchReport",
    "CredentialEntry",
    "LockoutAlert",
    "MonitorReport",
    "OutcomeStatus",
    "VerificationOutcome",
    "HealthCheck",
    "LockoutMonitor",
    "CredentialVerifier",
]
