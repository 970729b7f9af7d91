"""
Warden - Identity resolution and safe credential verification

Find the directory accounts behind loose identifiers and test claimed
passwords without locking anyone out.

Modules:
- directory: Directory client contracts and the ldap3 implementation
- resolution: Multi-strategy fuzzy account search
- replicas: Aggregation of replica-local attributes
- verification: Health checks, credential testing and lockout monitoring
- ingest: Credential loading and result export
"""

__version__ = "0.1.0"
__author__ = "Warden Development Team"

# Re-export key classes for convenience
from warden.config import ConfigurationError, WardenConfig
from warden.directory import (
    Candidate,
    DirectoryError,
    AuthProbeError,
    PasswordPolicy,
    AccountState,
)
from warden.resolution import (
    Resolver,
    SearchQuery,
    StrategyHint,
    AttributeSets,
)
from warden.replicas import (
    ReplicaAggregator,
    AggregationMethod,
    AggregationResult,
    AggregationError,
)
from warden.verification import (
    CredentialVerifier,
    HealthCheck,
    LockoutMonitor,
    VerificationOutcome,
    OutcomeStatus,
    CredentialEntry,
)
from warden.ingest import load_credentials, export_outcomes

__all__ = [
    # Version
    "__version__",
    # Config
    "ConfigurationError",
    "WardenConfig",
    # Directory
    "Candidate",
    "DirectoryError",
    "AuthProbeError",
    "PasswordPolicy",
    "AccountState",
    # Resolution
    "Resolver",
    "SearchQuery",
    "StrategyHint",
    "AttributeSets",
    # Replicas
    "ReplicaAggregator",
    "AggregationMethod",
    "AggregationResult",
    "AggregationError",
    # Verification
    "CredentialVerifier",
    "HealthCheck",
    "LockoutMonitor",
    "VerificationOutcome",
    "OutcomeStatus",
    "CredentialEntry",
    # Ingest
    "load_credentials",
    "export_outcomes",
]
