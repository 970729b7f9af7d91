"""
Warden Directory Module

Contracts for the directory service plus the ldap3 implementation.

Key components:
- DirectoryClient / SchemaProbe / AuthProbe: Collaborator protocols
- Candidate: One matched account
- AccountState: Gate-relevant account facts
- Ldap3DirectoryClient: Active Directory over ldap3
"""

from warden.directory.base import (
    KEY_ATTRIBUTE,
    AuthProbe,
    AuthProbeError,
    Candidate,
    DirectoryClient,
    DirectoryError,
    PasswordPolicy,
    PasswordPolicyValidator,
    SchemaProbe,
    ValidationStatus,
)
from warden.directory.account import AccountState, filetime_to_datetime
from warden.directory.policy import DomainPolicyValidator
from warden.directory.ldap_client import (
    Ldap3AuthProbe,
    Ldap3DirectoryClient,
    Ldap3SchemaProbe,
    connect_from_config,
)

__all__ = [
    "KEY_ATTRIBUTE",
    "AuthProbe",
    "AuthProbeError",
    "Candidate",
    "DirectoryClient",
    "DirectoryError",
    "PasswordPolicy",
    "PasswordPolicyValidator",
    "SchemaProbe",
    "ValidationStatus",
    "AccountState",
    "filetime_to_datetime",
    "DomainPolicyValidator",
    "Ldap3AuthProbe",
    "Ldap3DirectoryClient",
    "Ldap3SchemaProbe",
    "connect_from_config",
]
