"""
ldap3 Directory Client

Active Directory implementations of the Warden collaborators:

- Ldap3DirectoryClient: wildcard searches, account reads, replica
  targeting and domain/fine-grained password policy
- Ldap3SchemaProbe: attribute allow-list for an object class, read from the
  schema naming context
- Ldap3AuthProbe: single bind attempt that separates clean credential
  rejections from everything else

Each replica (domain controller) gets its own lazily opened Connection,
guarded by a lock so the aggregator can fan out across threads.
"""

from __future__ import annotations

import logging
import re
import threading
from datetime import timedelta
from typing import Any, Dict, List, Optional, Set, Tuple

import ldap3
from ldap3 import ALL, BASE, LEVEL, NONE, NTLM, SIMPLE, SUBTREE, Connection, Server
from ldap3.core.exceptions import LDAPException
from ldap3.utils.conv import escape_filter_chars

from warden.config import ConfigurationError, WardenConfig
from warden.directory.base import (
    KEY_ATTRIBUTE,
    AuthProbeError,
    Candidate,
    DirectoryError,
    PasswordPolicy,
)
from warden.directory.policy import DomainPolicyValidator

logger = logging.getLogger(__name__)

USER_FILTER = "(&(objectCategory=person)(objectClass=user){clause})"
DOMAIN_CONTROLLER_FILTER = "(&(objectCategory=computer)(userAccountControl:1.2.840.113556.1.4.803:=8192))"

# pwdProperties
DOMAIN_PASSWORD_COMPLEX = 0x1

# Sub-codes AD appends to invalidCredentials (49) bind results
AD_BIND_SUBCODES = {
    "525": "user not found",
    "52e": "invalid credentials",
    "530": "logon not permitted at this time",
    "531": "logon not permitted at this workstation",
    "532": "password expired",
    "533": "account disabled",
    "568": "too many security identifiers",
    "701": "account expired",
    "773": "user must reset password",
    "775": "account locked out",
}
_SUBCODE_PATTERN = re.compile(r"data ([0-9a-f]{3,4})", re.IGNORECASE)


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _normalize(value: Any) -> Any:
    """Missing attributes come back from ldap3 as []; treat them as null."""
    if isinstance(value, list) and not value:
        return None
    return value


def _as_timedelta(value: Any, default: timedelta) -> timedelta:
    """AD durations are negative 100ns intervals; ldap3 may already format them."""
    if value is None or value == []:
        return default
    if isinstance(value, timedelta):
        return abs(value)
    try:
        return timedelta(microseconds=abs(int(value)) // 10)
    except (TypeError, ValueError):
        return default


def _entry_to_candidate(entry: Dict[str, Any]) -> Candidate:
    attributes = {name: _normalize(value) for name, value in dict(entry.get("attributes", {})).items()}
    attributes.pop(KEY_ATTRIBUTE, None)
    return Candidate(key=entry["dn"], attributes=attributes)


class Ldap3DirectoryClient:
    """
    DirectoryClient over ldap3.

    Example:
        >>> client = Ldap3DirectoryClient("dc01.corp.local", "CORP\\\\svc_warden", "secret")
        >>> client.search(["displayName", "mail"], "smith", ["sAMAccountName"])
    """

    def __init__(
        self,
        server_host: str,
        bind_user: str,
        bind_password: str,
        base_dn: Optional[str] = None,
        use_ssl: bool = False,
        connect_timeout: int = 10,
        per_attribute_queries: bool = False,
        page_size: int = 500,
    ):
        """
        Initialize the client.

        Args:
            server_host: Domain controller used when no replica is targeted
            bind_user: DOMAIN\\user (NTLM) or user@domain / DN (simple bind)
            bind_password: Bind password
            base_dn: Search base; detected from rootDSE when omitted
            use_ssl: Use LDAPS
            connect_timeout: Connection timeout in seconds
            per_attribute_queries: Issue one query per attribute instead of one OR filter
            page_size: Paged search size
        """
        self.server_host = server_host
        self.bind_user = bind_user
        self.bind_password = bind_password
        self.base_dn = base_dn
        self.use_ssl = use_ssl
        self.connect_timeout = connect_timeout
        self.per_attribute_queries = per_attribute_queries
        self.page_size = page_size

        self._connections: Dict[str, Tuple[Connection, threading.Lock]] = {}
        self._connections_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    def _open(self, host: str) -> Connection:
        server = Server(host, use_ssl=self.use_ssl, get_info=ALL, connect_timeout=self.connect_timeout)
        authentication = NTLM if "\\" in self.bind_user else SIMPLE
        try:
            conn = Connection(
                server,
                user=self.bind_user,
                password=self.bind_password,
                authentication=authentication,
                auto_bind=True,
            )
        except LDAPException as e:
            raise DirectoryError(f"Failed to bind to {host}: {e}") from e

        if not self.base_dn and server.info is not None:
            naming = server.info.other.get("defaultNamingContext")
            if naming:
                self.base_dn = str(naming[0])
                logger.info(f"Auto-detected base DN: {self.base_dn}")
        logger.debug(f"Connected to {host} as {self.bind_user}")
        return conn

    def _connection(self, replica: Optional[str]) -> Tuple[Connection, threading.Lock]:
        host = replica or self.server_host
        with self._connections_lock:
            if host not in self._connections:
                self._connections[host] = (self._open(host), threading.Lock())
            return self._connections[host]

    def _root_attribute(self, name: str) -> str:
        conn, _ = self._connection(None)
        value = conn.server.info.other.get(name) if conn.server.info else None
        if not value:
            raise DirectoryError(f"rootDSE does not publish {name}")
        return str(value[0])

    def _search(
        self,
        search_base: str,
        search_filter: str,
        attributes: List[str],
        replica: Optional[str] = None,
        scope: Any = SUBTREE,
    ) -> List[Dict[str, Any]]:
        conn, lock = self._connection(replica)
        logger.debug(f"LDAP search on {replica or self.server_host}: {search_filter}")
        try:
            with lock:
                if scope == SUBTREE:
                    entries = conn.extend.standard.paged_search(
                        search_base=search_base,
                        search_filter=search_filter,
                        search_scope=scope,
                        attributes=attributes,
                        paged_size=self.page_size,
                        generator=False,
                    )
                else:
                    conn.search(
                        search_base=search_base,
                        search_filter=search_filter,
                        search_scope=scope,
                        attributes=attributes,
                    )
                    entries = conn.response
        except LDAPException as e:
            raise DirectoryError(f"Search failed ({search_filter}): {e}") from e
        return [e for e in (entries or []) if e.get("type") == "searchResEntry"]

    def close(self) -> None:
        with self._connections_lock:
            for conn, _ in self._connections.values():
                conn.unbind()
            self._connections.clear()

    # ------------------------------------------------------------------
    # DirectoryClient
    # ------------------------------------------------------------------

    def _search_users(self, clause: str, properties: List[str], replica: Optional[str]) -> List[Candidate]:
        if not self.base_dn:
            self._connection(None)
        entries = self._search(self.base_dn, USER_FILTER.format(clause=clause), properties, replica)
        return [_entry_to_candidate(e) for e in entries]

    def search(
        self,
        filter_attributes: List[str],
        wildcard_text: str,
        properties: List[str],
        replica: Optional[str] = None,
    ) -> List[Candidate]:
        if not filter_attributes or not wildcard_text:
            return []

        value = escape_filter_chars(wildcard_text)
        clauses = [f"({attr}=*{value}*)" for attr in filter_attributes]

        if not self.per_attribute_queries:
            return self._search_users(f"(|{''.join(clauses)})", properties, replica)

        found: Dict[str, Candidate] = {}
        for clause in clauses:
            for candidate in self._search_users(clause, properties, replica):
                found[candidate.key] = candidate
        return list(found.values())

    def get_account(
        self,
        identity: str,
        properties: List[str],
        replica: Optional[str] = None,
    ) -> Optional[Candidate]:
        if "=" in identity and "," in identity:
            entries = self._search(identity, "(objectClass=*)", properties, replica, scope=BASE)
            return _entry_to_candidate(entries[0]) if entries else None

        if "@" in identity:
            clause = f"(userPrincipalName={escape_filter_chars(identity)})"
        else:
            account = identity.split("\\")[-1]
            clause = f"(sAMAccountName={escape_filter_chars(account)})"

        matches = self._search_users(clause, properties, replica)
        return matches[0] if matches else None

    def list_replicas(self) -> List[str]:
        if not self.base_dn:
            self._connection(None)
        entries = self._search(self.base_dn, DOMAIN_CONTROLLER_FILTER, ["dNSHostName"])
        hosts = []
        for entry in entries:
            host = _normalize(entry["attributes"].get("dNSHostName"))
            if host:
                hosts.append(str(host))
        return sorted(hosts)

    def get_domain_password_policy(self, identity: Optional[str] = None) -> PasswordPolicy:
        if identity:
            policy = self._fine_grained_policy(identity)
            if policy is not None:
                return policy

        if not self.base_dn:
            self._connection(None)
        entries = self._search(
            self.base_dn,
            "(objectClass=*)",
            ["minPwdLength", "pwdProperties", "lockOutObservationWindow", "lockoutThreshold", "lockoutDuration"],
            scope=BASE,
        )
        if not entries:
            raise DirectoryError(f"Domain head {self.base_dn} not readable")

        attrs = entries[0]["attributes"]
        defaults = PasswordPolicy()
        return PasswordPolicy(
            min_length=int(_normalize(attrs.get("minPwdLength")) or 0),
            complexity_enabled=bool(int(_normalize(attrs.get("pwdProperties")) or 0) & DOMAIN_PASSWORD_COMPLEX),
            lockout_observation_window=_as_timedelta(
                attrs.get("lockOutObservationWindow"), defaults.lockout_observation_window
            ),
            lockout_threshold=int(_normalize(attrs.get("lockoutThreshold")) or 0),
            lockout_duration=_as_timedelta(attrs.get("lockoutDuration"), defaults.lockout_duration),
        )

    def _fine_grained_policy(self, identity: str) -> Optional[PasswordPolicy]:
        """Resolve the PSO that applies to an account, if any."""
        account = self.get_account(identity, ["msDS-ResultantPSO"])
        pso_dn = account.get("msDS-ResultantPSO") if account else None
        if not pso_dn:
            return None

        entries = self._search(
            str(pso_dn),
            "(objectClass=*)",
            [
                "msDS-MinimumPasswordLength",
                "msDS-PasswordComplexityEnabled",
                "msDS-LockoutObservationWindow",
                "msDS-LockoutThreshold",
                "msDS-LockoutDuration",
            ],
            scope=BASE,
        )
        if not entries:
            logger.warning(f"PSO {pso_dn} for {identity} not readable, using domain policy")
            return None

        attrs = entries[0]["attributes"]
        defaults = PasswordPolicy()
        logger.debug(f"Fine-grained policy {pso_dn} applies to {identity}")
        return PasswordPolicy(
            min_length=int(_normalize(attrs.get("msDS-MinimumPasswordLength")) or 0),
            complexity_enabled=str(_normalize(attrs.get("msDS-PasswordComplexityEnabled"))).upper() == "TRUE",
            lockout_observation_window=_as_timedelta(
                attrs.get("msDS-LockoutObservationWindow"), defaults.lockout_observation_window
            ),
            lockout_threshold=int(_normalize(attrs.get("msDS-LockoutThreshold")) or 0),
            lockout_duration=_as_timedelta(attrs.get("msDS-LockoutDuration"), defaults.lockout_duration),
        )


class Ldap3SchemaProbe:
    """SchemaProbe that walks classSchema objects in the schema naming context."""

    CLASS_ATTRIBUTES = [
        "subClassOf",
        "auxiliaryClass",
        "systemAuxiliaryClass",
        "mayContain",
        "systemMayContain",
        "mustContain",
        "systemMustContain",
    ]

    def __init__(self, directory: Ldap3DirectoryClient):
        self.directory = directory

    def allowed_attributes(self, object_class: str) -> Set[str]:
        schema_nc = self.directory._root_attribute("schemaNamingContext")

        allowed: Set[str] = set()
        seen: Set[str] = set()
        pending = [object_class]

        while pending:
            name = pending.pop()
            if name.lower() in seen:
                continue
            seen.add(name.lower())

            entries = self.directory._search(
                schema_nc,
                f"(&(objectClass=classSchema)(lDAPDisplayName={escape_filter_chars(name)}))",
                self.CLASS_ATTRIBUTES,
                scope=LEVEL,
            )
            for entry in entries:
                attrs = entry["attributes"]
                for key in ("mayContain", "systemMayContain", "mustContain", "systemMustContain"):
                    allowed.update(str(v) for v in _as_list(attrs.get(key)))
                for key in ("subClassOf", "auxiliaryClass", "systemAuxiliaryClass"):
                    pending.extend(str(v) for v in _as_list(attrs.get(key)))

        logger.info(f"Schema probe: {len(allowed)} attributes available on {object_class}")
        return allowed


class Ldap3AuthProbe:
    """
    AuthProbe that performs one NTLM bind (DOMAIN\\account) per attempt.

    A bare sAMAccountName is not a bind name AD resolves reliably, so the
    domain is required.
    """

    def __init__(
        self,
        server_host: str,
        domain: str,
        use_ssl: bool = False,
        connect_timeout: int = 10,
    ):
        if not domain:
            raise ConfigurationError("Authentication probes need the account domain (WARDEN_DOMAIN)")
        self.server_host = server_host
        self.domain = domain
        self.use_ssl = use_ssl
        self.connect_timeout = connect_timeout

    def try_authenticate(self, account_name: str, password: str) -> bool:
        server = Server(self.server_host, use_ssl=self.use_ssl, get_info=NONE, connect_timeout=self.connect_timeout)
        user = f"{self.domain}\\{account_name}"
        conn = Connection(server, user=user, password=password, authentication=NTLM)
        try:
            if conn.bind():
                return True
            result = conn.result or {}
        except LDAPException as e:
            raise AuthProbeError(f"Bind transport failure for {account_name}: {e}") from e
        finally:
            conn.unbind()

        if result.get("result") == 49:
            match = _SUBCODE_PATTERN.search(result.get("message") or "")
            sub_code = match.group(1).lower() if match else None
            if sub_code in (None, "52e"):
                return False
            reason = AD_BIND_SUBCODES.get(sub_code, "unrecognized sub-code")
            raise AuthProbeError(f"Bind for {account_name} rejected with sub-code {sub_code} ({reason})")

        raise AuthProbeError(
            f"Unexpected bind result for {account_name}: {result.get('description')} {result.get('message')}"
        )


def connect_from_config(config: WardenConfig):
    """
    Build the ldap3 collaborators from configuration.

    Returns:
        Tuple of (directory, schema_probe, auth_probe, policy_validator);
        auth_probe is None when no domain is configured

    Raises:
        ConfigurationError: If no server or bind account is configured
    """
    if not config.ldap_server:
        raise ConfigurationError("No directory server configured (WARDEN_LDAP_SERVER)")
    if not config.bind_user:
        raise ConfigurationError("No bind account configured (WARDEN_BIND_USER)")

    logger.info(f"Using ldap3 {ldap3.__version__} against {config.ldap_server}")
    directory = Ldap3DirectoryClient(
        server_host=config.ldap_server,
        bind_user=config.bind_user,
        bind_password=config.bind_password,
        base_dn=config.base_dn or None,
        use_ssl=config.use_ssl,
        connect_timeout=config.connect_timeout,
        per_attribute_queries=config.per_attribute_queries,
    )
    auth_probe = None
    if config.domain:
        auth_probe = Ldap3AuthProbe(
            server_host=config.ldap_server,
            domain=config.domain,
            use_ssl=config.use_ssl,
            connect_timeout=config.connect_timeout,
        )
    else:
        logger.debug("No account domain configured (WARDEN_DOMAIN); passwords cannot be tested")
    return directory, Ldap3SchemaProbe(directory), auth_probe, DomainPolicyValidator(directory)
