"""
Warden configuration management.

Settings come from WARDEN_* environment variables; the CLI overrides
individual fields from its flags.
"""

from pydantic import BaseModel, Field
import os


class ConfigurationError(Exception):
    """Raised for fatal setup problems detected before any work starts."""
    pass


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class WardenConfig(BaseModel):
    """Configuration for Warden."""

    # Directory connection
    ldap_server: str = Field(
        default_factory=lambda: os.getenv("WARDEN_LDAP_SERVER", "")
    )
    base_dn: str = Field(
        default_factory=lambda: os.getenv("WARDEN_BASE_DN", "")
    )
    bind_user: str = Field(
        default_factory=lambda: os.getenv("WARDEN_BIND_USER", "")
    )
    bind_password: str = Field(
        default_factory=lambda: os.getenv("WARDEN_BIND_PASSWORD", "")
    )
    # NetBIOS or DNS domain used to build DOMAIN\account for auth probes
    domain: str = Field(
        default_factory=lambda: os.getenv("WARDEN_DOMAIN", "")
    )
    use_ssl: bool = Field(
        default_factory=lambda: _env_bool("WARDEN_USE_SSL", "false")
    )
    connect_timeout: int = Field(
        default_factory=lambda: int(os.getenv("WARDEN_CONNECT_TIMEOUT", "10"))
    )
    per_attribute_queries: bool = Field(
        default_factory=lambda: _env_bool("WARDEN_PER_ATTRIBUTE_QUERIES", "false")
    )

    # Resolution
    max_recursion_depth: int = Field(
        default_factory=lambda: int(os.getenv("WARDEN_MAX_RECURSION_DEPTH", "5"))
    )
    min_token_length: int = Field(
        default_factory=lambda: int(os.getenv("WARDEN_MIN_TOKEN_LENGTH", "3"))
    )
    thorough: bool = Field(
        default_factory=lambda: _env_bool("WARDEN_THOROUGH", "false")
    )
    allow_substrings: bool = Field(
        default_factory=lambda: _env_bool("WARDEN_ALLOW_SUBSTRINGS", "false")
    )

    # Verification
    max_candidates: int = Field(
        default_factory=lambda: int(os.getenv("WARDEN_MAX_CANDIDATES", "5"))
    )
    health_check: bool = Field(
        default_factory=lambda: _env_bool("WARDEN_HEALTH_CHECK", "true")
    )
    policy_prefilter: bool = Field(
        default_factory=lambda: _env_bool("WARDEN_POLICY_PREFILTER", "true")
    )

    # Lockout monitoring
    monitor: bool = Field(
        default_factory=lambda: _env_bool("WARDEN_MONITOR", "true")
    )
    monitor_interval_seconds: float = Field(
        default_factory=lambda: float(os.getenv("WARDEN_MONITOR_INTERVAL", "60"))
    )

    # Logging
    log_level: str = Field(
        default_factory=lambda: os.getenv("WARDEN_LOG_LEVEL", "INFO")
    )

    @classmethod
    def from_env(cls) -> "WardenConfig":
        """Create config from environment variables."""
        return cls()
