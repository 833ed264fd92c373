"""
Configuration for the knative-run proxy.

Every setting has a compiled-in default, so the proxy runs with no
environment at all. Values can be overridden through environment
variables or by constructing ProxyConfig directly (tests do this).
"""

import os
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Tuple

ENV_PREFIX = "KNATIVE_RUN_PROXY_"


@dataclass(frozen=True)
class ProxyConfig:
    """
    Immutable settings for the proxy.

    Built once at startup and handed to create_app(); handlers never
    read configuration from anywhere else.
    """

    # === Listener ===
    listen_host: str = "localhost"
    """Address the TLS listener binds to."""

    listen_port: int = 6443
    """Port the TLS listener binds to."""

    # === Backends ===
    resource_backend: str = "us-central1-run.googleapis.com"
    """Live API host for namespaced resource requests (verified TLS)."""

    discovery_backend: str = "146.148.59.112"
    """Host serving discovery and schema documents (unverified TLS)."""

    backend_scheme: str = "https"
    """Scheme used for every outbound request."""

    namespace_marker: str = "namespaces"
    """Path segment that marks a namespaced resource request."""

    upstream_timeout: Optional[float] = None
    """Outbound timeout in seconds (None = wait forever)."""

    # === TLS identity ===
    cert_dns_names: Tuple[str, ...] = field(default=("localhost", "lokalhost.local"))
    """DNS names placed in the certificate's subjectAltName."""

    cert_key_size: int = 2048
    """RSA modulus size for the ephemeral server key."""

    # === Logging ===
    log_level: str = "INFO"
    """Root log level when not running with --verbose."""

    @classmethod
    def from_env(cls) -> "ProxyConfig":
        """
        Load configuration from environment variables.

        Variable names are KNATIVE_RUN_PROXY_<SETTING> in uppercase,
        e.g. KNATIVE_RUN_PROXY_LISTEN_PORT. Backend hosts, scheme and the
        namespace marker decide which peers are verified, so they keep
        their compiled-in values and can only be changed in code.
        """
        defaults = cls()

        def get_int(key: str, default: int) -> int:
            return int(os.getenv(f"{ENV_PREFIX}{key}", default))

        def get_str(key: str, default: str) -> str:
            return os.getenv(f"{ENV_PREFIX}{key}", default)

        def get_timeout(key: str, default: Optional[float]) -> Optional[float]:
            val = os.getenv(f"{ENV_PREFIX}{key}")
            if not val or val.lower() == "none":
                return default
            return float(val)

        def get_names(key: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
            val = os.getenv(f"{ENV_PREFIX}{key}")
            if val:
                return tuple(s.strip() for s in val.split(",") if s.strip())
            return default

        return cls(
            # Listener
            listen_host=get_str("LISTEN_HOST", defaults.listen_host),
            listen_port=get_int("LISTEN_PORT", defaults.listen_port),

            # Backends
            upstream_timeout=get_timeout("UPSTREAM_TIMEOUT", defaults.upstream_timeout),

            # TLS identity
            cert_dns_names=get_names("CERT_DNS_NAMES", defaults.cert_dns_names),
            cert_key_size=get_int("CERT_KEY_SIZE", defaults.cert_key_size),

            # Logging
            log_level=get_str("LOG_LEVEL", defaults.log_level).upper(),
        )

    def with_overrides(self, **changes: Any) -> "ProxyConfig":
        """Return a copy with the non-None keyword arguments applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "listener": {
                "listen_host": self.listen_host,
                "listen_port": self.listen_port,
            },
            "backends": {
                "resource_backend": self.resource_backend,
                "discovery_backend": self.discovery_backend,
                "backend_scheme": self.backend_scheme,
                "namespace_marker": self.namespace_marker,
                "upstream_timeout": self.upstream_timeout,
            },
            "tls": {
                "cert_dns_names": list(self.cert_dns_names),
                "cert_key_size": self.cert_key_size,
            },
            "logging": {
                "log_level": self.log_level,
            },
        }

    def get_summary(self) -> str:
        """Get a human-readable configuration summary."""
        timeout = "none" if self.upstream_timeout is None else f"{self.upstream_timeout}s"
        lines = [
            "=== knative-run proxy ===",
            "",
            f"Listening on: https://{self.listen_host}:{self.listen_port}",
            "",
            "Backends:",
            f"  Resources (verified): {self.backend_scheme}://{self.resource_backend}",
            f"  Discovery (unverified): {self.backend_scheme}://{self.discovery_backend}",
            f"  Upstream timeout: {timeout}",
            "",
            "TLS:",
            f"  DNS names: {', '.join(self.cert_dns_names)}",
            f"  Key size: {self.cert_key_size}",
        ]
        return "\n".join(lines)


# Global default configuration (can be overridden)
_default_config: Optional[ProxyConfig] = None


def get_config() -> ProxyConfig:
    """
    Get the current configuration.

    Returns the global default config, initializing from environment
    if not already set.
    """
    global _default_config
    if _default_config is None:
        _default_config = ProxyConfig.from_env()
    return _default_config


def set_config(config: ProxyConfig) -> None:
    """Set the global default configuration."""
    global _default_config
    _default_config = config


def reset_config() -> None:
    """Reset configuration to defaults (reload from environment)."""
    global _default_config
    _default_config = None
