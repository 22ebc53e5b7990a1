"""Settings loader.

Loads service settings from environment variables with safe defaults.
Backend-specific settings (vault address, credentials) are read by the
backend constructors themselves.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass

from secretcache.errors import ConfigurationError

SUPPORTED_BACKENDS = ("azure", "hashicorp", "env")
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


@dataclass(frozen=True)
class Settings:
    """Service settings loaded from the environment."""

    backend: str = "azure"
    keyvault_name: str | None = None
    keyvault_url: str | None = None
    fetch_timeout: float = 10.0
    bootstrap_timeout: float = 120.0
    max_workers: int = 8
    refresh_max_attempts: int = 3
    refresh_backoff_seconds: float = 1.0
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    @property
    def vault_url(self) -> str | None:
        """Endpoint of the Azure Key Vault, built from its name unless overridden."""
        if self.keyvault_url:
            return self.keyvault_url
        if self.keyvault_name:
            return f"https://{self.keyvault_name}.vault.azure.net"
        return None


def _parse_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {raw!r}")
    return value


def _parse_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {raw!r}")
    return value


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Load settings from environment variables.

    Args:
        env: Mapping to read from (default: os.environ)

    Returns:
        Validated Settings

    Raises:
        ConfigurationError: If a setting is missing or invalid. The Azure
            backend requires AZURE_KEYVAULT_NAME (or AZURE_KEYVAULT_URL).
    """
    if env is None:
        env = os.environ

    backend = env.get("SECRET_CACHE_BACKEND", "azure").strip().lower()
    if backend not in SUPPORTED_BACKENDS:
        raise ConfigurationError(
            f"Unsupported SECRET_CACHE_BACKEND: {backend!r} "
            f"(expected one of: {', '.join(SUPPORTED_BACKENDS)})"
        )

    log_level = env.get("SECRET_CACHE_LOG_LEVEL", "INFO").strip().upper()
    if log_level not in LOG_LEVELS:
        raise ConfigurationError(
            f"Unsupported SECRET_CACHE_LOG_LEVEL: {log_level!r} "
            f"(expected one of: {', '.join(LOG_LEVELS)})"
        )

    keyvault_name = env.get("AZURE_KEYVAULT_NAME") or None
    keyvault_url = env.get("AZURE_KEYVAULT_URL") or None
    if backend == "azure" and not (keyvault_name or keyvault_url):
        raise ConfigurationError(
            "The Azure Key Vault name must be present in the AZURE_KEYVAULT_NAME "
            "environment variable"
        )

    return Settings(
        backend=backend,
        keyvault_name=keyvault_name,
        keyvault_url=keyvault_url,
        fetch_timeout=_parse_float(env, "SECRET_CACHE_FETCH_TIMEOUT", 10.0),
        bootstrap_timeout=_parse_float(env, "SECRET_CACHE_BOOTSTRAP_TIMEOUT", 120.0),
        max_workers=_parse_int(env, "SECRET_CACHE_MAX_WORKERS", 8),
        refresh_max_attempts=_parse_int(env, "SECRET_CACHE_REFRESH_MAX_ATTEMPTS", 3),
        refresh_backoff_seconds=_parse_float(env, "SECRET_CACHE_REFRESH_BACKOFF", 1.0),
        host=env.get("SECRET_CACHE_HOST", "0.0.0.0"),
        port=_parse_int(env, "SECRET_CACHE_PORT", 8080),
        log_level=log_level,
    )
