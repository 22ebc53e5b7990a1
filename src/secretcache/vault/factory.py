"""Factory for creating vault client instances.

This module returns the appropriate vault client based on the loaded settings.
"""

import logging

from ..config import Settings
from ..errors import ConfigurationError
from .interface import VaultClient

logger = logging.getLogger(__name__)


def get_vault_client(settings: Settings) -> VaultClient:
    """Get a vault client instance for the configured backend.

    The backend is selected by Settings.backend (SECRET_CACHE_BACKEND):
    - "azure": AzureKeyVaultClient (default)
    - "hashicorp": HashiCorpVaultClient
    - "env": EnvVaultClient (development only)

    Args:
        settings: Loaded service settings

    Returns:
        A VaultClient instance

    Raises:
        ConfigurationError: If the backend is unsupported or misconfigured
    """
    backend = settings.backend

    if backend == "azure":
        from .azure_vault import AzureKeyVaultClient

        logger.info("Using AzureKeyVaultClient")
        return AzureKeyVaultClient(vault_url=settings.vault_url, timeout=settings.fetch_timeout)
    elif backend == "hashicorp":
        from .hashicorp_vault import HashiCorpVaultClient

        logger.info("Using HashiCorpVaultClient")
        return HashiCorpVaultClient(timeout=settings.fetch_timeout)
    elif backend == "env":
        from .env_vault import EnvVaultClient

        logger.info("Using EnvVaultClient (development mode)")
        return EnvVaultClient()
    else:
        raise ConfigurationError(f"Unsupported vault backend: {backend}")
