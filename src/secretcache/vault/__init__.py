"""Vault client interfaces and implementations.

This module provides read-only abstractions for enumerating and fetching
secrets from the vault the cache mirrors.
"""

from .env_vault import EnvVaultClient
from .factory import get_vault_client
from .interface import VaultClient

__all__ = [
    "VaultClient",
    "EnvVaultClient",
    "get_vault_client",
]
