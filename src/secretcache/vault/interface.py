"""Vault client interface definition.

This module defines the read-only contract the secret cache consumes from a
secret vault backend.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterator


class VaultClient(ABC):
    """Abstract read-only interface to a secret vault.

    All vault backends must implement this interface so the cache can
    enumerate and fetch secrets without knowing which service holds them
    (Azure Key Vault, HashiCorp Vault, environment variables, etc.).

    Security considerations:
    - Secret values are never logged by implementations
    - Authentication is handled by the backend's own credential provider
    """

    @abstractmethod
    def list_secret_names(self) -> Iterator[str]:
        """Enumerate the names of all secrets currently in the vault.

        The iterator is lazy and finite. Each call starts a fresh listing,
        so the cache can re-enumerate on a later bootstrap.

        Returns:
            Iterator over secret names

        Raises:
            TransientFetchError: If the listing cannot be completed
        """
        pass

    @abstractmethod
    def get_secret(self, name: str) -> str:
        """Fetch the current value of a secret.

        Args:
            name: Secret name as returned by list_secret_names()

        Returns:
            The current secret value

        Raises:
            SecretNotFoundError: If no secret with this name exists
            TransientFetchError: If the vault could not be reached
        """
        pass

    def close(self) -> None:
        """Release any resources held by the client."""
