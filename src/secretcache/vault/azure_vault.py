"""Azure Key Vault client.

Reads secrets from an Azure Key Vault using the azure-keyvault-secrets SDK.
Authentication goes through azure-identity's DefaultAzureCredential, which
reads AZURE_TENANT_ID, AZURE_CLIENT_ID and AZURE_CLIENT_SECRET (or uses a
managed identity / developer login when those are absent).
"""

import logging
import os
from collections.abc import Iterator

from azure.core.exceptions import AzureError, HttpResponseError, ResourceNotFoundError
from azure.identity import DefaultAzureCredential
from azure.keyvault.secrets import SecretClient

from ..errors import (
    AccessDeniedError,
    ConfigurationError,
    SecretNotFoundError,
    TransientFetchError,
)
from .interface import VaultClient

logger = logging.getLogger(__name__)

# Disabled secrets and missing permissions
NON_RETRYABLE_STATUS_CODES = (401, 403)


class AzureKeyVaultClient(VaultClient):
    """Vault client backed by Azure Key Vault.

    Configuration:
    - AZURE_KEYVAULT_URL: Full vault URL (e.g., "https://my-vault.vault.azure.net")
    - AZURE_KEYVAULT_NAME: Vault name, used to build the URL when no URL is given

    Disabled secrets are left out of the listing, since their values cannot
    be read.
    """

    def __init__(
        self,
        vault_url: str | None = None,
        vault_name: str | None = None,
        credential=None,
        timeout: float = 10.0,
        client: SecretClient | None = None,
    ):
        """Initialize the Azure Key Vault client.

        Args:
            vault_url: Vault URL (default: from AZURE_KEYVAULT_URL env var)
            vault_name: Vault name (default: from AZURE_KEYVAULT_NAME env var)
            credential: Azure credential (default: DefaultAzureCredential())
            timeout: Connection and read timeout per request, in seconds
            client: Pre-built SecretClient, mainly for tests

        Raises:
            ConfigurationError: If neither a vault URL nor a vault name is available
        """
        vault_name = vault_name or os.getenv("AZURE_KEYVAULT_NAME")
        self.vault_url = vault_url or os.getenv("AZURE_KEYVAULT_URL")
        if not self.vault_url and vault_name:
            self.vault_url = f"https://{vault_name}.vault.azure.net"

        if client is None:
            if not self.vault_url:
                raise ConfigurationError(
                    "AZURE_KEYVAULT_NAME environment variable or vault_name parameter is required"
                )
            self._credential = credential or DefaultAzureCredential()
            client = SecretClient(
                vault_url=self.vault_url,
                credential=self._credential,
                connection_timeout=timeout,
                read_timeout=timeout,
            )
        else:
            self._credential = credential

        self.client = client
        logger.info("Initialized AzureKeyVaultClient for vault: %s", self.vault_url)

    def list_secret_names(self) -> Iterator[str]:
        """Enumerate enabled secret names, page by page."""
        try:
            for properties in self.client.list_properties_of_secrets():
                if properties.enabled is False:
                    logger.debug("Skipping disabled secret: %s", properties.name)
                    continue
                yield properties.name
        except AzureError as e:
            logger.error("Failed to list secrets: %s", e)
            raise TransientFetchError("*", f"Failed to list secrets: {e}") from e

    def get_secret(self, name: str) -> str:
        """Fetch the latest version of a secret."""
        try:
            secret = self.client.get_secret(name)
        except ResourceNotFoundError as e:
            logger.warning("Secret not found: %s", name)
            raise SecretNotFoundError(name) from e
        except HttpResponseError as e:
            if e.status_code not in NON_RETRYABLE_STATUS_CODES:
                logger.error("Failed to retrieve secret %s: %s", name, e)
                raise TransientFetchError(name, f"Failed to retrieve secret {name}: {e}") from e
            logger.warning("Access denied to secret %s (HTTP %s)", name, e.status_code)
            raise AccessDeniedError(name, f"Access denied to secret {name}: {e}") from e
        except AzureError as e:
            logger.error("Failed to retrieve secret %s: %s", name, e)
            raise TransientFetchError(name, f"Failed to retrieve secret {name}: {e}") from e

        if secret.value is None:
            raise SecretNotFoundError(name)
        return secret.value

    def close(self) -> None:
        self.client.close()
        if self._credential is not None and hasattr(self._credential, "close"):
            self._credential.close()
