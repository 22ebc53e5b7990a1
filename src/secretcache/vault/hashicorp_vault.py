"""HashiCorp Vault client.

Reads secrets from a KV v2 secrets engine. It supports both token-based
authentication (for development) and AppRole authentication (recommended
for production). Secret names are KV paths relative to the mount, and each
secret's value is stored under its "value" key.
"""

import logging
import os
from collections.abc import Iterator

import hvac
from hvac.exceptions import Forbidden, InvalidPath, Unauthorized, VaultError

from ..errors import (
    AccessDeniedError,
    ConfigurationError,
    SecretNotFoundError,
    TransientFetchError,
)
from .interface import VaultClient

logger = logging.getLogger(__name__)


class HashiCorpVaultClient(VaultClient):
    """Vault client backed by HashiCorp Vault.

    Configuration:
    - VAULT_ADDR: Vault server address (e.g., "https://vault.example.com:8200")
    - VAULT_TOKEN: Direct token authentication (development only)
    - VAULT_ROLE_ID + VAULT_SECRET_ID: AppRole authentication (production)
    - VAULT_MOUNT: KV secrets engine mount point (default: "secret")
    - VAULT_NAMESPACE: Vault namespace (optional, for Vault Enterprise)
    """

    def __init__(
        self,
        vault_addr: str | None = None,
        vault_token: str | None = None,
        vault_role_id: str | None = None,
        vault_secret_id: str | None = None,
        vault_mount: str | None = None,
        vault_namespace: str | None = None,
        max_depth: int = 10,
        timeout: float = 10.0,
    ):
        """Initialize the HashiCorp Vault client.

        Args:
            vault_addr: Vault server address (default: from VAULT_ADDR env var)
            vault_token: Direct token for authentication (default: from VAULT_TOKEN env var)
            vault_role_id: AppRole role ID (default: from VAULT_ROLE_ID env var)
            vault_secret_id: AppRole secret ID (default: from VAULT_SECRET_ID env var)
            vault_mount: KV mount point (default: from VAULT_MOUNT env var or "secret")
            vault_namespace: Vault namespace (default: from VAULT_NAMESPACE env var)
            max_depth: Maximum directory depth traversed when listing
            timeout: Request timeout in seconds

        Raises:
            ConfigurationError: If required configuration is missing
            TransientFetchError: If Vault cannot be reached or authentication fails
        """
        self.vault_addr = vault_addr or os.getenv("VAULT_ADDR")
        self.vault_token = vault_token or os.getenv("VAULT_TOKEN")
        self.vault_role_id = vault_role_id or os.getenv("VAULT_ROLE_ID")
        self.vault_secret_id = vault_secret_id or os.getenv("VAULT_SECRET_ID")
        self.vault_mount = vault_mount or os.getenv("VAULT_MOUNT", "secret")
        self.vault_namespace = vault_namespace or os.getenv("VAULT_NAMESPACE")
        self.max_depth = max_depth
        self.timeout = timeout

        self._validate_config()
        self.client = self._initialize_client()

        logger.info(
            "Initialized HashiCorpVaultClient with mount: %s, namespace: %s",
            self.vault_mount,
            self.vault_namespace or "default",
        )

    def _validate_config(self) -> None:
        """Validate the Vault configuration.

        Raises:
            ConfigurationError: If required configuration is missing
        """
        if not self.vault_addr:
            raise ConfigurationError(
                "VAULT_ADDR environment variable or vault_addr parameter is required"
            )

        has_token = bool(self.vault_token)
        has_approle = bool(self.vault_role_id and self.vault_secret_id)

        if not has_token and not has_approle:
            raise ConfigurationError(
                "Either VAULT_TOKEN or both VAULT_ROLE_ID and VAULT_SECRET_ID "
                "environment variables must be set"
            )

        if has_token and has_approle:
            logger.warning(
                "Both token and AppRole credentials provided. Using token authentication."
            )

    def _initialize_client(self) -> hvac.Client:
        """Initialize and authenticate the hvac client.

        Returns:
            Authenticated hvac.Client instance

        Raises:
            TransientFetchError: If authentication fails
        """
        try:
            client = hvac.Client(
                url=self.vault_addr,
                namespace=self.vault_namespace,
                timeout=self.timeout,
            )

            if self.vault_token:
                client.token = self.vault_token
                logger.info("Using token authentication")
            else:
                response = client.auth.approle.login(
                    role_id=self.vault_role_id,
                    secret_id=self.vault_secret_id,
                )
                client.token = response["auth"]["client_token"]
                logger.info("Using AppRole authentication")

            if not client.is_authenticated():
                raise VaultError("Failed to authenticate with Vault")

            return client

        except Exception as e:
            logger.error("Failed to initialize Vault client: %s", e)
            raise TransientFetchError("*", f"Failed to initialize Vault client: {e}") from e

    def list_secret_names(self) -> Iterator[str]:
        """Walk the KV mount breadth-first and yield every secret path."""
        queue = [("", 0)]  # (path, depth)

        while queue:
            current_path, depth = queue.pop(0)

            if depth >= self.max_depth:
                logger.warning(
                    "Maximum depth (%d) reached for path: %s", self.max_depth, current_path
                )
                continue

            try:
                response = self.client.secrets.kv.v2.list_secrets(
                    path=current_path,
                    mount_point=self.vault_mount,
                )
                keys = response["data"]["keys"]
            except InvalidPath:
                # No secrets at this path
                continue
            except Exception as e:
                logger.error("Failed to list secrets at %r: %s", current_path, e)
                raise TransientFetchError("*", f"Failed to list secrets: {e}") from e

            for key in keys:
                if key.endswith("/"):
                    stripped_key = key.rstrip("/")
                    subpath = f"{current_path}/{stripped_key}" if current_path else stripped_key
                    queue.append((subpath, depth + 1))
                else:
                    yield f"{current_path}/{key}" if current_path else key

    def get_secret(self, name: str) -> str:
        """Read the latest version of a secret's "value" key."""
        try:
            response = self.client.secrets.kv.v2.read_secret_version(
                path=name,
                mount_point=self.vault_mount,
                raise_on_deleted_version=True,
            )
        except InvalidPath as e:
            logger.warning("Secret not found: %s", name)
            raise SecretNotFoundError(name) from e
        except (Forbidden, Unauthorized) as e:
            logger.warning("Access denied to secret %s", name)
            raise AccessDeniedError(name, f"Access denied to secret {name}: {e}") from e
        except Exception as e:
            logger.error("Failed to retrieve secret %s: %s", name, e)
            raise TransientFetchError(name, f"Failed to retrieve secret {name}: {e}") from e

        value = response["data"]["data"].get("value")
        if value is None:
            raise SecretNotFoundError(name)
        return value
