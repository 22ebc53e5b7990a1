"""Environment variable-based vault client.

This is a simple implementation for development/testing that reads secrets
from environment variables sharing a common prefix. NOT recommended for
production use.
"""

import logging
import os
from collections.abc import Iterator, Mapping

from ..errors import SecretNotFoundError
from .interface import VaultClient

logger = logging.getLogger(__name__)


class EnvVaultClient(VaultClient):
    """Vault client that reads secrets from environment variables.

    A variable named ``{prefix}{name}`` holds the secret ``name``. Names are
    taken verbatim (case-sensitive) from the variable name.

    This implementation is suitable for:
    - Local development
    - Testing the webhook flow without a real vault
    """

    def __init__(self, prefix: str | None = None, environ: Mapping[str, str] | None = None):
        """Initialize the environment vault client.

        Args:
            prefix: Prefix for environment variable names
                (default: from SECRET_CACHE_ENV_PREFIX or "SECRET_CACHE_SECRET_")
            environ: Mapping to read from (default: os.environ)
        """
        self.prefix = prefix or os.getenv("SECRET_CACHE_ENV_PREFIX", "SECRET_CACHE_SECRET_")
        self._environ = os.environ if environ is None else environ
        logger.info("Initialized EnvVaultClient with prefix: %s", self.prefix)

    def list_secret_names(self) -> Iterator[str]:
        for key in list(self._environ.keys()):
            if key.startswith(self.prefix) and len(key) > len(self.prefix):
                yield key[len(self.prefix) :]

    def get_secret(self, name: str) -> str:
        value = self._environ.get(f"{self.prefix}{name}")
        if value is None:
            raise SecretNotFoundError(name)
        return value
