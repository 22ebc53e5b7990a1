"""Error taxonomy for the secret cache.

Startup errors (configuration, bootstrap) are fatal to the process. Fetch
errors raised by vault clients are contained at the refresh boundary, and
payload errors are contained within the webhook handler for one delivery.
"""


class SecretCacheError(Exception):
    """Base class for all secret cache errors."""


class ConfigurationError(SecretCacheError):
    """Raised when required configuration is missing or invalid."""


class VaultFetchError(SecretCacheError):
    """Raised when a secret cannot be read from the vault."""

    def __init__(self, name: str, message: str):
        super().__init__(message)
        self.name = name


class SecretNotFoundError(VaultFetchError):
    """Raised when the vault has no secret with the requested name."""

    def __init__(self, name: str):
        super().__init__(name, f"Secret not found: {name}")


class TransientFetchError(VaultFetchError):
    """Raised when the vault is unreachable or returns a retryable failure."""


class AccessDeniedError(VaultFetchError):
    """Raised when the vault refuses to return a secret (401/403).

    Key Vault answers 403 for disabled secrets. Retrying does not help.
    """


class BootstrapError(SecretCacheError):
    """Raised when the initial enumeration of the vault does not complete."""


class CacheNotReadyError(SecretCacheError):
    """Raised when the cache is queried before bootstrap has completed."""


class MalformedPayloadError(SecretCacheError):
    """Raised when a webhook delivery does not have the expected shape."""
