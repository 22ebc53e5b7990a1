"""In-memory mirror of the secrets held in a vault.

The mirror is bootstrapped once by enumerating the whole vault, then kept
fresh by refreshing single secrets when change notifications arrive.

Concurrency model:
- Blocking vault calls run on a thread pool owned by the mirror
- Writes for the same name are serialized by a per-name lock held around
  fetch and write, so a later refresh can never be overwritten by an
  earlier, slower one
- Reads are gated on readiness: nothing is served before bootstrap completes
"""

import logging
import re
import threading
import time
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from concurrent.futures import Future, ThreadPoolExecutor, as_completed, wait
from concurrent.futures import TimeoutError as FutureTimeoutError
from types import MappingProxyType

from secretcache.errors import (
    AccessDeniedError,
    BootstrapError,
    CacheNotReadyError,
    SecretNotFoundError,
    TransientFetchError,
)
from secretcache.logging_utils import log_error, log_info, log_warning
from secretcache.metrics import MetricsCollector
from secretcache.vault.interface import VaultClient

logger = logging.getLogger(__name__)

# Secret names are opaque and case-sensitive; only empty names and names
# containing whitespace are rejected.
_SECRET_NAME_PATTERN = re.compile(r"^\S{1,256}$")

MAX_BACKOFF_SECONDS = 30.0


def validate_secret_name(name: object) -> str:
    """Check that a secret name is syntactically valid.

    Args:
        name: Candidate secret name

    Returns:
        The name, unchanged

    Raises:
        ValueError: If the name is not a non-empty string without whitespace
    """
    if not isinstance(name, str) or not _SECRET_NAME_PATTERN.match(name):
        raise ValueError(f"Invalid secret name: {name!r}")
    return name


class VaultMirror:
    """Local cache of vault secret values, keyed by secret name.

    Entries are never removed: a secret deleted from the vault stays in the
    mirror with its last known value.
    """

    def __init__(
        self,
        client: VaultClient,
        bootstrap_timeout: float = 120.0,
        max_workers: int = 8,
        refresh_max_attempts: int = 3,
        refresh_backoff_seconds: float = 1.0,
        metrics: MetricsCollector | None = None,
        sleep=time.sleep,
    ):
        """Initialize an empty, not-yet-ready mirror.

        Args:
            client: Vault client used for listing and fetching
            bootstrap_timeout: Overall deadline for bootstrap in seconds
            max_workers: Size of the fetch thread pool
            refresh_max_attempts: Attempts per scheduled refresh on transient errors
            refresh_backoff_seconds: Base delay for exponential backoff between attempts
            metrics: Metrics collector (a private one is created if omitted)
            sleep: Sleep function used between retries (overridable in tests)
        """
        self._client = client
        self.bootstrap_timeout = bootstrap_timeout
        self.refresh_max_attempts = refresh_max_attempts
        self.refresh_backoff_seconds = refresh_backoff_seconds
        self.metrics = metrics or MetricsCollector()
        self._sleep = sleep

        self._secrets: dict[str, str] = {}
        self._lock = threading.Lock()
        # name -> [lock, number of callers holding or waiting for it]
        self._key_locks: dict[str, list] = {}
        self._bootstrap_lock = threading.Lock()
        self._ready = threading.Event()

        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="secretcache-fetch"
        )
        self._pending: set[Future] = set()
        self._pending_lock = threading.Lock()

    @property
    def is_ready(self) -> bool:
        """True once a bootstrap has completed successfully."""
        return self._ready.is_set()

    @property
    def secret_count(self) -> int:
        with self._lock:
            return len(self._secrets)

    def wait_until_ready(self, timeout: float | None = None) -> bool:
        """Block until bootstrap completes.

        Returns:
            True if the mirror is ready, False if the timeout expired first
        """
        return self._ready.wait(timeout)

    @contextmanager
    def _key_lock(self, name: str) -> Iterator[None]:
        """Hold the per-name lock; the entry is dropped when the last user leaves."""
        with self._lock:
            entry = self._key_locks.get(name)
            if entry is None:
                entry = self._key_locks[name] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._lock:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._key_locks[name]

    def bootstrap(self) -> int:
        """Enumerate the vault and load every secret.

        Names are streamed from the vault listing and fetched concurrently.
        The mirror becomes ready only if every fetch succeeds within the
        overall deadline.

        Returns:
            Number of secrets loaded

        Raises:
            BootstrapError: If listing or any fetch fails, or the deadline passes
        """
        with self._bootstrap_lock:
            started = time.monotonic()
            deadline = started + self.bootstrap_timeout
            futures: dict[Future, str] = {}

            log_info(logger, "Bootstrapping secret cache")
            try:
                for name in self._client.list_secret_names():
                    if time.monotonic() > deadline:
                        raise BootstrapError(
                            f"Bootstrap exceeded {self.bootstrap_timeout}s while listing secrets"
                        )
                    futures[self._executor.submit(self.refresh, name)] = name

                remaining = max(deadline - time.monotonic(), 0.0)
                for future in as_completed(futures, timeout=remaining):
                    name = futures[future]
                    try:
                        future.result()
                    except Exception as e:
                        raise BootstrapError(f"Failed to load secret {name!r}: {e}") from e

            except FutureTimeoutError as e:
                self._cancel(futures)
                log_error(logger, "Bootstrap timed out", timeout=self.bootstrap_timeout)
                raise BootstrapError(
                    f"Bootstrap did not complete within {self.bootstrap_timeout}s"
                ) from e
            except BootstrapError as e:
                self._cancel(futures)
                log_error(logger, "Bootstrap failed", error=e)
                raise
            except Exception as e:
                self._cancel(futures)
                log_error(logger, "Bootstrap failed while listing secrets", error=e)
                raise BootstrapError(f"Failed to list secrets: {e}") from e

            duration_ms = (time.monotonic() - started) * 1000
            self.metrics.record_bootstrap(len(futures), duration_ms)
            self._ready.set()
            log_info(
                logger,
                "Secret cache ready",
                secrets=len(futures),
                duration_ms=f"{duration_ms:.1f}",
            )
            return len(futures)

    @staticmethod
    def _cancel(futures: Mapping[Future, str]) -> None:
        for future in futures:
            future.cancel()

    def refresh(self, name: str) -> bool:
        """Fetch the latest value of one secret and upsert it.

        The existing entry is left untouched when the fetch fails.

        Args:
            name: Secret name; need not already be cached

        Returns:
            True if the cached value changed (or the entry is new)

        Raises:
            ValueError: If the name is invalid
            SecretNotFoundError: If the vault has no such secret
            AccessDeniedError: If the vault refuses access to the secret
            TransientFetchError: If the vault could not be reached
        """
        validate_secret_name(name)
        with self._key_lock(name):
            value = self._client.get_secret(name)
            with self._lock:
                changed = self._secrets.get(name) != value
                self._secrets[name] = value
        return changed

    def schedule_refresh(self, name: str) -> Future:
        """Refresh one secret in the background.

        Transient failures are retried with exponential backoff. The returned
        future resolves to True when the refresh succeeded and False when it
        gave up; it never raises a fetch error.

        Raises:
            ValueError: If the name is invalid (raised before scheduling)
        """
        validate_secret_name(name)
        future = self._executor.submit(self._refresh_with_retry, name)
        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._discard_pending)
        return future

    def _discard_pending(self, future: Future) -> None:
        with self._pending_lock:
            self._pending.discard(future)

    def _refresh_with_retry(self, name: str) -> bool:
        for attempt in range(self.refresh_max_attempts):
            try:
                changed = self.refresh(name)
            except SecretNotFoundError:
                log_warning(
                    logger, "Secret not found during refresh, keeping cached entry", secret=name
                )
                self.metrics.record_refresh("not_found")
                return False
            except AccessDeniedError as e:
                log_warning(logger, "Vault denied access during refresh", secret=name, error=e)
                self.metrics.record_refresh("access_denied")
                return False
            except TransientFetchError as e:
                log_warning(
                    logger,
                    "Refresh failed",
                    secret=name,
                    attempt=f"{attempt + 1}/{self.refresh_max_attempts}",
                    error=e,
                )
                if attempt < self.refresh_max_attempts - 1:
                    self._sleep(
                        min(self.refresh_backoff_seconds * (2**attempt), MAX_BACKOFF_SECONDS)
                    )
                continue
            except Exception:
                logger.exception("Unexpected error refreshing secret %s", name)
                self.metrics.record_refresh("error")
                return False

            self.metrics.record_refresh("ok")
            log_info(logger, "Secret refreshed", secret=name, changed=changed)
            return True

        log_error(
            logger,
            "Giving up on refresh, cached entry left stale",
            secret=name,
            attempts=self.refresh_max_attempts,
        )
        self.metrics.record_refresh("transient_error")
        return False

    def wait_for_refreshes(self, timeout: float | None = None) -> bool:
        """Block until all scheduled refreshes have finished.

        Returns:
            True if none are still running when this returns
        """
        with self._pending_lock:
            pending = list(self._pending)
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def _require_ready(self, timeout: float | None) -> None:
        if self._ready.is_set():
            return
        if timeout is not None and self._ready.wait(timeout):
            return
        raise CacheNotReadyError("Secret cache has not finished bootstrapping")

    def snapshot(self, timeout: float | None = None) -> Mapping[str, str]:
        """Return a read-only copy of the cached secrets.

        Args:
            timeout: Seconds to wait for readiness (default: do not wait)

        Raises:
            CacheNotReadyError: If bootstrap has not completed
        """
        self._require_ready(timeout)
        with self._lock:
            return MappingProxyType(dict(self._secrets))

    def get_all(self, timeout: float | None = None) -> Mapping[str, str]:
        """Cache query: every cached secret, as a read-only mapping."""
        return self.snapshot(timeout)

    def get(self, name: str, timeout: float | None = None) -> str | None:
        """Cache query: the cached value of one secret, or None."""
        self._require_ready(timeout)
        with self._lock:
            return self._secrets.get(name)

    def close(self) -> None:
        """Stop the fetch pool and release the vault client."""
        self._executor.shutdown(wait=True, cancel_futures=True)
        self._client.close()
