"""pytest configuration for secret cache tests."""

import os
import sys
import threading
from pathlib import Path

import pytest

# Add src directory to path so tests can import secretcache
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from secretcache.errors import SecretNotFoundError  # noqa: E402
from secretcache.mirror import VaultMirror  # noqa: E402
from secretcache.vault.interface import VaultClient  # noqa: E402

# Keep tests away from any real vault configured in the developer's shell
for _var in ("AZURE_KEYVAULT_NAME", "AZURE_KEYVAULT_URL", "SECRET_CACHE_BACKEND"):
    os.environ.pop(_var, None)


class FakeVaultClient(VaultClient):
    """In-memory vault with call recording and scripted failures."""

    def __init__(self, secrets: dict[str, str] | None = None):
        self.secrets = dict(secrets or {})
        # name -> exceptions raised by the next get_secret calls, in order
        self.failures: dict[str, list[Exception]] = {}
        self.get_calls: list[str] = []
        self.list_calls = 0
        self.closed = False
        self._lock = threading.Lock()

    def list_secret_names(self):
        self.list_calls += 1
        yield from list(self.secrets)

    def get_secret(self, name: str) -> str:
        with self._lock:
            self.get_calls.append(name)
            pending = self.failures.get(name)
            if pending:
                raise pending.pop(0)
        if name not in self.secrets:
            raise SecretNotFoundError(name)
        return self.secrets[name]

    def close(self) -> None:
        self.closed = True


class GatedVaultClient(FakeVaultClient):
    """Fake vault whose get_secret blocks until the gate is opened."""

    def __init__(self, secrets: dict[str, str] | None = None):
        super().__init__(secrets)
        self.gate = threading.Event()
        self.fetch_started = threading.Event()

    def get_secret(self, name: str) -> str:
        self.fetch_started.set()
        self.gate.wait(5)
        return super().get_secret(name)


@pytest.fixture
def fake_vault():
    """Vault with a few secrets."""
    return FakeVaultClient({"db-password": "hunter2", "api-key": "abc", "Api-Key": "ABC"})


@pytest.fixture
def sleeps():
    """Recorded backoff delays."""
    return []


@pytest.fixture
def mirror(fake_vault, sleeps):
    """Mirror over the fake vault, not yet bootstrapped."""
    m = VaultMirror(fake_vault, max_workers=4, sleep=sleeps.append)
    yield m
    m.close()


@pytest.fixture
def ready_mirror(mirror):
    """Mirror over the fake vault, bootstrapped."""
    mirror.bootstrap()
    return mirror
