import random

import pytest
from typer.testing import CliRunner

from xfcache.core.cache_manager import CacheManager
from xfcache.core.expiration_policy import ExpirationPolicy
from xfcache.infrastructure.store.filesystem_store import FilesystemStore

START_TIME = 1_700_000_000.0


class FakeClock:
    """Manually advanced replacement for time.time."""

    def __init__(self, start: float = START_TIME):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedRandom(random.Random):
    """random.Random whose random() returns a fixed value, counting calls."""

    def __init__(self, value: float):
        super().__init__(0)
        self.value = value
        self.calls = 0

    def random(self) -> float:
        self.calls += 1
        return self.value


@pytest.fixture(scope="session")
def runner():
    """Provides a Typer CliRunner instance."""
    return CliRunner()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fs_store(tmp_path, clock):
    """FilesystemStore in a temporary directory driven by the fake clock."""
    return FilesystemStore(tmp_path / "cache", clock=clock)


@pytest.fixture
def cache(fs_store, clock):
    """CacheManager over the temporary filesystem store with a seeded policy."""
    return CacheManager(fs_store, policy=ExpirationPolicy(rng=random.Random(42)), clock=clock)


@pytest.fixture
def make_provider():
    """Builds providers returning a fixed value with a fixed lifetime and recording their calls."""

    def factory(value, ttl=60):
        calls = []

        def provider(item):
            calls.append(item)
            item.expires_after(ttl)
            return value

        provider.calls = calls
        return provider

    return factory


@pytest.fixture
def scripted_rng():
    """Factory for ScriptedRandom instances."""
    return ScriptedRandom
