"""Shared fixtures for credpool tests."""

from collections.abc import Callable

import pytest

from credpool.rotation.accounts import Account, AccountsFile, AuthMethod
from credpool.rotation.pool import AccountPool, SelectionStrategy
from credpool.rotation.storage import AccountStore


START_MS = 1_700_000_000_000


class FakeClock:
    """Millisecond clock whose async sleep advances time instead of waiting."""

    def __init__(self, start: int = START_MS) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += int(seconds * 1000)


class MemoryAccountStore(AccountStore):
    """Keeps the snapshot as serialized dicts so saves never alias live accounts."""

    def __init__(self, accounts_file: AccountsFile | None = None) -> None:
        self._data = (accounts_file or AccountsFile()).to_dict()
        self.save_count = 0

    def load(self) -> AccountsFile:
        return AccountsFile.from_dict(self._data)

    def save(self, accounts_file: AccountsFile) -> None:
        self._data = accounts_file.to_dict()
        self.save_count += 1

    @property
    def data(self) -> dict:
        return self._data

    def get_location(self) -> str:
        return "memory"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> MemoryAccountStore:
    return MemoryAccountStore()


@pytest.fixture
def make_account() -> Callable[..., Account]:
    """Factory for accounts with readable ids."""

    def _make(
        name: str,
        *,
        auth_method: AuthMethod = AuthMethod.API_KEY,
        **overrides,
    ) -> Account:
        fields = {
            "id": f"id-{name}",
            "label": name,
            "auth_method": auth_method,
            "static_key": f"key-{name}",
        }
        if auth_method == AuthMethod.OAUTH:
            fields.update(
                refresh_token=f"refresh-{name}",
                access_token=f"access-{name}",
                expires_at=START_MS + 3_600_000,
            )
        fields.update(overrides)
        return Account(**fields)

    return _make


@pytest.fixture
def make_pool(
    store: MemoryAccountStore, clock: FakeClock, make_account
) -> Callable[..., AccountPool]:
    """Build a pool over the in-memory store holding the named accounts."""

    def _make(
        *names: str,
        strategy: SelectionStrategy = SelectionStrategy.ROUND_ROBIN,
    ) -> AccountPool:
        pool = AccountPool(store, strategy=strategy, clock=clock)
        for name in names:
            pool.add(make_account(name))
        return pool

    return _make
