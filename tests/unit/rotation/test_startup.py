"""Tests for wiring rotation components from settings."""

from pathlib import Path

import httpx
import pytest

from credpool.config.settings import Settings
from credpool.rotation.accounts import Account, AccountsFile, save_accounts
from credpool.rotation.pool import SelectionStrategy
from credpool.rotation.startup import create_dispatcher, create_pool
from credpool.transforms import apply_thinking_config


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    path = tmp_path / "accounts.json"
    save_accounts(
        AccountsFile(
            accounts=[
                Account.from_api_key("sk-one", label="one"),
                Account.from_api_key("sk-two", label="two"),
            ]
        ),
        path,
    )
    return Settings(
        accounts_path=path,
        account_selection_strategy=SelectionStrategy.STICKY,
        max_request_iterations=20,
        request_timeout_ms=90_000,
    )


@pytest.mark.unit
class TestCreatePool:
    def test_loads_accounts_with_configured_strategy(self, settings: Settings) -> None:
        pool = create_pool(settings)

        assert pool.strategy is SelectionStrategy.STICKY
        assert [a.label for a in pool.list_accounts()] == ["one", "two"]
        assert pool.store.get_location() == str(settings.accounts_path)

    def test_load_can_be_deferred(self, settings: Settings) -> None:
        pool = create_pool(settings, load=False)
        assert len(pool) == 0


@pytest.mark.unit
class TestCreateDispatcher:
    @pytest.mark.asyncio
    async def test_applies_settings(self, settings: Settings) -> None:
        async with httpx.AsyncClient() as client:
            dispatcher = create_dispatcher(settings, client)

            assert dispatcher.client is client
            assert dispatcher.max_iterations == 20
            assert dispatcher.timeout_ms == 90_000
            assert dispatcher.user_agent == settings.user_agent
            assert dispatcher.base_url == settings.base_url
            assert dispatcher.body_transform is apply_thinking_config
            assert len(dispatcher.pool) == 2
            assert dispatcher.lifecycle.pool is dispatcher.pool

    @pytest.mark.asyncio
    async def test_reuses_given_pool(self, settings: Settings) -> None:
        pool = create_pool(settings, load=False)
        async with httpx.AsyncClient() as client:
            dispatcher = create_dispatcher(settings, client, pool=pool)

        assert dispatcher.pool is pool
        assert len(pool) == 0
