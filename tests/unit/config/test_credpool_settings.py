"""Tests for settings loading and validation."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from credpool.config.settings import ConfigurationManager, Settings
from credpool.exceptions import ConfigurationError
from credpool.rotation.pool import SelectionStrategy


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path: Path):
    """Isolate settings from the developer's environment and config files."""
    for key in (
        "CREDPOOL_CONFIG_FILE",
        "CREDPOOL_ACCOUNTS_PATH",
        "CREDPOOL_ACCOUNT_SELECTION_STRATEGY",
        "CREDPOOL_MAX_REQUEST_ITERATIONS",
        "CREDPOOL_REQUEST_TIMEOUT_MS",
        "CREDPOOL_BASE_URL",
    ):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setattr(
        "credpool.config.settings.find_toml_config_file", lambda: None
    )
    monkeypatch.chdir(tmp_path)


@pytest.mark.unit
class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings()

        assert settings.account_selection_strategy is SelectionStrategy.ROUND_ROBIN
        assert settings.base_url == "https://apis.iflow.cn/v1"
        assert settings.max_request_iterations == 50
        assert settings.request_timeout_ms == 300_000
        assert settings.accounts_path.name == "accounts.json"
        assert settings.log_level == "INFO"

    def test_environment_overrides(self, monkeypatch) -> None:
        monkeypatch.setenv("CREDPOOL_ACCOUNT_SELECTION_STRATEGY", "sticky")
        monkeypatch.setenv("CREDPOOL_MAX_REQUEST_ITERATIONS", "100")
        monkeypatch.setenv("CREDPOOL_OAUTH__CLIENT_ID", "env-client")

        settings = Settings()

        assert settings.account_selection_strategy is SelectionStrategy.STICKY
        assert settings.max_request_iterations == 100
        assert settings.oauth.client_id == "env-client"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"max_request_iterations": 5},
            {"max_request_iterations": 1001},
            {"request_timeout_ms": 59_999},
            {"request_timeout_ms": 600_001},
            {"account_selection_strategy": "random"},
        ],
    )
    def test_out_of_range_values_rejected(self, overrides) -> None:
        with pytest.raises(ValidationError):
            Settings(**overrides)

    def test_from_toml_file(self, tmp_path: Path) -> None:
        config = tmp_path / "credpool.toml"
        config.write_text(
            'account_selection_strategy = "sticky"\n'
            "request_timeout_ms = 120000\n"
            f'accounts_path = "{tmp_path / "pool.json"}"\n'
            "\n"
            "[oauth]\n"
            'token_url = "https://auth.test/token"\n'
        )

        settings = Settings.from_config(config, max_request_iterations=25)

        assert settings.account_selection_strategy is SelectionStrategy.STICKY
        assert settings.request_timeout_ms == 120_000
        assert settings.max_request_iterations == 25
        assert settings.accounts_path == tmp_path / "pool.json"
        assert settings.oauth.token_url == "https://auth.test/token"

    def test_config_file_from_environment(self, monkeypatch, tmp_path: Path) -> None:
        config = tmp_path / "env.toml"
        config.write_text('user_agent = "from-env-file"\n')
        monkeypatch.setenv("CREDPOOL_CONFIG_FILE", str(config))

        assert Settings.from_config().user_agent == "from-env-file"

    def test_missing_explicit_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="not found"):
            Settings.from_config(tmp_path / "absent.toml")

    def test_safe_dump_masks_secret(self) -> None:
        dumped = Settings().model_dump_safe()
        assert dumped["oauth"]["client_secret"] == "***"


@pytest.mark.unit
class TestConfigurationManager:
    def test_caches_settings(self) -> None:
        manager = ConfigurationManager()
        first = manager.load_settings()
        assert manager.load_settings() is first

    def test_invalid_toml_becomes_configuration_error(self, tmp_path: Path) -> None:
        config = tmp_path / "broken.toml"
        config.write_text("this is = = not toml")

        with pytest.raises(ConfigurationError, match="Failed to load configuration"):
            ConfigurationManager().load_settings(config)

    def test_invalid_values_become_configuration_error(self, tmp_path: Path) -> None:
        config = tmp_path / "bad.toml"
        config.write_text("max_request_iterations = 1\n")

        with pytest.raises(ConfigurationError):
            ConfigurationManager().load_settings(config)
