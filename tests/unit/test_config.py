"""
Unit tests for environment-driven configuration.
"""
import pytest

from typecache.config import Config

ENV_VARS = [
    "TYPECACHE_DATABASE_URL",
    "DATABASE_URL",
    "TYPECACHE_DEFAULT_SCHEMA",
    "TYPECACHE_MAX_DESCRIPTOR_AGE",
    "TYPECACHE_STATEMENT_TIMEOUT_MS",
    "TYPECACHE_USE_SAVEPOINTS",
    "TYPECACHE_LOG_LEVEL",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestConfig:
    """Test configuration defaults and overrides."""

    def test_defaults(self, clean_env):
        config = Config(load_env_file=False)

        assert config.database_url is None
        assert config.default_schema == "public"
        assert config.statement_timeout_ms == 5000
        assert config.use_savepoints is False
        assert config.descriptor_max_age is None
        assert config.log_level == "INFO"
        assert config.on_recovery is None

    def test_database_url_fallback(self, clean_env):
        clean_env.setenv("DATABASE_URL", "postgresql://fallback/db")
        assert Config(load_env_file=False).database_url == "postgresql://fallback/db"

        clean_env.setenv("TYPECACHE_DATABASE_URL", "postgresql://primary/db")
        assert Config(load_env_file=False).database_url == "postgresql://primary/db"

    def test_overrides(self, clean_env):
        clean_env.setenv("TYPECACHE_DEFAULT_SCHEMA", "app")
        clean_env.setenv("TYPECACHE_MAX_DESCRIPTOR_AGE", "90")
        clean_env.setenv("TYPECACHE_STATEMENT_TIMEOUT_MS", "250")
        clean_env.setenv("TYPECACHE_USE_SAVEPOINTS", "yes")
        clean_env.setenv("TYPECACHE_LOG_LEVEL", "debug")

        config = Config(load_env_file=False)

        assert config.default_schema == "app"
        assert config.descriptor_max_age == 90.0
        assert config.statement_timeout_ms == 250
        assert config.use_savepoints is True
        assert config.log_level == "DEBUG"

    def test_connect_args(self, clean_env):
        config = Config(load_env_file=False)
        assert config.connect_args() == {"options": "-c statement_timeout=5000"}

        config.statement_timeout_ms = 0
        assert config.connect_args() == {}

    def test_on_recovery_hook_is_kept(self, clean_env):
        hook = object()
        assert Config(on_recovery=hook, load_env_file=False).on_recovery is hook


class TestValidate:

    def test_missing_url(self, clean_env):
        valid, message = Config(load_env_file=False).validate()

        assert valid is False
        assert "TYPECACHE_DATABASE_URL" in message

    def test_valid(self, clean_env):
        clean_env.setenv("TYPECACHE_DATABASE_URL", "postgresql://localhost/db")

        assert Config(load_env_file=False).validate() == (True, "Configuration valid")

    @pytest.mark.parametrize("name,value", [
        ("TYPECACHE_STATEMENT_TIMEOUT_MS", "-1"),
        ("TYPECACHE_MAX_DESCRIPTOR_AGE", "-5"),
        ("TYPECACHE_DEFAULT_SCHEMA", ""),
    ])
    def test_invalid_values(self, clean_env, name, value):
        clean_env.setenv("TYPECACHE_DATABASE_URL", "postgresql://localhost/db")
        clean_env.setenv(name, value)

        valid, message = Config(load_env_file=False).validate()

        assert valid is False
        assert name in message
