import pytest
from pydantic import ValidationError

from nim_proxy.config import DEFAULT_NIM_API_BASE, DEFAULT_NIM_MODEL, Settings, load_settings
from nim_proxy.errors import ConfigurationError


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("PROXY_SECRET", "NIM_API_BASE", "NIM_API_KEY", "NIM_MODEL", "LOG_LEVEL", "PORT"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_missing_secret_fails_startup(clean_env):
    with pytest.raises(ConfigurationError, match="PROXY_SECRET"):
        load_settings()


def test_empty_secret_fails_startup(clean_env):
    clean_env.setenv("PROXY_SECRET", "")
    with pytest.raises(ConfigurationError):
        load_settings()


def test_defaults(clean_env):
    clean_env.setenv("PROXY_SECRET", "s")
    settings = load_settings()
    assert settings.NIM_API_BASE == DEFAULT_NIM_API_BASE
    assert settings.NIM_MODEL == DEFAULT_NIM_MODEL
    assert settings.DEFAULT_TEMPERATURE == 0.7
    assert settings.DEFAULT_MAX_TOKENS == 2048
    assert settings.PORT == 3000
    assert settings.UPSTREAM_TIMEOUT is None
    assert settings.chat_completions_url == "https://integrate.api.nvidia.com/v1/chat/completions"


def test_values_read_from_environment(clean_env):
    clean_env.setenv("PROXY_SECRET", "s")
    clean_env.setenv("NIM_API_BASE", "http://localhost:9000/v1/")
    clean_env.setenv("PORT", "8080")
    clean_env.setenv("LOG_LEVEL", "DEBUG")
    settings = load_settings()
    assert settings.chat_completions_url == "http://localhost:9000/v1/chat/completions"
    assert settings.PORT == 8080
    assert settings.LOG_LEVEL == "debug"


def test_unknown_log_level_falls_back_to_info():
    assert Settings(PROXY_SECRET="s", LOG_LEVEL="verbose").LOG_LEVEL == "info"


def test_settings_are_immutable():
    settings = Settings(PROXY_SECRET="s")
    with pytest.raises(ValidationError):
        settings.PROXY_SECRET = "other"
