import os

import pytest

from scriptgraph.compiler import CompilerOptions, ScriptCompiler
from scriptgraph.config import ENV_PREFIX, Settings, load_settings, parse_bool, settings_from_mapping


@pytest.fixture
def clean_env(monkeypatch):
    """No SCRIPTGRAPH_* variables before or after the test."""
    for key in list(os.environ):
        if key.startswith(ENV_PREFIX):
            monkeypatch.delenv(key)
    yield monkeypatch
    for key in list(os.environ):
        if key.startswith(ENV_PREFIX):
            os.environ.pop(key)


def test_defaults():
    settings = settings_from_mapping({})
    assert settings == Settings()
    assert settings.timezone == "America/New_York"
    assert settings.include_logging and settings.include_error_handling
    assert not settings.include_rate_limiting


def test_from_mapping():
    settings = settings_from_mapping({
        "SCRIPTGRAPH_TIMEZONE": "Europe/Berlin",
        "SCRIPTGRAPH_INCLUDE_LOGGING": "off",
        "SCRIPTGRAPH_INCLUDE_RATE_LIMITING": "Yes",
        "SCRIPTGRAPH_VERSION": "   ",
        "UNRELATED": "x",
    })
    assert settings.timezone == "Europe/Berlin"
    assert settings.include_logging is False
    assert settings.include_rate_limiting is True
    assert settings.version == "1.0.0"


def test_parse_bool_rejects_garbage():
    assert parse_bool("X", " TRUE ") is True
    with pytest.raises(ValueError, match="SCRIPTGRAPH_INCLUDE_LOGGING"):
        settings_from_mapping({"SCRIPTGRAPH_INCLUDE_LOGGING": "maybe"})


def test_options_fall_back_to_settings():
    settings = Settings(timezone="UTC", include_logging=False)
    options = CompilerOptions(include_logging=True).with_defaults(settings)
    assert options.include_logging is True
    assert options.timezone == "UTC"
    assert options.version == "1.0.0"
    assert options.as_values()["includeLogging"] is True


def test_load_settings_from_env_file(tmp_path, clean_env):
    env_file = tmp_path / ".env"
    env_file.write_text("SCRIPTGRAPH_TIMEZONE=Asia/Tokyo\nSCRIPTGRAPH_INCLUDE_ERROR_HANDLING=false\n")
    settings = load_settings(env_file)
    assert settings.timezone == "Asia/Tokyo"
    assert settings.include_error_handling is False


def test_real_environment_wins_over_env_file(tmp_path, clean_env):
    env_file = tmp_path / ".env"
    env_file.write_text("SCRIPTGRAPH_TIMEZONE=Asia/Tokyo\n")
    clean_env.setenv("SCRIPTGRAPH_TIMEZONE", "Africa/Cairo")
    assert load_settings(env_file).timezone == "Africa/Cairo"


def test_compiler_from_env(tmp_path, clean_env):
    env_file = tmp_path / ".env"
    env_file.write_text("SCRIPTGRAPH_TIMEZONE=Australia/Sydney\n")
    compiler = ScriptCompiler.from_env(env_file)
    result = compiler.compile({"nodes": [{"id": "d", "type": "utility.delay"}]})
    assert result.success
    assert result.manifest["timeZone"] == "Australia/Sydney"
