"""
Unit tests for configuration loading.
"""

import pytest
from pydantic import ValidationError

from config import AIConfig, AppConfig, ClipConfig, StreamPotConfig


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    # Nested sections read .env from the working directory on their own
    monkeypatch.chdir(tmp_path)
    for name in (
        "OPENAI_API_KEY",
        "HLC_AI_OPENAI_API_KEY",
        "HLC_DEBUG",
        "HLC_STREAMPOT_BASE_URL",
        "HLC_CLIP_FALLBACK_END",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestAppConfig:
    """Test defaults and environment overrides"""

    def test_defaults(self):
        app_config = AppConfig(_env_file=None)

        assert app_config.debug is False
        assert app_config.streampot.base_url == "http://127.0.0.1:3000"
        assert app_config.streampot.poll_interval_ms == 5000
        assert app_config.streampot.max_poll_attempts is None
        assert app_config.ai.openai_api_key is None
        assert app_config.ai.has_credentials is False
        assert app_config.clip.fallback_start == 0.0
        assert app_config.clip.fallback_end == 10.0
        assert app_config.clip.time_scale == 1000.0

    def test_prefixed_api_key(self, clean_env):
        clean_env.setenv("HLC_AI_OPENAI_API_KEY", "sk-prefixed")

        assert AIConfig(_env_file=None).openai_api_key == "sk-prefixed"

    def test_conventional_api_key(self, clean_env):
        clean_env.setenv("OPENAI_API_KEY", "sk-plain")

        ai = AIConfig(_env_file=None)

        assert ai.openai_api_key == "sk-plain"
        assert ai.has_credentials is True

    def test_empty_api_key_is_no_credentials(self, clean_env):
        clean_env.setenv("OPENAI_API_KEY", "")

        assert AIConfig(_env_file=None).has_credentials is False

    def test_streampot_overrides(self, clean_env):
        clean_env.setenv("HLC_STREAMPOT_BASE_URL", "https://pot.example/")
        clean_env.setenv("HLC_STREAMPOT_POLL_INTERVAL_MS", "250")

        streampot = StreamPotConfig(_env_file=None)

        assert streampot.base_url == "https://pot.example"
        assert streampot.poll_interval_ms == 250

    def test_debug_flag(self, clean_env):
        clean_env.setenv("HLC_DEBUG", "true")

        assert AppConfig(_env_file=None).debug is True


class TestValidation:
    """Test rejected settings"""

    def test_unknown_whisper_model(self):
        with pytest.raises(ValidationError):
            AIConfig(_env_file=None, whisper_model="huge")

    def test_unknown_transcription_provider(self):
        with pytest.raises(ValidationError):
            AIConfig(_env_file=None, transcription_provider="assembly")

    def test_fallback_end_before_start(self):
        with pytest.raises(ValidationError):
            ClipConfig(_env_file=None, fallback_start=5.0, fallback_end=2.0)

    def test_negative_poll_interval(self):
        with pytest.raises(ValidationError):
            StreamPotConfig(_env_file=None, poll_interval_ms=-1)


class TestDotEnv:
    """Test settings read from a .env file in the working directory"""

    def test_env_file_feeds_every_section(self, tmp_path):
        (tmp_path / ".env").write_text(
            "OPENAI_API_KEY=sk-from-file\n"
            "HLC_STREAMPOT_BASE_URL=https://pot.example/\n"
            "HLC_CLIP_FALLBACK_END=20\n"
            "HLC_DEBUG=true\n"
        )

        app_config = AppConfig()

        assert app_config.ai.openai_api_key == "sk-from-file"
        assert app_config.streampot.base_url == "https://pot.example"
        assert app_config.clip.fallback_end == 20.0
        assert app_config.debug is True

    def test_prefixed_key_in_env_file(self, tmp_path):
        (tmp_path / ".env").write_text("HLC_AI_OPENAI_API_KEY=sk-prefixed\n")

        app_config = AppConfig()

        assert app_config.ai.has_credentials is True
        assert app_config.streampot.secret_key is None

    def test_unrelated_keys_are_ignored(self, tmp_path):
        (tmp_path / ".env").write_text("SOME_OTHER_TOOL_TOKEN=abc\nHLC_UNKNOWN=1\n")

        app_config = AppConfig()

        assert app_config.ai.has_credentials is False
