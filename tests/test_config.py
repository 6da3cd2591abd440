"""
Tests for Configuration Module

Tests the Settings and configuration management.
"""

import os
import pytest
from unittest.mock import patch


class TestGetEnv:
    """Tests for environment variable helpers."""

    def test_get_env_with_default(self):
        """Test getting env var with default."""
        from persona_voice.config import get_env

        result = get_env("NONEXISTENT_VAR", "default_value")
        assert result == "default_value"

    def test_get_env_existing(self):
        """Test getting existing env var."""
        from persona_voice.config import get_env

        with patch.dict(os.environ, {"TEST_VAR": "test_value"}):
            result = get_env("TEST_VAR")
            assert result == "test_value"

    def test_get_env_required_missing(self):
        """Test required env var raises error when missing."""
        from persona_voice.config import get_env

        with pytest.raises(ValueError):
            get_env("DEFINITELY_NOT_SET", required=True)


class TestGetEnvTyped:
    """Tests for typed environment variable helpers."""

    def test_get_env_int(self):
        from persona_voice.config import get_env_int

        with patch.dict(os.environ, {"INT_VAR": "42"}):
            result = get_env_int("INT_VAR", 0)
            assert result == 42
            assert isinstance(result, int)

    def test_get_env_float(self):
        from persona_voice.config import get_env_float

        with patch.dict(os.environ, {"FLOAT_VAR": "0.75"}):
            assert get_env_float("FLOAT_VAR", 0.0) == 0.75

    def test_get_env_list(self):
        """Comma-separated values are split and trimmed."""
        from persona_voice.config import get_env_list

        with patch.dict(os.environ, {"LIST_VAR": "http://a.test, http://b.test ,"}):
            assert get_env_list("LIST_VAR") == ["http://a.test", "http://b.test"]


class TestLiveKitConfig:
    """Tests for LiveKit configuration."""

    def test_http_url_from_secure_websocket(self):
        from persona_voice.config import LiveKitConfig

        config = LiveKitConfig(api_key="k", api_secret="s", ws_url="wss://demo.livekit.cloud/")
        assert config.http_url == "https://demo.livekit.cloud"

    def test_http_url_from_plain_websocket(self):
        from persona_voice.config import LiveKitConfig

        config = LiveKitConfig(api_key="k", api_secret="s", ws_url="ws://localhost:7880")
        assert config.http_url == "http://localhost:7880"

    def test_validate_missing_secret(self):
        from persona_voice.config import LiveKitConfig

        config = LiveKitConfig(api_key="k", api_secret="", ws_url="wss://demo.livekit.cloud")
        assert config.is_configured is False
        with pytest.raises(ValueError, match="LIVEKIT_API_SECRET"):
            config.validate()

    def test_room_defaults(self):
        """Rooms live ten minutes when empty and hold four participants."""
        from persona_voice.config import LiveKitConfig

        config = LiveKitConfig()
        assert config.empty_timeout_s == 600
        assert config.max_participants == 4


class TestSpeechConfig:
    """Tests for Azure Speech configuration."""

    def test_voice_override_per_persona(self):
        from persona_voice.config import SpeechConfig

        config = SpeechConfig(api_key="k", region="eastus", voice_adina="en-US-AriaNeural", voice_rafa="")
        assert config.voice_override("adina") == "en-US-AriaNeural"
        assert config.voice_override("rafa") == ""
        assert config.voice_override("unknown") == ""

    def test_validate_missing_region(self):
        from persona_voice.config import SpeechConfig

        config = SpeechConfig(api_key="k", region="")
        with pytest.raises(ValueError, match="AZURE_SPEECH_REGION"):
            config.validate()


class TestAzureOpenAIConfig:
    """Tests for Azure OpenAI configuration."""

    def test_chat_url(self):
        """Test chat URL construction."""
        from persona_voice.config import AzureOpenAIConfig

        config = AzureOpenAIConfig(
            api_key="test",
            endpoint="https://test.openai.azure.com/",  # Trailing slash
            api_version="2024-08-01-preview",
            chat_deployment="chat-model"
        )

        url = config.chat_url
        assert "chat-model" in url
        assert "chat/completions" in url
        assert "//" not in url.replace("https://", "")

    def test_blank_key_is_not_configured(self):
        from persona_voice.config import AzureOpenAIConfig

        assert AzureOpenAIConfig(api_key="   ", endpoint="https://x").is_configured is False


class TestSessionConfig:
    """Tests for voice session settings."""

    def test_defaults(self):
        from persona_voice.config import SessionConfig

        config = SessionConfig()
        assert config.participant_refresh_s == 5.0
        assert config.memory_max_entries == 5
        assert config.emotion_threshold == 0.6

    def test_validate_threshold_range(self):
        from persona_voice.config import SessionConfig

        config = SessionConfig()
        config.emotion_threshold = 1.5
        with pytest.raises(ValueError, match="between 0 and 1"):
            config.validate()

    def test_validate_memory_size(self):
        from persona_voice.config import SessionConfig

        config = SessionConfig()
        config.memory_max_entries = 0
        with pytest.raises(ValueError, match="positive"):
            config.validate()

    def test_user_session_ttl(self):
        from persona_voice.config import SessionConfig

        config = SessionConfig()
        assert config.user_session_ttl_days == 30
        config.user_session_ttl_days = 0
        with pytest.raises(ValueError, match="USER_SESSION_TTL_DAYS"):
            config.validate()


class TestSettings:
    """Tests for main Settings class."""

    def test_settings_singleton(self):
        from persona_voice.config import settings

        assert settings is not None
        assert hasattr(settings, "livekit")
        assert hasattr(settings, "speech")
        assert hasattr(settings, "session")

    def test_is_development(self):
        from persona_voice.config import Settings

        settings = Settings()
        settings.app_env = "development"
        assert settings.is_development is True

        settings.app_env = "production"
        assert settings.is_development is False

    def test_validate_voice_requires_livekit(self):
        from persona_voice.config import Settings

        settings = Settings()
        settings.livekit.api_key = ""
        with pytest.raises(ValueError, match="LIVEKIT_API_KEY"):
            settings.validate_voice()
