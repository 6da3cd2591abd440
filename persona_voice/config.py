"""
Configuration Management Module

All settings come from environment variables with sensible defaults,
loaded from a .env file when present.

Usage:
    from persona_voice.config import settings
    print(settings.livekit.ws_url)

Credentials for the room, speech and completion services are optional at
import time. Components that need them call ``validate()`` on their section
when they are constructed, so a missing credential fails a session start
instead of failing silently mid-session.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def get_env(key: str, default: str = "", required: bool = False) -> str:
    """
    Get an environment variable with optional default and validation.

    Args:
        key: The environment variable name
        default: Default value if not set
        required: If True, raises ValueError when not set

    Returns:
        The environment variable value or default

    Raises:
        ValueError: If required=True and the variable is not set
    """
    value = os.getenv(key, default)
    if required and not value:
        raise ValueError(f"Required environment variable '{key}' is not set")
    return value


def get_env_int(key: str, default: int) -> int:
    """Get an environment variable as integer."""
    return int(get_env(key, str(default)))


def get_env_float(key: str, default: float) -> float:
    """Get an environment variable as float."""
    return float(get_env(key, str(default)))


def get_env_list(key: str, default: str = "") -> List[str]:
    """Get a comma-separated environment variable as a list of strings."""
    raw = get_env(key, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class LiveKitConfig:
    """
    LiveKit media-room configuration.

    Attributes:
        api_key: LiveKit API key used to sign access tokens
        api_secret: LiveKit API secret
        ws_url: Websocket URL clients use to join rooms
        empty_timeout_s: Seconds an empty room is kept alive
        max_participants: Participant cap for rooms created by the bot
    """
    api_key: str = field(default_factory=lambda: get_env("LIVEKIT_API_KEY"))
    api_secret: str = field(default_factory=lambda: get_env("LIVEKIT_API_SECRET"))
    ws_url: str = field(default_factory=lambda: get_env("LIVEKIT_WS_URL"))
    empty_timeout_s: int = field(default_factory=lambda: get_env_int("LIVEKIT_EMPTY_TIMEOUT_SECONDS", 600))
    max_participants: int = field(default_factory=lambda: get_env_int("LIVEKIT_MAX_PARTICIPANTS", 4))

    @property
    def is_configured(self) -> bool:
        """Check if all LiveKit credentials are present."""
        return bool(self.api_key and self.api_secret and self.ws_url)

    @property
    def http_url(self) -> str:
        """Server API URL derived from the websocket URL."""
        url = self.ws_url.strip().rstrip("/")
        if url.startswith("wss://"):
            return "https://" + url[len("wss://"):]
        if url.startswith("ws://"):
            return "http://" + url[len("ws://"):]
        return url

    def validate(self) -> bool:
        """Validate that LiveKit credentials are configured."""
        if not self.api_key:
            raise ValueError("LIVEKIT_API_KEY is required")
        if not self.api_secret:
            raise ValueError("LIVEKIT_API_SECRET is required")
        if not self.ws_url:
            raise ValueError("LIVEKIT_WS_URL is required")
        return True


@dataclass
class SpeechConfig:
    """
    Azure Speech configuration, shared by recognition and synthesis.

    Attributes:
        api_key: Azure Speech subscription key
        region: Azure region of the Speech resource
        language: Recognition language
        voice_adina: Neural voice used for the Adina persona
        voice_rafa: Neural voice used for the Rafa persona
        sample_rate: Sample rate of inbound PCM audio
    """
    api_key: str = field(default_factory=lambda: get_env("AZURE_SPEECH_API_KEY"))
    region: str = field(default_factory=lambda: get_env("AZURE_SPEECH_REGION"))
    language: str = field(default_factory=lambda: get_env("AZURE_SPEECH_LANGUAGE", "en-US"))
    voice_adina: str = field(default_factory=lambda: get_env("AZURE_SPEECH_VOICE_ADINA"))
    voice_rafa: str = field(default_factory=lambda: get_env("AZURE_SPEECH_VOICE_RAFA"))
    sample_rate: int = field(default_factory=lambda: get_env_int("AUDIO_SAMPLE_RATE", 16000))

    @property
    def is_configured(self) -> bool:
        """Check if speech credentials are present."""
        return bool(self.api_key and self.region)

    def voice_override(self, persona_id: str) -> str:
        """Voice configured in the environment for a persona, or empty."""
        return {
            "adina": self.voice_adina,
            "rafa": self.voice_rafa,
        }.get(persona_id, "")

    def validate(self) -> bool:
        """Validate that speech credentials are configured."""
        if not self.api_key:
            raise ValueError("AZURE_SPEECH_API_KEY is required")
        if not self.region:
            raise ValueError("AZURE_SPEECH_REGION is required")
        return True


@dataclass
class AzureOpenAIConfig:
    """
    Azure OpenAI chat completion configuration.

    An empty api_key is allowed: the completion client then answers with a
    labelled placeholder so the pipeline stays testable offline.
    """
    api_key: str = field(default_factory=lambda: get_env("AZURE_OPENAI_API_KEY"))
    endpoint: str = field(default_factory=lambda: get_env("AZURE_OPENAI_ENDPOINT"))
    api_version: str = field(default_factory=lambda: get_env("AZURE_OPENAI_API_VERSION", "2024-08-01-preview"))
    chat_deployment: str = field(default_factory=lambda: get_env("AZURE_OPENAI_CHAT_DEPLOYMENT", "chat-model"))

    @property
    def is_configured(self) -> bool:
        """Check if a completion credential is present."""
        return bool(self.api_key and self.api_key.strip())

    @property
    def chat_url(self) -> str:
        """Get the full URL for chat completion API calls."""
        base = self.endpoint.rstrip("/")
        return f"{base}/openai/deployments/{self.chat_deployment}/chat/completions?api-version={self.api_version}"


@dataclass
class LLMConfig:
    """
    Default generation parameters, used when a persona does not set its own.

    Attributes:
        temperature: Sampling temperature
        max_tokens: Maximum tokens in a reply
        timeout_s: Total timeout for one completion request
    """
    temperature: float = field(default_factory=lambda: get_env_float("LLM_TEMPERATURE", 0.7))
    max_tokens: int = field(default_factory=lambda: get_env_int("LLM_MAX_TOKENS", 150))
    timeout_s: float = field(default_factory=lambda: get_env_float("LLM_TIMEOUT_SECONDS", 30.0))


@dataclass
class SessionConfig:
    """
    Voice session behaviour.

    Attributes:
        participant_refresh_s: Interval of the participant subscription pass
        memory_max_entries: Conversation memory window per session and persona
        emotion_threshold: Minimum confidence before emotion guidance is added
        external_call_timeout_s: Upper bound for completion and synthesis calls
        utterance_queue_size: Finalized transcripts waiting per session
        shutdown_grace_s: Time queued replies get to finish on server shutdown
        user_session_ttl_days: Idle days before a client session record is forgotten
    """
    participant_refresh_s: float = field(default_factory=lambda: get_env_float("PARTICIPANT_REFRESH_SECONDS", 5.0))
    memory_max_entries: int = field(default_factory=lambda: get_env_int("MEMORY_MAX_ENTRIES", 5))
    emotion_threshold: float = field(default_factory=lambda: get_env_float("EMOTION_CONFIDENCE_THRESHOLD", 0.6))
    external_call_timeout_s: float = field(default_factory=lambda: get_env_float("EXTERNAL_CALL_TIMEOUT_SECONDS", 30.0))
    utterance_queue_size: int = field(default_factory=lambda: get_env_int("UTTERANCE_QUEUE_SIZE", 8))
    shutdown_grace_s: float = field(default_factory=lambda: get_env_float("SHUTDOWN_GRACE_SECONDS", 2.0))
    user_session_ttl_days: int = field(default_factory=lambda: get_env_int("USER_SESSION_TTL_DAYS", 30))

    def validate(self) -> bool:
        """Validate session settings."""
        if self.participant_refresh_s <= 0:
            raise ValueError("PARTICIPANT_REFRESH_SECONDS must be positive")
        if self.memory_max_entries <= 0:
            raise ValueError("MEMORY_MAX_ENTRIES must be positive")
        if not 0.0 <= self.emotion_threshold <= 1.0:
            raise ValueError("EMOTION_CONFIDENCE_THRESHOLD must be between 0 and 1")
        if self.user_session_ttl_days <= 0:
            raise ValueError("USER_SESSION_TTL_DAYS must be positive")
        return True


@dataclass
class ServerConfig:
    """HTTP server settings."""
    host: str = field(default_factory=lambda: get_env("HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: get_env_int("PORT", 3001))
    cors_origins: List[str] = field(default_factory=lambda: get_env_list("CORS_ORIGINS", "*"))
    rate_limit_requests: int = field(default_factory=lambda: get_env_int("RATE_LIMIT_REQUESTS", 60))
    rate_limit_window: int = field(default_factory=lambda: get_env_int("RATE_LIMIT_WINDOW", 60))


@dataclass
class LoggingConfig:
    """
    Logging configuration.

    Attributes:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        file: Optional log file path
    """
    level: str = field(default_factory=lambda: get_env("LOG_LEVEL", "INFO"))
    file: Optional[str] = field(default_factory=lambda: get_env("LOG_FILE") or None)


@dataclass
class Settings:
    """
    Main settings container aggregating all configuration sections.

    Example:
        from persona_voice.config import settings

        settings.livekit.validate()
        token_url = settings.livekit.ws_url
    """
    livekit: LiveKitConfig = field(default_factory=LiveKitConfig)
    speech: SpeechConfig = field(default_factory=SpeechConfig)
    azure: AzureOpenAIConfig = field(default_factory=AzureOpenAIConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    app_env: str = field(default_factory=lambda: get_env("APP_ENV", "development"))

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    def validate_voice(self) -> bool:
        """
        Validate everything a live voice session needs.

        Completion credentials are not checked: without them replies
        degrade to placeholder text.

        Raises:
            ValueError: If any required setting is missing
        """
        self.livekit.validate()
        self.speech.validate()
        self.session.validate()
        return True


# Singleton settings instance
settings = Settings()
