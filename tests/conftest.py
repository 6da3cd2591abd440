"""
Pytest Configuration and Fixtures

This module provides shared fixtures and configuration for all tests.
"""

import os
import pytest
from unittest.mock import AsyncMock, MagicMock

# Set test environment before settings are loaded
os.environ["APP_ENV"] = "test"
os.environ["AZURE_OPENAI_API_KEY"] = ""
os.environ["AZURE_OPENAI_ENDPOINT"] = "https://test.openai.azure.com"
os.environ["LIVEKIT_API_KEY"] = "test-livekit-key"
os.environ["LIVEKIT_API_SECRET"] = "test-livekit-secret-with-enough-length"
os.environ["LIVEKIT_WS_URL"] = "wss://test.livekit.cloud"
os.environ["AZURE_SPEECH_API_KEY"] = "test-speech-key"
os.environ["AZURE_SPEECH_REGION"] = "eastus"
os.environ["AZURE_SPEECH_VOICE_ADINA"] = ""
os.environ["AZURE_SPEECH_VOICE_RAFA"] = ""
os.environ["RATE_LIMIT_REQUESTS"] = "1000"


@pytest.fixture
def personas():
    """Bundled persona registry."""
    from persona_voice.core.persona import load_personas
    return load_personas()


@pytest.fixture
def adina(personas):
    return personas.get("adina")


@pytest.fixture
def rafa(personas):
    return personas.get("rafa")


@pytest.fixture
def memory():
    """Empty conversation memory with the default window."""
    from persona_voice.core.memory import ConversationMemory
    return ConversationMemory(max_entries=5)


@pytest.fixture
def builder(memory):
    """Prompt builder over the shared memory fixture."""
    from persona_voice.core.emotion import EmotionClassifier
    from persona_voice.core.prompt import PersonaPromptBuilder
    return PersonaPromptBuilder(memory, EmotionClassifier(), emotion_threshold=0.6)


@pytest.fixture
def room_participant():
    from persona_voice.realtime.room_gateway import RoomParticipant
    return RoomParticipant(identity="user-1", sid="PA_user1", track_sids=["TR_mic1"])


@pytest.fixture
def mock_gateway(room_participant):
    """Room gateway double with async room operations."""
    gateway = MagicMock()
    gateway.ensure_room = AsyncMock()
    gateway.mint_bot_token.return_value = "bot-token"
    gateway.mint_participant_token.return_value = "participant-token"
    gateway.list_participants = AsyncMock(return_value=[room_participant])
    gateway.subscribe_to_participant = AsyncMock()
    gateway.broadcast = AsyncMock(return_value=True)
    gateway.remove_bot_from_room = AsyncMock()
    gateway.close = AsyncMock()
    return gateway


@pytest.fixture
def mock_listener():
    """Transcript listener double that records the registered callback."""
    listener = MagicMock()
    connection = MagicMock()
    connection.connection_id = "r1-0"
    listener.open = AsyncMock(return_value=connection)
    listener.feed_audio = AsyncMock()
    listener.close = AsyncMock()
    return listener


@pytest.fixture
def mock_completion():
    completion = MagicMock()
    completion.is_configured = True
    completion.complete = AsyncMock(return_value="Rafa: Stay strong, friend.")
    return completion


@pytest.fixture
def mock_synthesizer():
    synthesizer = MagicMock()
    synthesizer.synthesize = AsyncMock(return_value=b"ID3-fake-mp3")
    return synthesizer


@pytest.fixture
def session_config():
    """Session settings with a fast refresh and a short call timeout."""
    from persona_voice.config import SessionConfig
    return SessionConfig(
        participant_refresh_s=0.05,
        memory_max_entries=5,
        emotion_threshold=0.6,
        external_call_timeout_s=1.0,
        utterance_queue_size=8,
    )


@pytest.fixture
def bot_factory(mock_gateway, mock_listener, builder, mock_completion, mock_synthesizer, session_config):
    """Factory building bots wired to the test doubles."""
    from persona_voice.realtime.bot_participant import BotParticipant

    def factory(room_name, persona, memory_scope=None):
        return BotParticipant(
            room_name=room_name,
            persona=persona,
            gateway=mock_gateway,
            listener=mock_listener,
            prompt_builder=builder,
            completion=mock_completion,
            synthesizer=mock_synthesizer,
            config=session_config,
            memory_scope=memory_scope,
        )

    return factory
