"""
Real-Time Voice Session Package

Persona bots that join LiveKit rooms, transcribe the humans in them and
answer with synthesized speech.

Architecture:
- Event Bus: Per-session FIFO of finalized transcripts
- Room Gateway: LiveKit rooms, tokens, subscriptions and data messages
- Transcript Listener: Azure streaming speech recognition
- Bot Participant: One persona bot in one room
- Session Manager: Active sessions keyed by room, client session records
- Voice Agent: Orchestrator shared with the HTTP API and CLI

Usage:
    from persona_voice.realtime import VoiceAgent

    agent = VoiceAgent()
    session, token = await agent.start_voice_session("adina")
"""

from .events import (
    Event,
    EventBus,
    TranscriptEvent,
    TranscriptType,
    AudioNotification,
)
from .room_gateway import RoomGateway, RoomParticipant, bot_identity
from .transcript_listener import TranscriptListener, TranscriptConnection
from .bot_participant import BotParticipant, BotState, ConnectAborted
from .session_manager import (
    Session,
    SessionManager,
    SessionExistsError,
    UserSession,
    UserSessionRegistry,
)
from .voice_agent import VoiceAgent, UnknownPersonaError, new_room_name

__all__ = [
    # Events
    "Event",
    "EventBus",
    "TranscriptEvent",
    "TranscriptType",
    "AudioNotification",
    # Room
    "RoomGateway",
    "RoomParticipant",
    "bot_identity",
    # Speech recognition
    "TranscriptListener",
    "TranscriptConnection",
    # Sessions
    "BotParticipant",
    "BotState",
    "ConnectAborted",
    "Session",
    "SessionManager",
    "SessionExistsError",
    "UserSession",
    "UserSessionRegistry",
    # Orchestrator
    "VoiceAgent",
    "UnknownPersonaError",
    "new_room_name",
]
