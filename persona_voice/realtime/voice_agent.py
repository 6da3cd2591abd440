"""
Voice Agent Module

The single object the HTTP layer and the CLI talk to. It owns the persona
registry, conversation memory, emotion classifier, prompt builder and
completion client, and creates the room, recognition and synthesis
clients on first use so a process without LiveKit or Speech credentials
can still serve text chat.
"""

import uuid
from typing import Any, Dict, Optional, Tuple

from persona_voice import __version__
from persona_voice.config import settings
from persona_voice.core.emotion import EmotionClassifier
from persona_voice.core.llm import CompletionClient
from persona_voice.core.memory import ConversationMemory
from persona_voice.core.persona import PersonaConfig, PersonaRegistry, load_personas
from persona_voice.core.prompt import PersonaPromptBuilder
from persona_voice.core.speech import SpeechSynthesisClient
from persona_voice.logger import get_logger
from persona_voice.realtime.bot_participant import BotParticipant
from persona_voice.realtime.room_gateway import RoomGateway
from persona_voice.realtime.session_manager import Session, SessionManager
from persona_voice.realtime.transcript_listener import TranscriptListener

logger = get_logger(__name__)


class UnknownPersonaError(KeyError):
    """No persona with the requested id."""


def new_room_name(persona_id: str) -> str:
    """Fresh room name for a voice session."""
    return f"voice-{persona_id}-{uuid.uuid4()}"


class VoiceAgent:
    """
    Orchestrator for persona voice and text conversations.

    Usage:
        agent = VoiceAgent()
        session, token = await agent.start_voice_session("rafa")
        reply = await agent.chat("adina", "I'm worried", session_id="abc")
        await agent.close()
    """

    def __init__(
        self,
        personas: Optional[PersonaRegistry] = None,
        completion: Optional[CompletionClient] = None,
        memory: Optional[ConversationMemory] = None,
        classifier: Optional[EmotionClassifier] = None,
    ):
        self.personas = personas or load_personas()
        self.memory = memory or ConversationMemory(max_entries=settings.session.memory_max_entries)
        self.classifier = classifier or EmotionClassifier()
        self.prompt_builder = PersonaPromptBuilder(
            self.memory,
            self.classifier,
            emotion_threshold=settings.session.emotion_threshold,
        )
        self.completion = completion or CompletionClient()
        self.sessions = SessionManager(bot_factory=self.create_bot)

        # Created on first use
        self._gateway: Optional[RoomGateway] = None
        self._listener: Optional[TranscriptListener] = None
        self._speech: Optional[SpeechSynthesisClient] = None

        logger.info(f"Voice agent ready with personas: {', '.join(self.personas.ids)}")

    # ========================================================================
    # Lazily created service clients
    # ========================================================================

    @property
    def gateway(self) -> RoomGateway:
        """Room gateway. Raises ValueError when LiveKit is not configured."""
        if self._gateway is None:
            self._gateway = RoomGateway()
        return self._gateway

    @property
    def listener(self) -> TranscriptListener:
        """Transcript listener. Raises ValueError when Speech is not configured."""
        if self._listener is None:
            self._listener = TranscriptListener()
        return self._listener

    @property
    def speech(self) -> SpeechSynthesisClient:
        """Speech synthesizer. Raises ValueError when Speech is not configured."""
        if self._speech is None:
            self._speech = SpeechSynthesisClient()
        return self._speech

    # ========================================================================
    # Personas
    # ========================================================================

    def get_persona(self, persona_id: Optional[str]) -> PersonaConfig:
        """
        Raises:
            UnknownPersonaError: If no persona has this id
        """
        persona = self.personas.get(persona_id)
        if persona is None:
            raise UnknownPersonaError(persona_id)
        return persona

    # ========================================================================
    # Voice sessions
    # ========================================================================

    def create_bot(
        self,
        room_name: str,
        persona: PersonaConfig,
        memory_scope: Optional[str] = None,
    ) -> BotParticipant:
        """Bot factory used by the session manager."""
        settings.validate_voice()
        return BotParticipant(
            room_name=room_name,
            persona=persona,
            gateway=self.gateway,
            listener=self.listener,
            prompt_builder=self.prompt_builder,
            completion=self.completion,
            synthesizer=self.speech,
            config=settings.session,
            memory_scope=memory_scope,
        )

    async def start_voice_session(
        self,
        persona_id: str,
        room_name: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> Tuple[Session, str]:
        """
        Start a persona bot in a (new) room.

        With a client ``session_id`` the bot remembers the conversation
        under that id, the same key text chat uses, and the start is
        counted on the client's user session record.
        """
        persona = self.get_persona(persona_id)
        room_name = room_name or new_room_name(persona.id)
        logger.info(f"Starting voice session for {persona.id} in {room_name}")
        return await self.sessions.start_voice_session(persona, room_name, user_session_id=session_id)

    async def end_voice_session(self, room_name: str, session_id: Optional[str] = None) -> bool:
        ended = await self.sessions.end_voice_session(room_name)
        if ended and session_id:
            self.sessions.user_sessions.record_end(session_id)
        return ended

    def participant_token(self, room_name: str, participant_name: str) -> str:
        """Token for a human joining an existing voice session's room."""
        return self.gateway.mint_participant_token(room_name, participant_name)

    # ========================================================================
    # Text chat
    # ========================================================================

    async def chat(self, persona_id: str, message: str, session_id: Optional[str] = None) -> str:
        """
        Answer a text message in a persona's voice.

        Raises:
            UnknownPersonaError: If the persona does not exist
            ValueError: If the message is empty
            CompletionError: If the completion service fails
        """
        persona = self.get_persona(persona_id)
        if not message or not message.strip():
            raise ValueError("Message is required")

        prompt = self.prompt_builder.build(message, persona, session_id=session_id)
        raw = await self.completion.complete(prompt, persona, user_message=message)
        return self.prompt_builder.extract_response(raw, persona, session_id=session_id)

    async def synthesize(self, text: str, persona_id: str) -> bytes:
        """Speak text with a persona's voice."""
        return await self.speech.synthesize(text, self.get_persona(persona_id))

    def clear_memory(self, session_id: str) -> int:
        """
        Forget a session's conversation with every persona and reset its
        user session record.

        Returns:
            Conversations cleared, plus one if a user session was reset
        """
        cleared = self.memory.clear(session_id)
        if self.sessions.user_sessions.reset(session_id):
            cleared += 1
        logger.info(f"Cleared {cleared} memory record(s) for session {session_id}")
        return cleared

    # ========================================================================
    # Status
    # ========================================================================

    def connection_info(self) -> Dict[str, Any]:
        """Non-secret view of the service configuration."""
        return {
            "livekitUrl": settings.livekit.ws_url,
            "livekitConfigured": settings.livekit.is_configured,
            "speechConfigured": settings.speech.is_configured,
            "speechRegion": settings.speech.region,
            "completionConfigured": self.completion.is_configured,
            "personas": self.personas.ids,
            "version": __version__,
        }

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "activeSessions": len(self.sessions.active_sessions),
            "memoryKeys": len(self.memory),
            "userSessions": len(self.sessions.user_sessions),
        }

    async def close(self) -> None:
        """End all sessions and release service clients."""
        await self.sessions.shutdown(drain_timeout=settings.session.shutdown_grace_s)
        if self._gateway is not None:
            try:
                await self._gateway.close()
            except Exception as e:
                logger.warning(f"Error closing room gateway: {e}")
        logger.info("Voice agent stopped")
