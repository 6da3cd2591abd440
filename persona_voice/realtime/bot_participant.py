"""
Bot Participant Module

One persona bot inside one LiveKit room. The bot listens to the humans in
the room, answers every finalized utterance in its persona's voice and
sends the audio back over the room's data channel.

Lifecycle:
    CREATED -> CONNECTING -> LISTENING -> CLEANING_UP -> DISCONNECTED

Utterances flow through a per-bot bounded EventBus with a single consumer,
so replies are produced and broadcast in the order the user spoke.
"""

import asyncio
import time
from enum import Enum, auto
from typing import Any, Dict, Optional

from persona_voice.config import SessionConfig, settings
from persona_voice.core.llm import CompletionClient
from persona_voice.core.persona import PersonaConfig
from persona_voice.core.prompt import PersonaPromptBuilder
from persona_voice.core.speech import AUDIO_MIME_TYPE, SpeechSynthesisClient
from persona_voice.logger import get_scoped_logger
from persona_voice.realtime.events import AudioNotification, EventBus, TranscriptEvent
from persona_voice.realtime.room_gateway import RoomGateway, bot_identity
from persona_voice.realtime.transcript_listener import TranscriptConnection, TranscriptListener


class BotState(Enum):
    """Lifecycle state of a bot participant."""
    CREATED = auto()
    CONNECTING = auto()
    LISTENING = auto()
    CLEANING_UP = auto()
    DISCONNECTED = auto()


class ConnectAborted(RuntimeError):
    """The bot was cleaned up before connect() finished."""


class BotParticipant:
    """
    Persona bot for a single room.

    Usage:
        bot = BotParticipant("voice-rafa-1", rafa, gateway, listener,
                             builder, completion, synthesizer)
        token = await bot.connect()
        await bot.handle_audio(pcm_chunk)
        await bot.cleanup()
    """

    def __init__(
        self,
        room_name: str,
        persona: PersonaConfig,
        gateway: RoomGateway,
        listener: TranscriptListener,
        prompt_builder: PersonaPromptBuilder,
        completion: CompletionClient,
        synthesizer: SpeechSynthesisClient,
        config: Optional[SessionConfig] = None,
        memory_scope: Optional[str] = None,
    ):
        self.room_name = room_name
        self.persona = persona
        # Client session id when the caller supplied one, so voice and chat share history
        self.memory_scope = memory_scope or room_name
        self.identity = bot_identity(persona.id)
        self._log = get_scoped_logger(__name__, room_name)

        self._gateway = gateway
        self._listener = listener
        self._builder = prompt_builder
        self._completion = completion
        self._synthesizer = synthesizer
        self._config = config or settings.session

        self._state = BotState.CREATED
        self.connection_id: Optional[str] = None
        self._connection: Optional[TranscriptConnection] = None
        self.is_processing_audio = False

        self._event_bus = EventBus(max_queue_size=self._config.utterance_queue_size)
        self._event_bus.subscribe(TranscriptEvent, self._handle_transcript)

        self._event_bus_task: Optional[asyncio.Task] = None
        self._refresh_task: Optional[asyncio.Task] = None

    # ========================================================================
    # Connect
    # ========================================================================

    async def connect(self) -> str:
        """
        Join the room and start listening.

        Returns:
            The bot's access token

        Raises:
            RuntimeError: If the bot was already connected
            ConnectAborted: If cleanup() ran before the bot finished joining;
                anything opened by then has been closed again
            Exception: Whatever setup step failed, after cleaning up
        """
        if self._state != BotState.CREATED:
            raise RuntimeError(f"Bot for {self.room_name} cannot connect from {self._state.name}")

        self._state = BotState.CONNECTING
        self._log.info(f"Creating/joining room for {self.persona.id} bot")

        try:
            await self._gateway.ensure_room(
                self.room_name,
                {"persona": self.persona.id, "type": "voice-agent"},
            )
            self._check_still_connecting()
            token = self._gateway.mint_bot_token(self.room_name, self.persona.id)

            connection_id = f"{self.room_name}-{int(time.time() * 1000)}"
            connection = await self._listener.open(connection_id)
            if self._state != BotState.CONNECTING:
                await self._listener.close(connection)
                self._check_still_connecting()
            self.connection_id = connection_id
            self._connection = connection

            await self._subscribe_participants()
            if self._state != BotState.CONNECTING:
                # cleanup() may have run before the connection was assigned
                await self._listener.close(connection)
                self._check_still_connecting()

            # No awaits from here on, so cleanup cannot interleave
            self._refresh_task = asyncio.create_task(self._refresh_participants())
            self._event_bus_task = asyncio.create_task(self._event_bus.run())
            self._listener.on_transcript(self._connection, self._event_bus.publish)
        except ConnectAborted:
            self._log.info("Connect abandoned, session ended while joining")
            raise
        except Exception as e:
            self._log.error(f"Failed to connect bot: {e}")
            await self.cleanup()
            raise

        self._state = BotState.LISTENING
        self._log.info(f"Bot {self.identity} listening")
        return token

    def _check_still_connecting(self) -> None:
        """Raise ConnectAborted if cleanup() ran while connect() was awaiting."""
        if self._state != BotState.CONNECTING:
            raise ConnectAborted(f"Bot for {self.room_name} was cleaned up while connecting")

    async def _subscribe_participants(self) -> None:
        participants = await self._gateway.list_participants(self.room_name)
        self._log.debug(f"Current participants: {len(participants)}")
        for participant in participants:
            if participant.identity == self.identity or participant.is_bot:
                continue
            await self._gateway.subscribe_to_participant(self.room_name, self.identity, participant)

    async def _refresh_participants(self) -> None:
        """Resubscribe to room participants until cancelled."""
        while True:
            await asyncio.sleep(self._config.participant_refresh_s)
            try:
                await self._subscribe_participants()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._log.error(f"Error checking participants: {e}")

    # ========================================================================
    # Audio in
    # ========================================================================

    async def handle_audio(self, chunk: bytes) -> bool:
        """
        Forward an inbound PCM chunk to speech recognition.

        Chunks arriving while the previous one is still being written are
        dropped.

        Returns:
            True if the chunk was accepted
        """
        if self._state != BotState.LISTENING or self._connection is None:
            return False
        if self.is_processing_audio:
            return False

        self.is_processing_audio = True
        try:
            await self._listener.feed_audio(self._connection, chunk)
            return True
        except Exception as e:
            self._log.error(f"Error handling audio data: {e}")
            return False
        finally:
            self.is_processing_audio = False

    # ========================================================================
    # Utterance pipeline
    # ========================================================================

    async def _handle_transcript(self, event: TranscriptEvent) -> None:
        """Answer one finalized utterance. Failures drop only this utterance."""
        if self._state != BotState.LISTENING:
            return

        text = event.text.strip()
        if not text:
            return

        timeout = self._config.external_call_timeout_s
        self._log.info(f"Received transcript: {text}")

        try:
            prompt = self._builder.build(text, self.persona, session_id=self.memory_scope)

            raw = await asyncio.wait_for(
                self._completion.complete(prompt, self.persona, user_message=text),
                timeout=timeout,
            )
            reply = self._builder.extract_response(raw, self.persona, session_id=self.memory_scope)
            if not reply:
                self._log.warning("Empty reply, nothing to speak")
                return
            self._log.info(f"{self.persona.name}: {reply}")

            audio = await asyncio.wait_for(
                self._synthesizer.synthesize(reply, self.persona),
                timeout=timeout,
            )
            notification = AudioNotification.from_audio(audio, self.persona.id, AUDIO_MIME_TYPE)
            self._log.debug(f"Synthesized {len(audio)} bytes")

            await self._gateway.broadcast(
                self.room_name,
                notification.to_dict(),
                exclude_identity=self.identity,
            )
        except asyncio.TimeoutError:
            self._log.error(f"Reply timed out after {timeout}s")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._log.error(f"Error processing transcript: {e}")

    # ========================================================================
    # Teardown
    # ========================================================================

    async def cleanup(self, drain_timeout: float = 0.0) -> None:
        """
        Stop listening and leave the room. Safe to call more than once.

        Args:
            drain_timeout: Seconds to let already queued utterances finish
                before tearing down; 0 stops immediately
        """
        if self._state in (BotState.CLEANING_UP, BotState.DISCONNECTED):
            return

        if drain_timeout > 0 and self._state == BotState.LISTENING:
            self._log.debug(f"Draining {self._event_bus.queue_size} queued utterance(s)")
            await self._event_bus.drain(drain_timeout)
            if self._state != BotState.LISTENING:
                return

        self._state = BotState.CLEANING_UP
        self._log.debug(f"Cleaning up bot {self.identity}")

        if self._refresh_task:
            self._refresh_task.cancel()
            try:
                await asyncio.wait_for(self._refresh_task, timeout=1.0)
            except (asyncio.CancelledError, asyncio.TimeoutError):
                pass
            self._refresh_task = None

        self._event_bus.stop()
        if self._event_bus_task:
            self._event_bus_task.cancel()
            try:
                await asyncio.wait_for(self._event_bus_task, timeout=1.0)
            except (asyncio.CancelledError, asyncio.TimeoutError):
                pass
            self._event_bus_task = None

        if self._connection is not None:
            try:
                await self._listener.close(self._connection)
            except Exception as e:
                self._log.error(f"Error closing transcript connection {self.connection_id}: {e}")
            self._connection = None
            self.connection_id = None

        await self._gateway.remove_bot_from_room(self.room_name, self.persona.id)

        self._state = BotState.DISCONNECTED
        self._log.info(f"Bot {self.identity} disconnected")

    async def disconnect(self) -> None:
        """Alias of ``cleanup``."""
        await self.cleanup()

    # ========================================================================
    # Properties
    # ========================================================================

    @property
    def state(self) -> BotState:
        return self._state

    @property
    def is_listening(self) -> bool:
        return self._state == BotState.LISTENING

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "room": self.room_name,
            "persona": self.persona.id,
            "state": self._state.name,
            "queued": self._event_bus.queue_size,
            "dropped": self._event_bus.dropped_count,
        }
