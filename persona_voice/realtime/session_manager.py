"""
Session Manager Module

Bookkeeping for voice sessions: which room is served by which persona and
which bot. At most one active session exists per room name.

Clients may also identify themselves with their own session id. Those ids
get a UserSession record (interaction count, personas used) that outlives
individual voice sessions and is forgotten after a period of inactivity.
"""

import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set, Tuple

from persona_voice.config import settings
from persona_voice.core.persona import PersonaConfig
from persona_voice.logger import get_logger
from persona_voice.realtime.bot_participant import BotParticipant

logger = get_logger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60

# (room_name, persona, memory_scope) -> bot
BotFactory = Callable[[str, PersonaConfig, Optional[str]], BotParticipant]


class SessionExistsError(ValueError):
    """The room already has an active session."""


@dataclass
class Session:
    """One voice session."""
    persona: str
    persona_config: PersonaConfig
    room_name: str
    user_session_id: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    start_time: float = field(default_factory=time.time)
    active: bool = True
    end_time: Optional[float] = None

    @property
    def duration_s(self) -> float:
        return (self.end_time or time.time()) - self.start_time


@dataclass
class UserSession:
    """Activity of one client-supplied session id across voice sessions."""
    session_id: str
    first_interaction: float = field(default_factory=time.time)
    last_interaction: float = field(default_factory=time.time)
    interactions: int = 0
    persona_history: Set[str] = field(default_factory=set)
    current_persona: Optional[str] = None


class UserSessionRegistry:
    """
    Client session records, dropped after ``ttl_days`` without activity.

    Usage:
        users = UserSessionRegistry(ttl_days=30)
        users.record_start("web-1", "rafa")
        users.record_end("web-1")
        users.reset("web-1")
    """

    def __init__(self, ttl_days: Optional[int] = None):
        days = settings.session.user_session_ttl_days if ttl_days is None else ttl_days
        self._ttl_s = days * SECONDS_PER_DAY
        self._records: Dict[str, UserSession] = {}

    def get(self, session_id: str) -> Optional[UserSession]:
        return self._records.get(session_id)

    def record_start(self, session_id: str, persona_id: str) -> UserSession:
        """Count a voice session started under this client session."""
        self.expire()
        record = self._records.get(session_id)
        if record is None:
            record = UserSession(session_id=session_id)
            self._records[session_id] = record

        record.last_interaction = time.time()
        record.interactions += 1
        record.persona_history.add(persona_id)
        record.current_persona = persona_id
        logger.info(f"User session {session_id}: interaction #{record.interactions} with {persona_id}")
        return record

    def record_end(self, session_id: str) -> None:
        record = self._records.get(session_id)
        if record is not None:
            record.last_interaction = time.time()

    def reset(self, session_id: str) -> bool:
        """Zero a record's counters. False if the id is unknown."""
        record = self._records.get(session_id)
        if record is None:
            return False
        record.interactions = 0
        record.current_persona = None
        record.last_interaction = time.time()
        logger.info(f"Reset user session {session_id}")
        return True

    def expire(self, now: Optional[float] = None) -> int:
        """Forget records idle for longer than the TTL. Returns how many."""
        cutoff = (now if now is not None else time.time()) - self._ttl_s
        stale = [sid for sid, record in self._records.items() if record.last_interaction < cutoff]
        for session_id in stale:
            del self._records[session_id]
        if stale:
            logger.info(f"Expired {len(stale)} idle user session(s)")
        return len(stale)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._records


class SessionManager:
    """
    Tracks active sessions and their bots, keyed by session id and room.

    Bots are built by an injected factory so the manager never touches
    the room or speech services directly.

    Usage:
        manager = SessionManager(bot_factory=agent.create_bot)
        session, token = await manager.start_voice_session(rafa, "voice-rafa-1")
        await manager.end_voice_session("voice-rafa-1")
    """

    def __init__(
        self,
        bot_factory: Optional[BotFactory] = None,
        user_sessions: Optional[UserSessionRegistry] = None,
    ):
        self._bot_factory = bot_factory
        self._sessions: Dict[str, Session] = {}
        self._rooms: Dict[str, str] = {}
        self._bots: Dict[str, BotParticipant] = {}
        self.user_sessions = user_sessions or UserSessionRegistry()

    # ========================================================================
    # Sessions
    # ========================================================================

    def create_session(
        self,
        persona: PersonaConfig,
        room_name: str,
        user_session_id: Optional[str] = None,
    ) -> Session:
        """
        Register a new active session.

        Raises:
            SessionExistsError: If the room already has an active session
        """
        if room_name in self._rooms:
            raise SessionExistsError(f"Room {room_name} already has an active session")

        session = Session(
            persona=persona.id,
            persona_config=persona,
            room_name=room_name,
            user_session_id=user_session_id,
        )
        self._sessions[session.id] = session
        self._rooms[room_name] = session.id
        logger.info(f"Session {session.id} created for {persona.id} in {room_name}")
        return session

    def end_session(self, session_id: str) -> bool:
        """Mark a session ended and forget it. False if unknown."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False

        session.active = False
        session.end_time = time.time()
        if self._rooms.get(session.room_name) == session_id:
            del self._rooms[session.room_name]
        logger.info(f"Session {session_id} ended after {session.duration_s:.1f}s")
        return True

    def get_session(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def get_session_for_room(self, room_name: str) -> Optional[Session]:
        session_id = self._rooms.get(room_name)
        return self._sessions.get(session_id) if session_id else None

    def get_bot(self, room_name: str) -> Optional[BotParticipant]:
        return self._bots.get(room_name)

    @property
    def active_sessions(self) -> List[Session]:
        return list(self._sessions.values())

    # ========================================================================
    # Voice sessions
    # ========================================================================

    async def start_voice_session(
        self,
        persona: PersonaConfig,
        room_name: str,
        user_session_id: Optional[str] = None,
    ) -> Tuple[Session, str]:
        """
        Create a session and connect a persona bot to its room.

        Args:
            persona: Persona the bot speaks as
            room_name: Room to join; must not have an active session
            user_session_id: Client session id; also scopes the bot's memory

        Returns:
            The session and the bot's access token

        Raises:
            SessionExistsError: If the room is already in use
            Exception: Any bot construction or connection failure; the
                session is ended before re-raising
        """
        if self._bot_factory is None:
            raise RuntimeError("No bot factory configured")

        session = self.create_session(persona, room_name, user_session_id)
        bot: Optional[BotParticipant] = None
        try:
            bot = self._bot_factory(room_name, persona, user_session_id)
            self._bots[room_name] = bot
            token = await bot.connect()
        except Exception:
            # end_voice_session may already have removed this bot, and a new
            # session may own the room by now
            if bot is not None and self._bots.get(room_name) is bot:
                del self._bots[room_name]
            self.end_session(session.id)
            raise

        if user_session_id:
            self.user_sessions.record_start(user_session_id, persona.id)
        return session, token

    async def end_voice_session(self, room_name: str, drain_timeout: float = 0.0) -> bool:
        """
        Disconnect a room's bot and end its session.

        Args:
            room_name: Room of the session
            drain_timeout: Seconds queued utterances get to finish first

        Returns:
            False if the room is unknown
        """
        session = self.get_session_for_room(room_name)
        bot = self._bots.pop(room_name, None)
        if session is None and bot is None:
            return False

        if bot is not None:
            try:
                await bot.cleanup(drain_timeout=drain_timeout)
            except Exception as e:
                logger.error(f"Error cleaning up bot for {room_name}: {e}")

        if session is not None:
            self.end_session(session.id)
            if session.user_session_id:
                self.user_sessions.record_end(session.user_session_id)
        return True

    async def shutdown(self, drain_timeout: float = 0.0) -> None:
        """End every active session."""
        rooms = list(self._rooms)
        if rooms:
            logger.info(f"Ending {len(rooms)} active session(s)")
        for room_name in rooms:
            await self.end_voice_session(room_name, drain_timeout=drain_timeout)
