"""
Event System for Voice Sessions

Each voice session owns one EventBus. The speech recognizer publishes
finalized transcripts into it and a single consumer loop answers them, so
a bot never talks over itself and replies go out in the order the user
spoke.

Event Types:
- TranscriptEvent: Finalized speech recognition result

Payloads:
- AudioNotification: Data-channel message announcing synthesized audio
"""

import asyncio
import base64
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List

from persona_voice.logger import get_logger

logger = get_logger(__name__)

AUDIO_NOTIFICATION_TYPE = "audio"
POLL_INTERVAL_S = 0.1


@dataclass
class Event:
    """Something that happened in a voice session."""
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    timestamp: float = field(default_factory=time.time)
    source: str = ""


Handler = Callable[[Event], Awaitable[None]]


class TranscriptType(Enum):
    PARTIAL = "partial"
    FINAL = "final"


@dataclass
class TranscriptEvent(Event):
    """Recognized speech from one transcript connection."""
    text: str = ""
    transcript_type: TranscriptType = TranscriptType.FINAL
    connection_id: str = ""
    language: str = "en-US"
    source: str = "stt"

    @property
    def is_final(self) -> bool:
        return self.transcript_type is TranscriptType.FINAL


@dataclass
class AudioNotification:
    """
    Data-channel payload telling room participants that persona audio is
    ready. The audio travels inline as a base64 data URI.
    """
    url: str
    persona: str
    timestamp: int = field(default_factory=lambda: int(time.time() * 1000))
    type: str = AUDIO_NOTIFICATION_TYPE

    @classmethod
    def from_audio(cls, audio: bytes, persona: str, mime_type: str = "audio/mpeg") -> "AudioNotification":
        encoded = base64.b64encode(audio).decode("ascii")
        return cls(url=f"data:{mime_type};base64,{encoded}", persona=persona)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "url": self.url,
            "persona": self.persona,
            "timestamp": self.timestamp,
        }


class EventBus:
    """
    Bounded FIFO of session events with exactly one consumer.

    ``publish`` never blocks the recognizer: when ``max_queue_size`` events
    are already waiting the new one is dropped and counted. Handler
    exceptions are logged and do not stop the consumer.

    Usage:
        bus = EventBus(max_queue_size=8)
        bus.subscribe(TranscriptEvent, on_transcript)
        task = asyncio.create_task(bus.run())
        await bus.publish(TranscriptEvent(text="hello"))
    """

    def __init__(self, max_queue_size: int = 8):
        self._queue: "asyncio.Queue[Event]" = asyncio.Queue(maxsize=max_queue_size)
        self._subscribers: Dict[type, List[Handler]] = {}
        self._dropped = 0
        self._running = False

    def subscribe(self, event_type: type, handler: Handler) -> None:
        handlers = self._subscribers.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)

    async def publish(self, event: Event) -> bool:
        """
        Queue an event for the consumer loop.

        Returns:
            False if the queue was full
        """
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self._dropped += 1
            logger.warning(
                f"Session queue full ({self._queue.maxsize}), dropping {type(event).__name__} "
                f"{event.event_id}"
            )
            return False
        return True

    def _handlers_for(self, event: Event) -> List[Handler]:
        matched: List[Handler] = []
        for event_type, handlers in self._subscribers.items():
            if isinstance(event, event_type):
                matched.extend(handlers)
        return matched

    async def _deliver(self, event: Event) -> None:
        for handler in self._handlers_for(event):
            try:
                await handler(event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"{type(event).__name__} handler {getattr(handler, '__name__', handler)} failed: {e}")

    async def run(self) -> None:
        """Consume events until ``stop()`` or cancellation."""
        self._running = True
        logger.debug("Session event loop started")
        try:
            while self._running:
                try:
                    event = await asyncio.wait_for(self._queue.get(), timeout=POLL_INTERVAL_S)
                except asyncio.TimeoutError:
                    continue
                try:
                    await self._deliver(event)
                finally:
                    self._queue.task_done()
        except asyncio.CancelledError:
            logger.debug("Session event loop cancelled")
        finally:
            self._running = False
            logger.debug("Session event loop stopped")

    def stop(self) -> None:
        self._running = False

    async def drain(self, timeout: float = 5.0) -> None:
        """Wait until every queued event has been handled."""
        try:
            await asyncio.wait_for(self._queue.join(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Session queue still has {self._queue.qsize()} event(s) after {timeout}s")

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def queue_size(self) -> int:
        return self._queue.qsize()

    @property
    def dropped_count(self) -> int:
        return self._dropped
