"""
Streaming Transcript Module

Continuous speech recognition over pushed PCM audio with the Azure Speech
SDK. Each voice session opens one connection; raw 16 kHz / 16-bit / mono
frames are written into it and finalized segments come back as
TranscriptEvents on the event loop that opened the connection.

Interim (partial) hypotheses are only logged. Nothing downstream acts on
them.
"""

import asyncio
from typing import Awaitable, Callable, Dict, Optional

import azure.cognitiveservices.speech as speechsdk

from persona_voice.config import settings
from persona_voice.logger import get_logger, get_scoped_logger
from persona_voice.realtime.events import TranscriptEvent, TranscriptType

logger = get_logger(__name__)

TranscriptCallback = Callable[[TranscriptEvent], Awaitable[None]]


class TranscriptConnection:
    """
    One streaming recognition session.

    SDK callbacks run on SDK threads; finalized transcripts are handed to
    the owning loop with ``run_coroutine_threadsafe``.
    """

    def __init__(self, connection_id: str, loop: asyncio.AbstractEventLoop):
        self.connection_id = connection_id
        self._log = get_scoped_logger(__name__, connection_id)
        self._loop = loop
        self._callback: Optional[TranscriptCallback] = None
        self._push_stream: Optional[speechsdk.audio.PushAudioInputStream] = None
        self._recognizer: Optional[speechsdk.SpeechRecognizer] = None
        self._closed = False

    @property
    def is_open(self) -> bool:
        return not self._closed and self._push_stream is not None

    def set_callback(self, callback: TranscriptCallback) -> None:
        self._callback = callback

    def attach(
        self,
        push_stream: speechsdk.audio.PushAudioInputStream,
        recognizer: speechsdk.SpeechRecognizer,
    ) -> None:
        """Wire SDK objects and recognition events to this connection."""
        self._push_stream = push_stream
        self._recognizer = recognizer
        recognizer.recognizing.connect(self._on_recognizing)
        recognizer.recognized.connect(self._on_recognized)
        recognizer.canceled.connect(self._on_canceled)
        recognizer.session_stopped.connect(self._on_session_stopped)

    # ========================================================================
    # Event Handlers (called from SDK thread)
    # ========================================================================

    def _on_recognizing(self, evt: speechsdk.SpeechRecognitionEventArgs) -> None:
        if evt.result.reason == speechsdk.ResultReason.RecognizingSpeech:
            self._log.debug(f"partial: {evt.result.text}")

    def _on_recognized(self, evt: speechsdk.SpeechRecognitionEventArgs) -> None:
        if evt.result.reason != speechsdk.ResultReason.RecognizedSpeech:
            return

        text = (evt.result.text or "").strip()
        if not text:
            return

        self._log.info(f"transcript: {text}")
        self.emit(TranscriptEvent(
            text=text,
            transcript_type=TranscriptType.FINAL,
            connection_id=self.connection_id,
            language=settings.speech.language,
        ))

    def _on_canceled(self, evt: speechsdk.SpeechRecognitionCanceledEventArgs) -> None:
        cancellation = evt.cancellation_details
        if cancellation.reason == speechsdk.CancellationReason.Error:
            self._log.error(f"STT error: {cancellation.error_details}")
        elif cancellation.reason == speechsdk.CancellationReason.EndOfStream:
            self._log.debug("STT end of stream")
        else:
            self._log.debug(f"STT cancelled: {cancellation.reason}")

    def _on_session_stopped(self, evt: speechsdk.SessionEventArgs) -> None:
        self._log.debug("STT session stopped")

    def emit(self, event: TranscriptEvent) -> None:
        """Deliver a finalized transcript to the callback on the owning loop."""
        # close() may clear the callback from another thread
        callback = self._callback
        if self._closed or callback is None or not event.is_final:
            return
        asyncio.run_coroutine_threadsafe(callback(event), self._loop)

    # ========================================================================
    # Audio and teardown
    # ========================================================================

    def write(self, chunk: bytes) -> None:
        if not self.is_open:
            raise RuntimeError(f"Transcript connection {self.connection_id} is closed")
        self._push_stream.write(chunk)

    def close(self) -> None:
        """Close the stream and stop recognition. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True
        self._callback = None

        if self._push_stream is not None:
            try:
                self._push_stream.close()
            except Exception as e:
                self._log.debug(f"error closing push stream: {e}")
            self._push_stream = None

        if self._recognizer is not None:
            try:
                self._recognizer.stop_continuous_recognition_async().get()
            except Exception as e:
                self._log.debug(f"error stopping recognizer: {e}")
            self._recognizer = None


class TranscriptListener:
    """
    Factory and registry of transcript connections.

    Usage:
        listener = TranscriptListener()
        handle = await listener.open("room-1-1700000000000")
        listener.on_transcript(handle, on_final)
        await listener.feed_audio(handle, pcm_chunk)
        await listener.close(handle)
    """

    def __init__(self):
        settings.speech.validate()
        self._speech_config = speechsdk.SpeechConfig(
            subscription=settings.speech.api_key,
            region=settings.speech.region,
        )
        self._speech_config.speech_recognition_language = settings.speech.language
        self._audio_format = speechsdk.audio.AudioStreamFormat(
            samples_per_second=settings.speech.sample_rate,
            bits_per_sample=16,
            channels=1,
        )
        self._connections: Dict[str, TranscriptConnection] = {}

        logger.info(f"STT configured: language={settings.speech.language}")

    async def open(self, connection_id: str) -> TranscriptConnection:
        """Open a streaming recognition connection."""
        connection = TranscriptConnection(connection_id, asyncio.get_running_loop())
        self._connections[connection_id] = connection

        try:
            push_stream = speechsdk.audio.PushAudioInputStream(stream_format=self._audio_format)
            audio_config = speechsdk.audio.AudioConfig(stream=push_stream)
            recognizer = speechsdk.SpeechRecognizer(
                speech_config=self._speech_config,
                audio_config=audio_config,
            )
            connection.attach(push_stream, recognizer)
            await asyncio.to_thread(lambda: recognizer.start_continuous_recognition_async().get())
        except Exception:
            await self.close(connection)
            raise

        logger.info(f"Transcript connection opened: {connection_id}")
        return connection

    def on_transcript(self, handle: TranscriptConnection, callback: TranscriptCallback) -> None:
        """Register the async callback for finalized transcripts."""
        handle.set_callback(callback)

    async def feed_audio(self, handle: TranscriptConnection, chunk: bytes) -> None:
        """Write a PCM chunk into the connection."""
        await asyncio.to_thread(handle.write, chunk)

    async def close(self, handle: Optional[TranscriptConnection]) -> None:
        """Close a connection. Unknown, partially opened or closed handles are fine."""
        if handle is None:
            return
        self._connections.pop(handle.connection_id, None)
        await asyncio.to_thread(handle.close)
        logger.info(f"Transcript connection closed: {handle.connection_id}")

    @property
    def active_connections(self) -> int:
        return len(self._connections)
