"""
Tests for streaming transcription with the Azure SDK patched out.
"""

import asyncio
import pytest
from unittest.mock import MagicMock, patch

from persona_voice.realtime.events import TranscriptEvent, TranscriptType
from persona_voice.realtime.transcript_listener import TranscriptConnection, TranscriptListener


@pytest.fixture
def sdk():
    with patch("persona_voice.realtime.transcript_listener.speechsdk") as mocked:
        yield mocked


def _recognized(sdk, text, reason=None):
    evt = MagicMock()
    evt.result.reason = reason if reason is not None else sdk.ResultReason.RecognizedSpeech
    evt.result.text = text
    return evt


class TestTranscriptListener:
    """Opening, feeding and closing connections."""

    def test_requires_configuration(self, sdk):
        from persona_voice.config import settings

        with patch.object(settings.speech, "region", ""):
            with pytest.raises(ValueError, match="AZURE_SPEECH_REGION"):
                TranscriptListener()

    def test_pcm_stream_format(self, sdk):
        TranscriptListener()
        sdk.audio.AudioStreamFormat.assert_called_once_with(
            samples_per_second=16000, bits_per_sample=16, channels=1
        )

    @pytest.mark.asyncio
    async def test_open_starts_recognition(self, sdk):
        listener = TranscriptListener()
        connection = await listener.open("r1-1")

        recognizer = sdk.SpeechRecognizer.return_value
        recognizer.start_continuous_recognition_async.assert_called_once()
        recognizer.recognized.connect.assert_called_once()
        assert connection.is_open
        assert listener.active_connections == 1

    @pytest.mark.asyncio
    async def test_open_failure_closes_connection(self, sdk):
        sdk.SpeechRecognizer.return_value.start_continuous_recognition_async.side_effect = RuntimeError("auth")
        listener = TranscriptListener()

        with pytest.raises(RuntimeError):
            await listener.open("r1-1")

        assert listener.active_connections == 0
        sdk.audio.PushAudioInputStream.return_value.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_feed_audio_writes_to_stream(self, sdk):
        listener = TranscriptListener()
        connection = await listener.open("r1-1")

        await listener.feed_audio(connection, b"\x00\x01" * 160)

        sdk.audio.PushAudioInputStream.return_value.write.assert_called_once_with(b"\x00\x01" * 160)

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, sdk):
        listener = TranscriptListener()
        connection = await listener.open("r1-1")

        await listener.close(connection)
        await listener.close(connection)
        await listener.close(None)

        sdk.audio.PushAudioInputStream.return_value.close.assert_called_once()
        assert listener.active_connections == 0
        with pytest.raises(RuntimeError):
            await listener.feed_audio(connection, b"\x00")


class TestTranscriptConnection:
    """Recognition events reaching the async callback."""

    @pytest.mark.asyncio
    async def test_final_transcript_delivered_from_sdk_thread(self, sdk):
        received = []
        done = asyncio.Event()

        async def callback(event):
            received.append(event)
            done.set()

        connection = TranscriptConnection("r1-1", asyncio.get_running_loop())
        connection.attach(MagicMock(), MagicMock())
        connection.set_callback(callback)

        await asyncio.to_thread(connection._on_recognized, _recognized(sdk, "  I feel anxious  "))
        await asyncio.wait_for(done.wait(), timeout=1.0)

        assert received[0].text == "I feel anxious"
        assert received[0].connection_id == "r1-1"
        assert received[0].is_final

    @pytest.mark.asyncio
    async def test_empty_and_unrecognized_results_ignored(self, sdk):
        connection = TranscriptConnection("r1-1", asyncio.get_running_loop())
        connection.attach(MagicMock(), MagicMock())
        with patch.object(connection, "emit") as emit:
            connection._on_recognized(_recognized(sdk, "   "))
            connection._on_recognized(_recognized(sdk, "noise", reason=sdk.ResultReason.NoMatch))
        emit.assert_not_called()

    @pytest.mark.asyncio
    async def test_partial_events_not_emitted(self, sdk):
        callback = MagicMock()
        connection = TranscriptConnection("r1-1", asyncio.get_running_loop())
        connection.attach(MagicMock(), MagicMock())
        connection.set_callback(callback)

        connection.emit(TranscriptEvent(text="hel", transcript_type=TranscriptType.PARTIAL))
        callback.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_delivery_after_close(self, sdk):
        callback = MagicMock()
        connection = TranscriptConnection("r1-1", asyncio.get_running_loop())
        connection.attach(MagicMock(), MagicMock())
        connection.set_callback(callback)
        connection.close()

        connection.emit(TranscriptEvent(text="late"))
        callback.assert_not_called()

    @pytest.mark.asyncio
    async def test_close_during_emit_does_not_break_sdk_thread(self, sdk):
        """A close() landing mid-emit must not turn into calling None."""
        received = []
        done = asyncio.Event()

        async def callback(event):
            received.append(event)
            done.set()

        connection = TranscriptConnection("r1-1", asyncio.get_running_loop())
        connection.attach(MagicMock(), MagicMock())
        connection.set_callback(callback)

        class ClosingEvent(TranscriptEvent):
            # Closes the connection while emit() is evaluating its guard
            @property
            def is_final(self):
                connection.close()
                return True

        await asyncio.to_thread(connection.emit, ClosingEvent(text="just in time"))
        await asyncio.wait_for(done.wait(), timeout=1.0)

        assert received[0].text == "just in time"
        assert connection._callback is None

    @pytest.mark.asyncio
    async def test_emit_skips_when_callback_cleared(self, sdk):
        connection = TranscriptConnection("r1-1", asyncio.get_running_loop())
        connection.attach(MagicMock(), MagicMock())
        connection.set_callback(MagicMock())
        connection._callback = None

        with patch("persona_voice.realtime.transcript_listener.asyncio.run_coroutine_threadsafe") as submit:
            connection.emit(TranscriptEvent(text="hello"))
        submit.assert_not_called()
