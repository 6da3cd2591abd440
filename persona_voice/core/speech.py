"""
Speech Synthesis Module

Text-to-speech for persona replies using the Azure Cognitive Services
Speech SDK. Audio is returned as MP3 bytes (16 kHz mono, 32 kbit/s) rather
than played locally; the caller decides where it goes.

Usage:
    from persona_voice.core.speech import SpeechSynthesisClient

    tts = SpeechSynthesisClient()
    audio = await tts.synthesize("Hello there", persona)
"""

import asyncio
from typing import Optional

import azure.cognitiveservices.speech as speechsdk

from persona_voice.config import settings
from persona_voice.core.persona import PersonaConfig
from persona_voice.logger import get_logger

logger = get_logger(__name__)

DEFAULT_VOICE = "en-US-JennyNeural"
AUDIO_MIME_TYPE = "audio/mpeg"


class SynthesisError(Exception):
    """Speech synthesis was canceled or produced no audio."""


class SpeechSynthesisClient:
    """
    Azure Neural TTS wrapper returning encoded audio.

    The SDK call blocks, so it runs in a worker thread.
    """

    def __init__(self):
        """Initialize with Azure credentials from settings."""
        if not settings.speech.is_configured:
            raise ValueError(
                "Azure Speech not configured. Set AZURE_SPEECH_API_KEY and "
                "AZURE_SPEECH_REGION in your .env file."
            )
        self._api_key = settings.speech.api_key
        self._region = settings.speech.region
        logger.info(f"Speech synthesis initialized: region={self._region}")

    def _create_synthesizer(self, voice: str) -> speechsdk.SpeechSynthesizer:
        speech_config = speechsdk.SpeechConfig(
            subscription=self._api_key,
            region=self._region,
        )
        speech_config.speech_synthesis_voice_name = voice
        speech_config.set_speech_synthesis_output_format(
            speechsdk.SpeechSynthesisOutputFormat.Audio16Khz32KBitRateMonoMp3
        )
        # No audio_config: keep the audio in memory instead of the speaker
        return speechsdk.SpeechSynthesizer(speech_config=speech_config, audio_config=None)

    @staticmethod
    def resolve_voice(persona: Optional[PersonaConfig]) -> str:
        """Voice for a persona, falling back to the default neural voice."""
        if persona and persona.voice:
            return persona.voice
        return DEFAULT_VOICE

    async def synthesize(self, text: str, persona: Optional[PersonaConfig]) -> bytes:
        """
        Synthesize text with the persona's voice.

        Raises:
            ValueError: If text is empty
            SynthesisError: If synthesis was canceled or returned no audio
        """
        if not text or not text.strip():
            raise ValueError("Text to synthesize must not be empty")

        voice = self.resolve_voice(persona)
        logger.debug(f"Synthesizing {len(text)} chars with {voice}")
        return await asyncio.to_thread(self._synthesize_blocking, text, voice)

    def _synthesize_blocking(self, text: str, voice: str) -> bytes:
        synthesizer = self._create_synthesizer(voice)
        result = synthesizer.speak_text_async(text).get()

        if result is None:
            raise SynthesisError("Synthesis returned no result")

        if result.reason == speechsdk.ResultReason.SynthesizingAudioCompleted:
            audio = bytes(result.audio_data or b"")
            if not audio:
                raise SynthesisError("Synthesis completed without audio")
            return audio

        if result.reason == speechsdk.ResultReason.Canceled:
            cancellation = result.cancellation_details
            details = ""
            if cancellation.reason == speechsdk.CancellationReason.Error:
                details = f": {cancellation.error_details}"
            raise SynthesisError(f"Synthesis canceled ({cancellation.reason}){details}")

        raise SynthesisError(f"Unexpected synthesis result: {result.reason}")
