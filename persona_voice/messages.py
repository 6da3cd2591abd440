"""Simple message lookup for API responses."""

from __future__ import annotations

_MESSAGES: dict[str, str] = {
    "error.rate_limited": "Too many requests. Please try again later.",
    "error.agent_not_ready": "Service is starting up. Please try again in a moment.",
    "error.unknown_persona": "Unknown persona.",
    "error.message_required": "Message is required.",
    "error.session_id_required": "Session ID is required.",
    "error.session_exists": "A voice session is already active for this room.",
    "error.token_params_required": "Room name and participant name are required.",
    "error.room_name_required": "Room name is required.",
    "error.room_not_found": "No active voice session for this room.",
    "error.livekit_not_configured": "LiveKit configuration incomplete.",
    "error.speech_not_configured": "Speech service is not configured.",
    "error.voice_start_failed": "Failed to start voice agent session.",
    "error.token_failed": "Failed to generate token.",
    "error.chat_failed": "Something went wrong with the assistant.",
    "error.tts_failed": "Failed to convert text to speech.",
    "livekit.config_valid": "LiveKit configuration is valid.",
    "voice.session_ended": "Voice agent session ended.",
    "memory.cleared": "Conversation memory cleared.",
    "server.online": "Persona Voice Agent API",
}


def msg(key: str, **kwargs: str) -> str:
    """Return a message by key, or the key itself if not found."""
    text = _MESSAGES.get(key, key)
    return text.format(**kwargs) if kwargs else text
