"""
Persona Voice Agent - Source Package

A real-time persona voice agent that joins LiveKit rooms, listens to a
human participant and answers in the voice of a configured persona
(Adina or Rafa).

This package provides:
- Room and session lifecycle management
- Streaming speech recognition per session
- Persona prompt construction with short conversation memory
- LLM-powered reply generation and speech synthesis
- HTTP API and CLI entry points
"""

__version__ = "1.0.0"

from persona_voice.config import settings

__all__ = ["settings", "__version__"]
