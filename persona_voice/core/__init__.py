"""
Core building blocks for persona conversations: memory, emotion detection,
persona configuration, prompt composition, completion and speech synthesis.
"""

from persona_voice.core.emotion import EmotionClassifier, EmotionResult
from persona_voice.core.memory import ConversationMemory, MemoryEntry
from persona_voice.core.persona import PersonaConfig, PersonaRegistry, load_personas
from persona_voice.core.prompt import PersonaPromptBuilder
from persona_voice.core.llm import CompletionClient, CompletionError
from persona_voice.core.speech import SpeechSynthesisClient, SynthesisError

__all__ = [
    "EmotionClassifier",
    "EmotionResult",
    "ConversationMemory",
    "MemoryEntry",
    "PersonaConfig",
    "PersonaRegistry",
    "load_personas",
    "PersonaPromptBuilder",
    "CompletionClient",
    "CompletionError",
    "SpeechSynthesisClient",
    "SynthesisError",
]
