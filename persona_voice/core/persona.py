"""
Persona Configuration Module

Personas are plain JSON files shipped with the package. Each file is read
once per process and validated into an immutable PersonaConfig, so a broken
persona is reported at startup rather than in the middle of a conversation.

Usage:
    from persona_voice.core.persona import load_personas

    registry = load_personas()
    rafa = registry.get("rafa")
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

from persona_voice.config import settings
from persona_voice.core.emotion import GUIDED_EMOTIONS
from persona_voice.logger import get_logger

logger = get_logger(__name__)

PERSONA_DIR = Path(__file__).parent.parent / "data" / "personas"
DEFAULT_PERSONA = "adina"
DEFAULT_RESPONSE_PREFIXES = ("Persona:", "Assistant:")


@dataclass(frozen=True)
class PersonaConfig:
    """
    Read-only persona configuration shared by every session of a persona.

    Attributes:
        id: Lowercase persona key used in URLs, memory keys and bot identity
        name: Display name
        system_prompt: Base instructions for the language model
        tone: Optional tone description
        style: Optional style description
        context_prompt: Optional extra context appended after tone/style
        response_prefixes: Role prefixes stripped from model output
        voice: Azure neural voice name
        temperature: Sampling temperature
        max_tokens: Reply length cap
        stop: Stop sequences
        emotion_guidance: One guidance sentence per non-neutral emotion
    """
    id: str
    name: str
    system_prompt: str
    voice: str
    tone: str = ""
    style: str = ""
    context_prompt: str = ""
    response_prefixes: Tuple[str, ...] = DEFAULT_RESPONSE_PREFIXES
    temperature: float = 0.7
    max_tokens: int = 150
    stop: Tuple[str, ...] = ()
    emotion_guidance: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PersonaConfig":
        """
        Build and validate a persona from its JSON document.

        Raises:
            ValueError: If a required field is missing or a value is out of range
        """
        for key in ("id", "name", "system_prompt", "voice"):
            value = data.get(key)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"Persona field '{key}' is required")

        persona_id = data["id"].strip().lower()

        guidance = data.get("emotion_guidance") or {}
        missing = [e for e in GUIDED_EMOTIONS if not guidance.get(e)]
        if missing:
            raise ValueError(
                f"Persona '{persona_id}' is missing emotion guidance for: {', '.join(missing)}"
            )

        temperature = float(data.get("temperature", settings.llm.temperature))
        if not 0.0 <= temperature <= 2.0:
            raise ValueError(f"Persona '{persona_id}' temperature must be between 0 and 2")

        max_tokens = int(data.get("max_tokens", settings.llm.max_tokens))
        if max_tokens <= 0:
            raise ValueError(f"Persona '{persona_id}' max_tokens must be positive")

        # Voice from the environment wins over the file
        voice = settings.speech.voice_override(persona_id) or data["voice"].strip()

        return cls(
            id=persona_id,
            name=data["name"].strip(),
            system_prompt=data["system_prompt"].strip(),
            voice=voice,
            tone=(data.get("tone") or "").strip(),
            style=(data.get("style") or "").strip(),
            context_prompt=(data.get("context_prompt") or "").strip(),
            response_prefixes=tuple(data.get("response_prefixes") or DEFAULT_RESPONSE_PREFIXES),
            temperature=temperature,
            max_tokens=max_tokens,
            stop=tuple(data.get("stop") or ()),
            emotion_guidance={e: guidance[e].strip() for e in GUIDED_EMOTIONS},
        )


def load_persona(path: Union[str, Path]) -> PersonaConfig:
    """Load a single persona JSON file."""
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return PersonaConfig.from_dict(data)


class PersonaRegistry:
    """Lookup of persona configurations by id (case-insensitive)."""

    def __init__(self, personas: List[PersonaConfig]):
        self._personas: Dict[str, PersonaConfig] = {}
        for persona in personas:
            if persona.id in self._personas:
                raise ValueError(f"Duplicate persona id '{persona.id}'")
            self._personas[persona.id] = persona

    def get(self, persona_id: Optional[str]) -> Optional[PersonaConfig]:
        """Get a persona by id, or None if unknown."""
        if not persona_id:
            return None
        return self._personas.get(persona_id.strip().lower())

    def __contains__(self, persona_id: object) -> bool:
        return isinstance(persona_id, str) and self.get(persona_id) is not None

    def __iter__(self) -> Iterator[PersonaConfig]:
        return iter(self._personas.values())

    def __len__(self) -> int:
        return len(self._personas)

    @property
    def ids(self) -> List[str]:
        """Ids of all registered personas."""
        return list(self._personas)


def load_personas(directory: Optional[Union[str, Path]] = None) -> PersonaRegistry:
    """
    Load every persona JSON file in a directory.

    Args:
        directory: Directory to scan, defaults to the bundled personas
    """
    directory = Path(directory) if directory else PERSONA_DIR
    personas = [load_persona(p) for p in sorted(directory.glob("*.json"))]
    if not personas:
        raise ValueError(f"No persona files found in {directory}")
    logger.info(f"Loaded personas: {', '.join(p.id for p in personas)}")
    return PersonaRegistry(personas)


__all__ = [
    "PersonaConfig",
    "PersonaRegistry",
    "load_persona",
    "load_personas",
    "DEFAULT_PERSONA",
    "DEFAULT_RESPONSE_PREFIXES",
]
