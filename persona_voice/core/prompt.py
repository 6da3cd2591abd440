"""
Persona Prompt Builder Module

Turns a raw user utterance into the full text sent to the language model
and records both sides of the exchange in conversation memory.

Prompt layout (blank line between sections):
    <system prompt>
    Tone: ...            (only when tone or style is set)
    Style: ...
    <context prompt>     (optional)
    Recent conversation: (only when memory holds entries)
    User: ... / Assistant: ...
    User message: <message>
    <emotion guidance>   (only for a confident non-neutral emotion)
"""

from typing import List, Optional

from persona_voice.config import settings
from persona_voice.core.emotion import EmotionClassifier, EmotionResult
from persona_voice.core.memory import ASSISTANT, USER, ConversationMemory
from persona_voice.core.persona import PersonaConfig
from persona_voice.logger import get_logger

logger = get_logger(__name__)

NOT_SPECIFIED = "Not specified"


class PersonaPromptBuilder:
    """
    Builds persona prompts and cleans model replies.

    Usage:
        builder = PersonaPromptBuilder(memory, EmotionClassifier())
        prompt = builder.build("I'm anxious", persona, session_id="room-1")
        reply = builder.extract_response(raw, persona, session_id="room-1")
    """

    def __init__(
        self,
        memory: ConversationMemory,
        classifier: Optional[EmotionClassifier] = None,
        emotion_threshold: Optional[float] = None,
    ):
        self._memory = memory
        self._classifier = classifier or EmotionClassifier()
        self._threshold = (
            settings.session.emotion_threshold
            if emotion_threshold is None
            else emotion_threshold
        )

    def build(
        self,
        user_message: str,
        persona: Optional[PersonaConfig],
        session_id: Optional[str] = None,
    ) -> str:
        """
        Compose the prompt for one user message.

        Args:
            user_message: Raw user text, included verbatim
            persona: Persona configuration; None returns the message unchanged
            session_id: Memory scope; None skips history and recording

        Returns:
            The composed prompt text
        """
        if persona is None:
            logger.warning("No persona configuration, using raw message as prompt")
            return user_message

        sections: List[str] = [persona.system_prompt]

        if persona.tone or persona.style:
            sections.append(
                f"Tone: {persona.tone or NOT_SPECIFIED}\n"
                f"Style: {persona.style or NOT_SPECIFIED}"
            )

        if persona.context_prompt:
            sections.append(persona.context_prompt)

        if session_id is not None:
            history = self._memory.format_history(session_id, persona.id)
            if history:
                sections.append(f"Recent conversation:\n{history}")

        sections.append(f"User message: {user_message}")

        emotion = self._classifier.classify(user_message)
        guidance = self._guidance_for(emotion, persona)
        if guidance:
            sections.append(guidance)

        if session_id is not None:
            self._memory.add(session_id, persona.id, USER, user_message)

        return "\n\n".join(sections)

    def _guidance_for(self, emotion: EmotionResult, persona: PersonaConfig) -> str:
        if emotion.is_neutral or emotion.confidence < self._threshold:
            return ""
        logger.debug(
            f"Detected {emotion.primary_emotion} ({emotion.confidence:.2f}) for {persona.id}"
        )
        return persona.emotion_guidance.get(emotion.primary_emotion, "")

    def extract_response(
        self,
        raw_text: str,
        persona: Optional[PersonaConfig],
        session_id: Optional[str] = None,
    ) -> str:
        """
        Clean a model reply and remember it as the assistant turn.

        Leading role prefixes configured on the persona ("Rafa:", "Assistant:")
        are removed one after another.
        """
        text = (raw_text or "").strip()
        if persona is None:
            return text

        for prefix in persona.response_prefixes:
            if text.startswith(prefix):
                text = text[len(prefix):].strip()

        if text and session_id is not None:
            self._memory.add(session_id, persona.id, ASSISTANT, text)

        return text

    @property
    def memory(self) -> ConversationMemory:
        return self._memory

    @property
    def emotion_threshold(self) -> float:
        return self._threshold
