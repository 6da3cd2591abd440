"""
Completion Client Module

Async wrapper around the Azure OpenAI chat completions REST endpoint.

The composed persona prompt goes out as the system message, optionally
followed by the raw user message. Generation parameters come from the
persona, falling back to the LLM defaults in settings.

When no API key is configured the client answers with a labelled
placeholder instead of calling the service, so the whole voice pipeline
can run without completion credentials.

Usage:
    from persona_voice.core.llm import CompletionClient

    client = CompletionClient()
    text = await client.complete(prompt, persona, user_message="Hi")
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiohttp

from persona_voice.config import AzureOpenAIConfig, settings
from persona_voice.core.persona import PersonaConfig
from persona_voice.logger import get_logger

logger = get_logger(__name__)

TEST_RESPONSE_PREFIX = "[TEST RESPONSE]"


class CompletionError(Exception):
    """The completion service failed or returned an unusable body."""


@dataclass
class Message:
    """Chat message for the completion API."""
    role: str  # system, user, assistant
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


class CompletionClient:
    """
    Non-streaming Azure OpenAI chat completion client.

    One HTTP request per call, bounded by an aiohttp ClientTimeout.
    Failures are not retried: a failed utterance is simply dropped by
    the caller.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        endpoint: Optional[str] = None,
        deployment: Optional[str] = None,
        api_version: Optional[str] = None,
        timeout_s: Optional[float] = None,
    ):
        self._azure = AzureOpenAIConfig(
            api_key=(api_key if api_key is not None else settings.azure.api_key).strip(),
            endpoint=endpoint or settings.azure.endpoint,
            api_version=api_version or settings.azure.api_version,
            chat_deployment=deployment or settings.azure.chat_deployment,
        )
        self._timeout_s = timeout_s if timeout_s is not None else settings.llm.timeout_s

        if not self.is_configured:
            logger.warning("AZURE_OPENAI_API_KEY not set, completions will return test responses")

    @property
    def is_configured(self) -> bool:
        return self._azure.is_configured

    @property
    def _url(self) -> str:
        return self._azure.chat_url

    @property
    def _headers(self) -> Dict[str, str]:
        return {
            "api-key": self._azure.api_key,
            "Content-Type": "application/json",
        }

    def build_messages(self, prompt_text: str, user_message: Optional[str] = None) -> List[Message]:
        """System message with the composed prompt, plus the raw user turn if given."""
        messages = [Message(role="system", content=prompt_text)]
        if user_message:
            messages.append(Message(role="user", content=user_message))
        return messages

    def build_body(
        self,
        prompt_text: str,
        persona: Optional[PersonaConfig],
        user_message: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Request body for one completion."""
        body: Dict[str, Any] = {
            "messages": [m.to_dict() for m in self.build_messages(prompt_text, user_message)],
            "temperature": persona.temperature if persona else settings.llm.temperature,
            "max_tokens": persona.max_tokens if persona else settings.llm.max_tokens,
        }
        if persona and persona.stop:
            body["stop"] = list(persona.stop)
        return body

    async def complete(
        self,
        prompt_text: str,
        persona: Optional[PersonaConfig],
        user_message: Optional[str] = None,
    ) -> str:
        """
        Generate a reply for a composed prompt.

        Args:
            prompt_text: Full persona prompt, sent as the system message
            persona: Persona whose generation parameters apply
            user_message: Raw user text, sent as a user message when given

        Returns:
            The generated text, or a test placeholder without credentials

        Raises:
            CompletionError: On timeout, HTTP error or malformed response
        """
        if not self.is_configured:
            preview = (user_message or prompt_text)[:80]
            name = persona.name if persona else "assistant"
            return f"{TEST_RESPONSE_PREFIX} {name} received: {preview}"

        body = self.build_body(prompt_text, persona, user_message)

        try:
            data = await self._post(body)
        except asyncio.TimeoutError as e:
            raise CompletionError(f"Completion timed out after {self._timeout_s}s") from e
        except aiohttp.ClientResponseError as e:
            raise CompletionError(f"Completion request failed with HTTP {e.status}") from e
        except aiohttp.ClientError as e:
            raise CompletionError(f"Completion request failed: {e}") from e

        return self._parse(data)

    async def _post(self, body: Dict[str, Any]) -> Dict[str, Any]:
        timeout = aiohttp.ClientTimeout(total=self._timeout_s)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(self._url, headers=self._headers, json=body) as response:
                response.raise_for_status()
                return await response.json()

    @staticmethod
    def _parse(data: Any) -> str:
        try:
            choice = data["choices"][0]
            content = choice["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise CompletionError("Malformed completion response") from e

        if not isinstance(content, str):
            raise CompletionError("Completion response has no text content")

        logger.debug(f"Completion finished: reason={choice.get('finish_reason', '')}")
        return content
