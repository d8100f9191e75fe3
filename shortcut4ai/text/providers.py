"""
Chat-completion provider abstractions.

Gives the text processor one interface over the OpenAI and Anthropic chat
APIs: a list of ``{role, content}`` messages in, the reply text out.
"""

import asyncio
import logging
import os
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import anthropic
import openai

from ..errors import EmptyResponseError, ServiceError

logger = logging.getLogger(__name__)

Message = Dict[str, str]


class ChatProvider(ABC):
    """Abstract base class for chat-completion providers."""

    def __init__(self, name: str):
        self.name = name
        self.usage_stats = {
            'requests': 0,
            'successful': 0,
            'failed': 0,
            'total_tokens': 0
        }

    @abstractmethod
    def _sync_complete(self, messages: List[Message], temperature: float) -> str:
        """Blocking completion call, run in the executor."""
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this provider is available (API key configured)."""
        pass

    async def complete(self, messages: List[Message], temperature: float = 0.0) -> str:
        """
        Send a message sequence and return the reply text.

        Raises:
            ServiceError: On transport failure or a non-2xx response
            EmptyResponseError: If the response carries no message content
        """
        if not self.is_available():
            self.update_usage_stats(success=False)
            raise ServiceError(f"{self.name} not available (missing API key)")

        start_time = time.time()
        loop = asyncio.get_running_loop()
        try:
            reply = await loop.run_in_executor(None, self._sync_complete, messages, temperature)
        except ServiceError:
            self.update_usage_stats(success=False)
            raise

        self.update_usage_stats(success=True)
        logger.info(f"{self.name} completion finished in {time.time() - start_time:.2f}s")
        return reply

    def update_usage_stats(self, success: bool, tokens: int = 0):
        """Update usage statistics."""
        self.usage_stats['requests'] += 1
        if success:
            self.usage_stats['successful'] += 1
        else:
            self.usage_stats['failed'] += 1
        self.usage_stats['total_tokens'] += tokens

    def get_usage_stats(self) -> Dict[str, Any]:
        return self.usage_stats.copy()


class OpenAIChatProvider(ChatProvider):
    """OpenAI chat completions (``gpt-4o-mini`` by default)."""

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[openai.OpenAI] = None,
    ):
        super().__init__("OpenAI")
        self.model = model
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.timeout = timeout
        self._client = client

    def is_available(self) -> bool:
        return self._client is not None or bool(self.api_key)

    def _sync_complete(self, messages: List[Message], temperature: float) -> str:
        if self._client is None:
            self._client = openai.OpenAI(api_key=self.api_key, timeout=self.timeout)

        try:
            response = self._client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
            )
        except openai.APIStatusError as e:
            logger.error(f"OpenAI request failed with status {e.status_code}: {e}")
            raise ServiceError(f"OpenAI request failed: HTTP {e.status_code}") from e
        except openai.APIError as e:
            logger.error(f"OpenAI request failed: {e}")
            raise ServiceError(f"OpenAI request failed: {e}") from e

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, TypeError):
            raise EmptyResponseError()
        if not content or not content.strip():
            raise EmptyResponseError()

        usage = getattr(response, "usage", None)
        if usage is not None and isinstance(getattr(usage, "total_tokens", None), int):
            self.usage_stats['total_tokens'] += usage.total_tokens
        return content.strip()


class ClaudeChatProvider(ChatProvider):
    """Anthropic Claude messages API."""

    def __init__(
        self,
        model: str = "claude-3-haiku-20240307",
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        max_tokens: int = 4000,
        client: Optional[anthropic.Anthropic] = None,
    ):
        super().__init__("Claude")
        self.model = model
        self.api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        self.timeout = timeout
        self.max_tokens = max_tokens
        self._client = client

    def is_available(self) -> bool:
        return self._client is not None or bool(self.api_key)

    def _sync_complete(self, messages: List[Message], temperature: float) -> str:
        if self._client is None:
            self._client = anthropic.Anthropic(api_key=self.api_key, timeout=self.timeout)

        # Claude takes system instructions as a separate parameter
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        conversation = [m for m in messages if m["role"] != "system"]
        # The messages API requires the first turn to come from the user
        while conversation and conversation[0]["role"] != "user":
            conversation.pop(0)

        try:
            response = self._client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=system,
                messages=conversation,
                temperature=temperature,
            )
        except anthropic.APIStatusError as e:
            logger.error(f"Claude request failed with status {e.status_code}: {e}")
            raise ServiceError(f"Claude request failed: HTTP {e.status_code}") from e
        except anthropic.APIError as e:
            logger.error(f"Claude request failed: {e}")
            raise ServiceError(f"Claude request failed: {e}") from e

        text = "".join(
            getattr(block, "text", "") for block in (getattr(response, "content", None) or [])
        )
        if not text.strip():
            raise EmptyResponseError()

        usage = getattr(response, "usage", None)
        if usage is not None:
            tokens = getattr(usage, "input_tokens", 0) + getattr(usage, "output_tokens", 0)
            if isinstance(tokens, int):
                self.usage_stats['total_tokens'] += tokens
        return text.strip()


def create_provider(
    provider: str,
    model: Optional[str] = None,
    timeout: float = 30.0,
) -> ChatProvider:
    """Create a chat provider by name ('openai' or 'claude')."""
    if provider == "openai":
        return OpenAIChatProvider(model=model or "gpt-4o-mini", timeout=timeout)
    if provider == "claude":
        return ClaudeChatProvider(model=model or "claude-3-haiku-20240307", timeout=timeout)
    raise ValueError(f"Unknown chat provider: {provider}")
