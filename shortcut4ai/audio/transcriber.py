"""
Speech-to-text through a remote Whisper endpoint.

Uploads a finished recording to an OpenAI-compatible transcription API
(Groq by default) with fixed, deterministic decoding parameters.
"""

import asyncio
import logging
import os
import time
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar, Union

import openai

from ..errors import EmptyResultError, ServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T")

GROQ_BASE_URL = "https://api.groq.com/openai/v1"


class GroqTranscriber:
    """
    Remote Whisper transcriber.

    The blocking SDK call runs in the default executor so the event loop
    keeps dispatching hotkeys while the upload is in flight.

    Args:
        model: Transcription model identifier
        api_key: API key (defaults to GROQ_API_KEY)
        base_url: OpenAI-compatible endpoint
        language: Target language code
        timeout: Request timeout in seconds
        client: Pre-built ``openai.OpenAI`` client (mainly for tests)
    """

    def __init__(
        self,
        model: str = "whisper-large-v3-turbo",
        api_key: Optional[str] = None,
        base_url: str = GROQ_BASE_URL,
        language: str = "en",
        timeout: float = 30.0,
        client: Optional[openai.OpenAI] = None,
    ):
        self.model = model
        self.api_key = api_key or os.getenv("GROQ_API_KEY")
        self.base_url = base_url
        self.language = language
        self.timeout = timeout
        self._client = client

    def is_available(self) -> bool:
        return self._client is not None or bool(self.api_key)

    async def transcribe(
        self,
        artifact_path: Union[str, Path],
        then: Optional[Callable[[str], Awaitable[T]]] = None,
    ) -> Union[str, T]:
        """
        Transcribe an audio file.

        Args:
            artifact_path: Recorded audio file
            then: Optional continuation receiving the transcript; when given,
                its result is returned instead of the transcript

        Returns:
            The transcribed text, or the continuation's result.

        Raises:
            ServiceError: On transport failure, a non-2xx status, a missing
                file or a malformed response
            EmptyResultError: If the service returned no text
        """
        path = Path(artifact_path)
        if not path.exists():
            raise ServiceError(f"Audio file not found: {path}")

        start_time = time.time()
        loop = asyncio.get_running_loop()
        text = await loop.run_in_executor(None, self._sync_transcribe, path)
        logger.info(f"Transcription completed in {time.time() - start_time:.2f}s ({len(text)} chars)")

        if then is not None:
            return await then(text)
        return text

    def _sync_transcribe(self, path: Path) -> str:
        """Blocking upload, run in the executor."""
        if not self.is_available():
            raise ServiceError("Transcription not available (missing GROQ_API_KEY)")
        if self._client is None:
            self._client = openai.OpenAI(api_key=self.api_key, base_url=self.base_url, timeout=self.timeout)

        try:
            with open(path, "rb") as audio_file:
                response = self._client.audio.transcriptions.create(
                    file=audio_file,
                    model=self.model,
                    temperature=0,
                    response_format="json",
                    language=self.language,
                )
        except openai.APIStatusError as e:
            logger.error(f"Transcription request failed with status {e.status_code}: {e}")
            raise ServiceError(f"Transcription failed: HTTP {e.status_code}") from e
        except openai.APIError as e:
            logger.error(f"Transcription request failed: {e}")
            raise ServiceError(f"Transcription failed: {e}") from e
        except OSError as e:
            raise ServiceError(f"Could not read audio file: {e}") from e

        return self._extract_text(response)

    @staticmethod
    def _extract_text(response) -> str:
        if response is None:
            raise ServiceError("Malformed transcription response")
        if isinstance(response, dict):
            text = response.get("text")
        else:
            text = getattr(response, "text", None)
        if text is not None and not isinstance(text, str):
            raise ServiceError("Malformed transcription response")
        if not text or not text.strip():
            raise EmptyResultError()
        return text.strip()
