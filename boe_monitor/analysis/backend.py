"""
Analysis backends: Gemini through google-genai and OpenAI-compatible chat
completions. Both take a prompt and a batch and return the raw model text.
"""

from typing import Optional, Protocol

import openai
import structlog
from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from openai import AsyncOpenAI
from pydantic import BaseModel

from ..core.config import SERVICE_OPENAI, Settings, settings
from ..core.errors import BackendError, ConfigurationError
from ..core.models import Batch
from .prompts import SYSTEM_PROMPT, build_user_prompt

logger = structlog.get_logger(__name__)


class BackendResponse(BaseModel):
    """Raw text returned by the model for one batch."""
    text: str
    model: str
    finish_reason: Optional[str] = None


class AnalysisBackend(Protocol):
    """Anything that can analyze a batch against a prompt."""

    model: str

    async def analyze(self, prompt: str, batch: Batch) -> BackendResponse:
        ...

    async def health_check(self) -> bool:
        ...


class OpenAIAnalysisBackend:
    """Relevance analysis through the chat completions API in JSON mode.

    One client is built per backend instance and shared by every batch it
    analyzes.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.api_key = api_key or settings.openai_api_key
        self.model = model or settings.openai_model
        self.temperature = temperature if temperature is not None else settings.backend_temperature
        self.max_tokens = max_tokens or settings.backend_max_tokens

        if client is None and not self.api_key:
            raise ConfigurationError(
                "OpenAI API key is not configured",
                details={"setting": "OPENAI_API_KEY"},
            )

        self.client = client or AsyncOpenAI(
            api_key=self.api_key,
            base_url=base_url or settings.openai_base_url,
            timeout=timeout or settings.backend_timeout_seconds,
            max_retries=0,
        )

    async def analyze(self, prompt: str, batch: Batch) -> BackendResponse:
        """
        Ask the model which items of a batch are relevant to a prompt.

        Args:
            prompt: User query
            batch: Items to analyze

        Returns:
            BackendResponse with the unvalidated model output

        Raises:
            BackendError: on API failures or an empty completion
        """
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_user_prompt(prompt, batch.items)},
        ]

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                response_format={"type": "json_object"},
            )
        except openai.OpenAIError as e:
            raise BackendError(
                "OpenAI request failed",
                details={"batch_index": batch.index, "model": self.model, "error": str(e)},
            ) from e

        if not response.choices:
            raise BackendError("OpenAI returned no choices",
                               details={"batch_index": batch.index, "model": self.model})

        choice = response.choices[0]
        content = choice.message.content or ""
        if not content.strip():
            raise BackendError(
                "OpenAI returned empty content",
                details={"batch_index": batch.index, "finish_reason": choice.finish_reason},
            )

        usage = getattr(response, "usage", None)
        logger.debug("Backend response received",
                     batch_index=batch.index,
                     finish_reason=choice.finish_reason,
                     total_tokens=getattr(usage, "total_tokens", None))

        return BackendResponse(
            text=content,
            model=response.model or self.model,
            finish_reason=choice.finish_reason,
        )

    async def health_check(self) -> bool:
        """Check that the model answers a minimal completion."""
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": "ping"}],
                max_tokens=1,
            )
            healthy = bool(response.choices)
            logger.info("Backend health check", model=self.model, healthy=healthy)
            return healthy
        except openai.OpenAIError as e:
            logger.error("Backend health check failed", model=self.model, error=str(e))
            return False


class GeminiAnalysisBackend:
    """Relevance analysis through the Gemini API with JSON output."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        client: Optional[genai.Client] = None,
    ):
        self.api_key = api_key or settings.gemini_api_key
        self.model = model or settings.gemini_model
        self.temperature = temperature if temperature is not None else settings.backend_temperature
        self.max_tokens = max_tokens or settings.backend_max_tokens

        if client is None and not self.api_key:
            raise ConfigurationError(
                "Gemini API key is not configured",
                details={"setting": "GEMINI_API_KEY"},
            )

        timeout = timeout or settings.backend_timeout_seconds
        self.client = client or genai.Client(
            api_key=self.api_key,
            http_options=types.HttpOptions(timeout=int(timeout * 1000)),
        )

    async def analyze(self, prompt: str, batch: Batch) -> BackendResponse:
        """
        Ask the model which items of a batch are relevant to a prompt.

        Args:
            prompt: User query
            batch: Items to analyze

        Returns:
            BackendResponse with the unvalidated model output

        Raises:
            BackendError: on API failures or an empty response
        """
        config = types.GenerateContentConfig(
            system_instruction=SYSTEM_PROMPT,
            temperature=self.temperature,
            max_output_tokens=self.max_tokens,
            response_mime_type="application/json",
        )

        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=build_user_prompt(prompt, batch.items),
                config=config,
            )
        except genai_errors.APIError as e:
            raise BackendError(
                "Gemini request failed",
                details={"batch_index": batch.index, "model": self.model, "error": str(e)},
            ) from e

        candidates = response.candidates or []
        finish_reason = candidates[0].finish_reason if candidates else None
        finish_reason = getattr(finish_reason, "name", finish_reason)

        content = response.text or ""
        if not content.strip():
            raise BackendError(
                "Gemini returned empty content",
                details={"batch_index": batch.index, "finish_reason": finish_reason},
            )

        usage = getattr(response, "usage_metadata", None)
        logger.debug("Backend response received",
                     batch_index=batch.index,
                     finish_reason=finish_reason,
                     total_tokens=getattr(usage, "total_token_count", None))

        return BackendResponse(
            text=content,
            model=getattr(response, "model_version", None) or self.model,
            finish_reason=finish_reason,
        )

    async def health_check(self) -> bool:
        """Check that the model answers a minimal request."""
        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents="ping",
                config=types.GenerateContentConfig(max_output_tokens=1),
            )
            healthy = response is not None
            logger.info("Backend health check", model=self.model, healthy=healthy)
            return healthy
        except genai_errors.APIError as e:
            logger.error("Backend health check failed", model=self.model, error=str(e))
            return False


def create_backend(config: Optional[Settings] = None) -> AnalysisBackend:
    """Build the backend selected by ``ANALYSIS_SERVICE``."""
    config = config or settings

    if config.analysis_service == SERVICE_OPENAI:
        return OpenAIAnalysisBackend(
            api_key=config.openai_api_key,
            model=config.openai_model,
            base_url=config.openai_base_url,
            timeout=config.backend_timeout_seconds,
            temperature=config.backend_temperature,
            max_tokens=config.backend_max_tokens,
        )

    return GeminiAnalysisBackend(
        api_key=config.gemini_api_key,
        model=config.gemini_model,
        timeout=config.backend_timeout_seconds,
        temperature=config.backend_temperature,
        max_tokens=config.backend_max_tokens,
    )
