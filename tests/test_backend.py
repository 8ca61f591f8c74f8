"""
Tests for the Gemini and OpenAI analysis backends.
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import openai
import pytest
from google import genai
from google.genai import errors as genai_errors

from boe_monitor.analysis.backend import (
    GeminiAnalysisBackend,
    OpenAIAnalysisBackend,
    create_backend,
)
from boe_monitor.core.config import settings
from boe_monitor.core.errors import BackendError, ConfigurationError
from boe_monitor.core.models import Batch


def _completion(content, finish_reason="stop"):
    return SimpleNamespace(
        model="gpt-4o-mini",
        choices=[SimpleNamespace(message=SimpleNamespace(content=content),
                                 finish_reason=finish_reason)],
        usage=SimpleNamespace(total_tokens=120),
    )


class TestOpenAIAnalysisBackend:
    """Test suite for OpenAIAnalysisBackend"""

    @pytest.fixture
    def client(self):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=_completion('{"matches": []}'))
        return client

    @pytest.fixture
    def backend(self, client):
        return OpenAIAnalysisBackend(api_key="sk-test", model="gpt-4o-mini", client=client)

    @pytest.fixture
    def batch(self, items):
        return Batch(index=3, items=tuple(items[:2]))

    def test_missing_api_key(self, monkeypatch):
        """No key and no client is a configuration error"""
        monkeypatch.setattr(settings, "openai_api_key", None)

        with pytest.raises(ConfigurationError):
            OpenAIAnalysisBackend(api_key=None, model="gpt-4o-mini")

    def test_builds_client_eagerly(self):
        backend = OpenAIAnalysisBackend(api_key="sk-test", model="gpt-4o-mini")
        assert isinstance(backend.client, openai.AsyncOpenAI)

    def test_analyze_request(self, backend, client, batch):
        """Sends the query and the batch items in JSON mode"""
        response = asyncio.run(backend.analyze("ayudas a la vivienda", batch))

        assert response.text == '{"matches": []}'
        assert response.model == "gpt-4o-mini"
        assert response.finish_reason == "stop"

        kwargs = client.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["response_format"] == {"type": "json_object"}
        user_message = kwargs["messages"][1]["content"]
        assert user_message.startswith("User Query: ayudas a la vivienda\n\nBOE Content: ")
        assert batch.items[0].identifier in user_message
        assert kwargs["messages"][0]["role"] == "system"

    def test_empty_content(self, backend, client, batch):
        client.chat.completions.create.return_value = _completion("", finish_reason="length")

        with pytest.raises(BackendError) as exc_info:
            asyncio.run(backend.analyze("q", batch))

        assert exc_info.value.details["finish_reason"] == "length"

    def test_api_error_mapped(self, backend, client, batch):
        client.chat.completions.create.side_effect = openai.OpenAIError("boom")

        with pytest.raises(BackendError) as exc_info:
            asyncio.run(backend.analyze("q", batch))

        assert exc_info.value.details["batch_index"] == 3
        assert "boom" in exc_info.value.details["error"]

    def test_health_check(self, backend, client):
        assert asyncio.run(backend.health_check()) is True

        client.chat.completions.create.side_effect = openai.OpenAIError("down")
        assert asyncio.run(backend.health_check()) is False


def _generation(text, finish_reason="STOP"):
    return SimpleNamespace(
        text=text,
        model_version="gemini-1.5-pro-002",
        candidates=[SimpleNamespace(finish_reason=finish_reason)],
        usage_metadata=SimpleNamespace(total_token_count=95),
    )


class TestGeminiAnalysisBackend:
    """Test suite for GeminiAnalysisBackend"""

    @pytest.fixture
    def client(self):
        client = MagicMock()
        client.aio.models.generate_content = AsyncMock(return_value=_generation('{"matches": []}'))
        return client

    @pytest.fixture
    def backend(self, client):
        return GeminiAnalysisBackend(api_key="gm-test", model="gemini-1.5-pro",
                                     temperature=0.2, max_tokens=8192, client=client)

    @pytest.fixture
    def batch(self, items):
        return Batch(index=1, items=tuple(items[:2]))

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.setattr(settings, "gemini_api_key", None)

        with pytest.raises(ConfigurationError) as exc_info:
            GeminiAnalysisBackend(api_key=None, model="gemini-1.5-pro")

        assert exc_info.value.details["setting"] == "GEMINI_API_KEY"

    def test_builds_client_eagerly(self):
        backend = GeminiAnalysisBackend(api_key="gm-test", model="gemini-1.5-pro")
        assert isinstance(backend.client, genai.Client)

    def test_analyze_request(self, backend, client, batch):
        """Sends the query and batch items with the system prompt and JSON output"""
        response = asyncio.run(backend.analyze("ayudas a la vivienda", batch))

        assert response.text == '{"matches": []}'
        assert response.model == "gemini-1.5-pro-002"
        assert response.finish_reason == "STOP"

        kwargs = client.aio.models.generate_content.await_args.kwargs
        assert kwargs["model"] == "gemini-1.5-pro"
        assert kwargs["contents"].startswith("User Query: ayudas a la vivienda\n\nBOE Content: ")
        assert batch.items[0].identifier in kwargs["contents"]

        config = kwargs["config"]
        assert config.response_mime_type == "application/json"
        assert config.temperature == 0.2
        assert config.max_output_tokens == 8192
        assert "relevance_score" in str(config.system_instruction)

    def test_empty_text(self, backend, client, batch):
        client.aio.models.generate_content.return_value = _generation(None, finish_reason="SAFETY")

        with pytest.raises(BackendError) as exc_info:
            asyncio.run(backend.analyze("q", batch))

        assert exc_info.value.details["finish_reason"] == "SAFETY"

    def test_api_error_mapped(self, backend, client, batch):
        client.aio.models.generate_content.side_effect = genai_errors.APIError(
            500, {"error": {"code": 500, "message": "boom", "status": "INTERNAL"}}
        )

        with pytest.raises(BackendError) as exc_info:
            asyncio.run(backend.analyze("q", batch))

        assert exc_info.value.details["batch_index"] == 1
        assert exc_info.value.details["model"] == "gemini-1.5-pro"
        assert "boom" in exc_info.value.details["error"]

    def test_health_check(self, backend, client):
        assert asyncio.run(backend.health_check()) is True

        client.aio.models.generate_content.side_effect = genai_errors.APIError(
            503, {"error": {"code": 503, "message": "down", "status": "UNAVAILABLE"}}
        )
        assert asyncio.run(backend.health_check()) is False


class TestCreateBackend:
    """Test suite for create_backend()"""

    def test_gemini_selected(self, test_settings):
        config = test_settings.model_copy(update={
            "analysis_service": "gemini",
            "gemini_api_key": "gm-test",
            "gemini_model": "gemini-1.5-pro",
        })

        backend = create_backend(config)

        assert isinstance(backend, GeminiAnalysisBackend)
        assert backend.model == "gemini-1.5-pro"

    def test_openai_selected(self, test_settings):
        backend = create_backend(test_settings.model_copy(update={"analysis_service": "openai"}))

        assert isinstance(backend, OpenAIAnalysisBackend)
        assert backend.model == "gpt-4o-mini"
