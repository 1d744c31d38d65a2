#!/usr/bin/env python3
"""
Tests for the LLM provider manager.

SDK clients are replaced with mocks; no network access is needed.
"""

import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

# Ensure scripts directory is on the path
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "scripts"))

from exceptions import ConfigurationError, ReasoningError
from reasoning.llm_manager import LLMManager


# ============================================================================
# Provider detection
# ============================================================================


class TestDetectProvider:
    def test_explicit_provider(self):
        assert LLMManager({"ai_provider": "openai"}).detect_provider() == "openai"

    @pytest.mark.parametrize(
        "key,expected",
        [
            ("anthropic_api_key", "anthropic"),
            ("openai_api_key", "openai"),
            ("google_api_key", "gemini"),
            ("ollama_endpoint", "ollama"),
        ],
    )
    def test_auto_detection(self, key, expected):
        assert LLMManager({"ai_provider": "auto", key: "x"}).detect_provider() == expected

    def test_anthropic_preferred(self):
        manager = LLMManager({"anthropic_api_key": "a", "openai_api_key": "o"})
        assert manager.detect_provider() == "anthropic"

    def test_nothing_configured(self):
        assert LLMManager({}).detect_provider() is None


# ============================================================================
# Initialization and lifetime
# ============================================================================


class TestInitialization:
    def test_missing_key_fails(self):
        manager = LLMManager({"ai_provider": "anthropic"})
        assert manager.initialize() is False
        assert manager.client is None

    def test_unknown_provider_fails(self):
        assert LLMManager({"ai_provider": "mystery"}).initialize() is False

    @patch("openai.OpenAI")
    def test_openai_client(self, openai_cls):
        manager = LLMManager({"ai_provider": "openai", "openai_api_key": "sk-test", "reasoning_timeout": 15})
        assert manager.initialize() is True
        assert manager.provider == "openai"
        assert manager.model == "gpt-4o-mini"
        openai_cls.assert_called_once_with(api_key="sk-test", timeout=15.0, max_retries=0)

    @patch("openai.OpenAI")
    def test_ollama_client(self, openai_cls):
        manager = LLMManager({"ai_provider": "ollama", "ollama_endpoint": "http://gpu:11434"})
        assert manager.initialize() is True
        assert openai_cls.call_args.kwargs["base_url"] == "http://gpu:11434/v1"
        assert openai_cls.call_args.kwargs["max_retries"] == 0

    @patch("openai.OpenAI")
    def test_gemini_client_uses_compatible_endpoint(self, openai_cls):
        manager = LLMManager({"ai_provider": "gemini", "google_api_key": "g"})
        assert manager.initialize() is True
        kwargs = openai_cls.call_args.kwargs
        assert kwargs["base_url"].startswith("https://generativelanguage.googleapis.com")
        assert kwargs["max_retries"] == 0

    @patch("anthropic.Anthropic")
    def test_anthropic_client_leaves_retries_to_manager(self, anthropic_cls):
        manager = LLMManager({"ai_provider": "anthropic", "anthropic_api_key": "k", "reasoning_timeout": 30})
        assert manager.initialize() is True
        anthropic_cls.assert_called_once_with(api_key="k", timeout=30.0, max_retries=0)

    @patch("anthropic.Anthropic")
    def test_model_override(self, anthropic_cls):
        manager = LLMManager({"ai_provider": "anthropic", "anthropic_api_key": "k", "model": "claude-custom"})
        manager.initialize()
        assert manager.model == "claude-custom"

    def test_context_manager_requires_provider(self):
        with pytest.raises(ConfigurationError):
            with LLMManager({}):
                pass

    @patch("anthropic.Anthropic")
    def test_context_manager_closes_client(self, anthropic_cls):
        client = anthropic_cls.return_value
        with LLMManager({"ai_provider": "anthropic", "anthropic_api_key": "k"}) as manager:
            assert manager.client is client
        client.close.assert_called_once()
        assert manager.client is None


# ============================================================================
# API calls
# ============================================================================


class TestCallLLMApi:
    def test_not_initialized(self):
        manager = LLMManager({"retry_max_attempts": 1})
        with pytest.raises(ReasoningError):
            manager.call_llm_api("prompt", 100)

    def test_anthropic_call(self):
        manager = LLMManager({"retry_max_attempts": 1})
        manager.client = MagicMock()
        manager.provider = "anthropic"
        manager.model = "claude-sonnet-4-5-20250929"
        message = MagicMock()
        message.content = [MagicMock(text='{"ok": true}')]
        message.usage.input_tokens = 10
        message.usage.output_tokens = 20
        manager.client.messages.create.return_value = message

        assert manager.call_llm_api("prompt", 100) == ('{"ok": true}', 10, 20)
        kwargs = manager.client.messages.create.call_args.kwargs
        assert kwargs["max_tokens"] == 100
        assert kwargs["timeout"] == 120.0

    def test_openai_call_requests_json(self):
        manager = LLMManager({"retry_max_attempts": 1})
        manager.client = MagicMock()
        manager.provider = "openai"
        manager.model = "gpt-4o-mini"
        response = MagicMock()
        response.choices = [MagicMock()]
        response.choices[0].message.content = "{}"
        response.usage.prompt_tokens = 3
        response.usage.completion_tokens = 4
        manager.client.chat.completions.create.return_value = response

        assert manager.call_llm_api("prompt", 50) == ("{}", 3, 4)
        kwargs = manager.client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}

    @patch("error_classifier.time.sleep")
    def test_transient_error_retried(self, mock_sleep):
        manager = LLMManager({"retry_max_attempts": 2})
        manager.client = MagicMock()
        manager.provider = "ollama"
        manager.model = "llama3.2:3b"
        response = MagicMock()
        response.choices = [MagicMock()]
        response.choices[0].message.content = "{}"
        response.usage = None
        manager.client.chat.completions.create.side_effect = [ConnectionError("reset"), response]

        assert manager.call_llm_api("prompt", 50) == ("{}", 0, 0)
        assert mock_sleep.call_count == 1

    def test_auth_error_not_retried(self):
        manager = LLMManager({"retry_max_attempts": 3})
        manager.client = MagicMock()
        manager.provider = "openai"
        manager.model = "gpt-4o-mini"
        manager.client.chat.completions.create.side_effect = Exception("401 unauthorized")

        with pytest.raises(Exception, match="unauthorized"):
            manager.call_llm_api("prompt", 50)
        assert manager.client.chat.completions.create.call_count == 1

    def test_tenacity_strategy(self):
        manager = LLMManager({"retry_max_attempts": 2, "enable_smart_retry": False})
        manager.client = MagicMock()
        manager.provider = "openai"
        manager.model = "gpt-4o-mini"
        manager.client.chat.completions.create.side_effect = Exception("403 forbidden")

        with pytest.raises(Exception, match="forbidden"):
            manager.call_llm_api("prompt", 50)
        assert manager.client.chat.completions.create.call_count == 1


# ============================================================================
# Cost
# ============================================================================


class TestCost:
    def test_anthropic_cost(self):
        assert LLMManager.calculate_actual_cost(1_000_000, 1_000_000, "anthropic") == pytest.approx(18.0)

    def test_ollama_is_free(self):
        assert LLMManager.calculate_actual_cost(5000, 5000, "ollama") == 0.0

    def test_unknown_provider(self):
        assert LLMManager.calculate_actual_cost(10, 10, "mystery") == 0.0
