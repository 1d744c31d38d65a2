#!/usr/bin/env python3
"""
LLM client lifetime and calls for the reasoning engine.

Providers: Anthropic (native SDK), OpenAI, Gemini (OpenAI-compatible
endpoint) and Ollama (local, OpenAI-compatible). The provider is taken from
``ai_provider`` or detected from whichever credential is configured.

A manager is meant to live for exactly one triage run::

    with LLMManager(config) as llm:
        text, tokens_in, tokens_out = llm.call_llm_api(prompt, max_tokens=2000)

Calls carry the configured timeout and are retried according to
``error_classifier`` (``smart_retry``, or tenacity when
``enable_smart_retry`` is off).
"""

import logging

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
)

from error_classifier import classified_retry_predicate, classified_wait, classify_error, smart_retry
from exceptions import ConfigurationError, ReasoningError

logger = logging.getLogger(__name__)

GEMINI_OPENAI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"
DEFAULT_OLLAMA_ENDPOINT = "http://localhost:11434"

# provider -> (config key holding its credential, env var named in errors)
_CREDENTIALS = {
    "anthropic": ("anthropic_api_key", "ANTHROPIC_API_KEY"),
    "openai": ("openai_api_key", "OPENAI_API_KEY"),
    "gemini": ("google_api_key", "GOOGLE_API_KEY"),
    "ollama": ("ollama_endpoint", "OLLAMA_ENDPOINT"),
}


class LLMManager:
    """Owns one provider client and makes retried, timed calls through it."""

    DEFAULT_MODELS = {
        "anthropic": "claude-sonnet-4-5-20250929",
        "openai": "gpt-4o-mini",
        "gemini": "gemini-2.0-flash",
        "ollama": "llama3.2:3b",
    }

    # USD per 1M tokens
    PRICING = {
        "anthropic": {"input": 3.0, "output": 15.0},
        "openai": {"input": 0.15, "output": 0.6},
        "gemini": {"input": 0.1, "output": 0.4},
        "ollama": {"input": 0.0, "output": 0.0},
    }

    def __init__(self, config: dict = None):
        self.config = config or {}
        self.client = None
        self.provider = None
        self.model = None
        self.timeout = float(self.config.get("reasoning_timeout", 120.0))
        self.temperature = float(self.config.get("reasoning_temperature", 0.1))
        self.call_llm_api = self._with_retry(self.call_llm_api)

    def _with_retry(self, func):
        attempts = int(self.config.get("retry_max_attempts", 3))
        source = self.config.get("ai_provider", "")

        if self.config.get("enable_smart_retry", True):
            logger.debug("LLM calls use smart retry (%d attempts)", attempts)
            return smart_retry(max_attempts=attempts, source=source)(func)

        logger.debug("LLM calls use tenacity retry (%d attempts)", attempts)
        return retry(
            stop=stop_after_attempt(attempts),
            wait=classified_wait(source),
            retry=retry_if_exception(classified_retry_predicate(source)),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )(func)

    def __enter__(self):
        if self.client is None and not self.initialize():
            raise ConfigurationError("No usable reasoning provider is configured")
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def detect_provider(self):
        """Return the configured provider, or the first one with a credential.

        Detection order is anthropic, openai, gemini, ollama. Returns None
        when nothing is configured.
        """
        provider = self.config.get("ai_provider", "auto")
        if provider != "auto":
            return provider

        for candidate, (key, _env_name) in _CREDENTIALS.items():
            if self.config.get(key):
                return candidate

        logger.warning(
            "No reasoning provider configured; set one of %s",
            ", ".join(env_name for _key, env_name in _CREDENTIALS.values()),
        )
        return None

    def initialize(self, provider: str = None) -> bool:
        """Create the client; False (with the reason logged) on failure."""
        provider = provider or self.detect_provider()
        if provider is None:
            return False

        try:
            self.client, self.provider = self._get_client(provider)
        except (ImportError, ValueError) as exc:
            logger.error("Cannot initialize %s client: %s", provider, exc)
            return False

        self.model = self.get_model_name(provider)
        logger.info("Reasoning provider %s, model %s", self.provider, self.model)
        return True

    def _require_key(self, provider: str) -> str:
        key, env_name = _CREDENTIALS[provider]
        value = self.config.get(key)
        if not value:
            raise ValueError(f"{env_name} not set")
        return value

    def _get_client(self, provider: str):
        """Return ``(client, provider)``; ValueError for a missing key or unknown provider."""
        if provider == "anthropic":
            from anthropic import Anthropic

            return Anthropic(api_key=self._require_key(provider), timeout=self.timeout, max_retries=0), provider

        if provider not in _CREDENTIALS:
            raise ValueError(f"Unknown provider: {str(provider).split('/')[-1]}")

        from openai import OpenAI

        if provider == "openai":
            client = OpenAI(api_key=self._require_key(provider), timeout=self.timeout, max_retries=0)
        elif provider == "gemini":
            client = OpenAI(
                api_key=self._require_key(provider),
                base_url=GEMINI_OPENAI_BASE_URL,
                timeout=self.timeout,
                max_retries=0,
            )
        else:
            endpoint = str(self.config.get("ollama_endpoint") or DEFAULT_OLLAMA_ENDPOINT).rstrip("/")
            logger.info("Using Ollama at %s", endpoint.split("//")[-1])
            client = OpenAI(base_url=f"{endpoint}/v1", api_key="ollama", timeout=self.timeout, max_retries=0)
        return client, provider

    def get_model_name(self, provider: str = None) -> str:
        model = self.config.get("model", "auto")
        if model != "auto":
            return model
        return self.DEFAULT_MODELS.get(provider or self.provider, self.DEFAULT_MODELS["anthropic"])

    @staticmethod
    def calculate_actual_cost(input_tokens: int, output_tokens: int, provider: str) -> float:
        """USD cost of a finished call, from ``PRICING``; 0.0 for unknown providers."""
        rates = LLMManager.PRICING.get(provider)
        if rates is None:
            return 0.0
        return (input_tokens * rates["input"] + output_tokens * rates["output"]) / 1_000_000

    def call_llm_api(self, prompt: str, max_tokens: int, operation: str = "LLM call", json_mode: bool = True) -> tuple:
        """Send *prompt* and return ``(text, input_tokens, output_tokens)``.

        *json_mode* asks OpenAI and Gemini for a JSON object response.
        Raises ReasoningError if no client is open; SDK errors are classified,
        logged and re-raised for the retry wrapper to judge.
        """
        if self.client is None or self.provider is None:
            raise ReasoningError("LLM Manager not initialized. Call initialize() first.")

        logger.debug("%s via %s/%s (%d prompt chars)", operation, self.provider, self.model, len(prompt))
        messages = [{"role": "user", "content": prompt}]
        try:
            if self.provider == "anthropic":
                return self._call_anthropic(messages, max_tokens)
            return self._call_openai_compatible(messages, max_tokens, json_mode)
        except Exception as exc:
            classified = classify_error(exc, self.provider)
            logger.error(
                "%s failed on %s (%s, retryable=%s): %s",
                operation, self.provider, classified.error_type, classified.retryable, exc,
            )
            raise

    def _call_anthropic(self, messages, max_tokens):
        message = self.client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=self.temperature,
            messages=messages,
            timeout=self.timeout,
        )
        return message.content[0].text, message.usage.input_tokens, message.usage.output_tokens

    def _call_openai_compatible(self, messages, max_tokens, json_mode):
        request = dict(
            model=self.model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=self.temperature,
            timeout=self.timeout,
        )
        if json_mode and self.provider in ("openai", "gemini"):
            request["response_format"] = {"type": "json_object"}

        response = self.client.chat.completions.create(**request)
        usage = response.usage
        text = response.choices[0].message.content or ""
        if usage is None:
            return text, 0, 0
        return text, usage.prompt_tokens or 0, usage.completion_tokens or 0

    def close(self):
        """Close the SDK client if it has an HTTP session to release."""
        if self.client is None:
            return
        close = getattr(self.client, "close", None)
        if callable(close):
            close()
        logger.debug("Closed %s client", self.provider)
        self.client = None
