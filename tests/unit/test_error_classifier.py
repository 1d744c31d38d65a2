#!/usr/bin/env python3
"""
Tests for the error_classifier module.

Tests error classification for reasoning-engine and GitHub errors, retry
delay calculation, the smart_retry decorator and the tenacity helpers.
"""

from __future__ import annotations

import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

# Ensure scripts directory is on the path
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "scripts"))

from error_classifier import (
    ERROR_TYPE_AUTH,
    ERROR_TYPE_CONFIG,
    ERROR_TYPE_PERMANENT,
    ERROR_TYPE_RATE_LIMIT,
    ERROR_TYPE_TRANSIENT,
    ERROR_TYPE_VALIDATION,
    ClassifiedError,
    classified_retry_predicate,
    classified_wait,
    classify_error,
    get_retry_delay,
    is_retryable_error,
    smart_retry,
)
from exceptions import FileListingError


# ============================================================================
# ClassifiedError
# ============================================================================


class TestClassifiedError:
    def test_str_contains_metadata(self):
        err = ClassifiedError(ERROR_TYPE_AUTH, False, ValueError("bad key"), source="anthropic")
        text = str(err)
        assert "type=auth" in text
        assert "non-retryable" in text
        assert "anthropic" in text

    def test_default_context(self):
        err = ClassifiedError(ERROR_TYPE_TRANSIENT, True, RuntimeError("x"))
        assert err.context == {}
        assert err.source == ""


# ============================================================================
# classify_error
# ============================================================================


class TestClassifyError:
    @pytest.mark.parametrize(
        "message,expected",
        [
            ("Rate limit exceeded", ERROR_TYPE_RATE_LIMIT),
            ("HTTP 429 Too Many Requests", ERROR_TYPE_RATE_LIMIT),
            ("Invalid API key provided", ERROR_TYPE_AUTH),
            ("401 Unauthorized", ERROR_TYPE_AUTH),
            ("LLM Manager not initialized", ERROR_TYPE_CONFIG),
            ("Model not found: gpt-9", ERROR_TYPE_CONFIG),
            ("Malformed response body", ERROR_TYPE_VALIDATION),
            ("Request timed out", ERROR_TYPE_TRANSIENT),
            ("503 Service Unavailable", ERROR_TYPE_TRANSIENT),
            ("Something odd happened", ERROR_TYPE_PERMANENT),
        ],
    )
    def test_message_patterns(self, message, expected):
        assert classify_error(Exception(message)).error_type == expected

    def test_retryable_flags(self):
        assert classify_error(Exception("rate limit")).retryable
        assert not classify_error(Exception("unauthorized")).retryable
        assert not classify_error(Exception("not configured")).retryable
        assert classify_error(Exception("invalid json")).retryable
        assert classify_error(Exception("connection reset")).retryable
        assert not classify_error(Exception("nope")).retryable

    def test_builtin_timeout_is_transient(self):
        assert classify_error(TimeoutError("")).error_type == ERROR_TYPE_TRANSIENT

    def test_status_code_attribute(self):
        err = FileListingError("GitHub API rate limit exceeded", status_code=429)
        classified = classify_error(err, source="github")
        assert classified.error_type == ERROR_TYPE_RATE_LIMIT
        assert classified.context["status_code"] == 429
        assert classified.source == "github"

    def test_status_code_from_response(self):
        err = Exception("request failed")
        err.response = MagicMock(status_code=502)
        classified = classify_error(err)
        assert classified.error_type == ERROR_TYPE_TRANSIENT
        assert classified.context["status_code"] == 502

    def test_github_not_found_is_permanent(self):
        err = FileListingError("GitHub API returned 404 for /repos/acme/app", status_code=404)
        assert classify_error(err, "github").error_type == ERROR_TYPE_PERMANENT

    def test_rate_limit_wins_over_auth(self):
        err = FileListingError("secondary rate limit", status_code=403)
        assert classify_error(err).error_type == ERROR_TYPE_RATE_LIMIT

    def test_error_class_in_context(self):
        assert classify_error(KeyError("x")).context["error_class"] == "KeyError"

    def test_is_retryable_error(self):
        assert is_retryable_error(ConnectionError("reset"))
        assert not is_retryable_error(Exception("forbidden"))


# ============================================================================
# get_retry_delay
# ============================================================================


class TestGetRetryDelay:
    def _classified(self, error_type):
        return ClassifiedError(error_type, True, Exception("x"))

    def test_rate_limit_delay(self):
        assert get_retry_delay(self._classified(ERROR_TYPE_RATE_LIMIT), 1) == 40.0
        assert get_retry_delay(self._classified(ERROR_TYPE_RATE_LIMIT), 20) == 120.0

    def test_transient_delay_is_exponential_with_jitter(self):
        delay = get_retry_delay(self._classified(ERROR_TYPE_TRANSIENT), 2)
        assert 4.0 <= delay <= 5.0

    def test_transient_delay_capped(self):
        assert get_retry_delay(self._classified(ERROR_TYPE_TRANSIENT), 10) == 30.0

    def test_validation_delay(self):
        assert get_retry_delay(self._classified(ERROR_TYPE_VALIDATION), 1) == 5.0

    def test_non_retryable_delay(self):
        assert get_retry_delay(self._classified(ERROR_TYPE_AUTH), 1) == 0.0


# ============================================================================
# smart_retry
# ============================================================================


class TestSmartRetry:
    def test_successful_call_no_retry(self):
        call_count = 0

        @smart_retry(max_attempts=3)
        def success():
            nonlocal call_count
            call_count += 1
            return "ok"

        assert success() == "ok"
        assert call_count == 1

    @patch("error_classifier.time.sleep")
    def test_retries_on_transient_error(self, mock_sleep):
        call_count = 0

        @smart_retry(max_attempts=3)
        def flaky():
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise ConnectionError("network blip")
            return "recovered"

        assert flaky() == "recovered"
        assert call_count == 3
        assert mock_sleep.call_count == 2

    @patch("error_classifier.time.sleep")
    def test_raises_immediately_on_non_retryable(self, mock_sleep):
        call_count = 0

        @smart_retry(max_attempts=3)
        def auth_fail():
            nonlocal call_count
            call_count += 1
            raise Exception("invalid api key")

        with pytest.raises(Exception, match="invalid api key"):
            auth_fail()

        assert call_count == 1
        assert mock_sleep.call_count == 0

    @patch("error_classifier.time.sleep")
    def test_raises_after_max_attempts(self, mock_sleep):
        call_count = 0

        @smart_retry(max_attempts=2)
        def always_fails():
            nonlocal call_count
            call_count += 1
            raise ConnectionError("still failing")

        with pytest.raises(ConnectionError, match="still failing"):
            always_fails()

        assert call_count == 2
        assert mock_sleep.call_count == 1

    @patch("error_classifier.time.sleep")
    def test_custom_classifier(self, mock_sleep):
        def everything_retryable(exc, source):
            return ClassifiedError(ERROR_TYPE_VALIDATION, True, exc, source=source)

        call_count = 0

        @smart_retry(max_attempts=2, classifier_fn=everything_retryable)
        def fails_once():
            nonlocal call_count
            call_count += 1
            if call_count == 1:
                raise Exception("unauthorized")
            return "ok"

        assert fails_once() == "ok"
        mock_sleep.assert_called_once_with(5.0)

    def test_preserves_function_name(self):
        @smart_retry()
        def my_function():
            return None

        assert my_function.__name__ == "my_function"


# ============================================================================
# Tenacity helpers
# ============================================================================


class TestTenacityIntegration:
    def test_retry_predicate(self):
        predicate = classified_retry_predicate("openai")
        assert predicate(ConnectionError("reset"))
        assert not predicate(Exception("401 unauthorized"))
        assert not predicate(KeyboardInterrupt())

    def test_wait_uses_classification(self):
        wait = classified_wait("anthropic")
        state = MagicMock()
        state.outcome.exception.return_value = Exception("rate limit")
        state.attempt_number = 2
        assert wait(state) == 50.0

    def test_wait_without_exception(self):
        state = MagicMock()
        state.outcome.exception.return_value = None
        assert classified_wait()(state) == 0.0

    def test_with_tenacity_retry(self):
        mock_sleep = MagicMock()
        from tenacity import retry, retry_if_exception, stop_after_attempt

        call_count = 0

        @retry(
            stop=stop_after_attempt(3),
            wait=classified_wait(),
            retry=retry_if_exception(classified_retry_predicate()),
            reraise=True,
            sleep=mock_sleep,
        )
        def flaky():
            nonlocal call_count
            call_count += 1
            if call_count < 2:
                raise Exception("invalid json")
            return "ok"

        assert flaky() == "ok"
        assert call_count == 2
        mock_sleep.assert_called_once_with(5.0)
