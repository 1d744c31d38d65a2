#!/usr/bin/env python3
"""
Error classification and retry policy for the triage pipeline's external calls.

Both collaborators that talk to the network, the reasoning engine's LLM
client and the GitHub file-listing provider, raise a mix of SDK, HTTP and
builtin exceptions. ``classify_error`` maps any of them onto one of six types
by matching the exception class name, message and HTTP status against an
ordered rule table:

    rate_limit  retry, linear backoff from 40s (cap 120s)
    auth        fail immediately
    config      fail immediately
    validation  retry after 5s
    transient   retry, 2**attempt seconds plus jitter (cap 30s)
    permanent   fail immediately (anything unmatched)

The retry behaviour is available as a plain decorator (``smart_retry``) and
as tenacity building blocks (``classified_retry_predicate``,
``classified_wait``) for callers that compose their own ``tenacity.retry``.
"""

from __future__ import annotations

import functools
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

ERROR_TYPE_RATE_LIMIT = "rate_limit"
ERROR_TYPE_AUTH = "auth"
ERROR_TYPE_CONFIG = "config"
ERROR_TYPE_VALIDATION = "validation"
ERROR_TYPE_TRANSIENT = "transient"
ERROR_TYPE_PERMANENT = "permanent"


@dataclass(frozen=True)
class ErrorRule:
    error_type: str
    retryable: bool
    patterns: tuple[str, ...]

    def matches(self, text: str) -> bool:
        return any(pattern in text for pattern in self.patterns)


# First match wins, so rate limiting (GitHub reports it as 403) is checked
# before authentication.
ERROR_RULES: tuple[ErrorRule, ...] = (
    ErrorRule(
        ERROR_TYPE_RATE_LIMIT,
        True,
        ("rate limit", "ratelimit", "429", "too many requests", "quota exceeded",
         "insufficient_quota", "throttled"),
    ),
    ErrorRule(
        ERROR_TYPE_AUTH,
        False,
        ("invalid api key", "authentication", "unauthorized", "bad credentials",
         "permission denied", "forbidden", "401", "403"),
    ),
    ErrorRule(
        ERROR_TYPE_CONFIG,
        False,
        ("not configured", "not initialized", "invalid model", "model not found",
         "unknown provider", "missing required"),
    ),
    ErrorRule(
        ERROR_TYPE_VALIDATION,
        True,
        ("invalid response", "malformed", "invalid json", "parse error", "validation failed"),
    ),
    ErrorRule(
        ERROR_TYPE_TRANSIENT,
        True,
        ("timeout", "timed out", "connection", "network", "overloaded", "service unavailable",
         "bad gateway", "internal server error", "500", "502", "503", "504"),
    ),
)


@dataclass
class ClassifiedError:
    """An exception annotated with its error type and whether to retry it.

    ``source`` names the collaborator ("anthropic", "openai", "github", ...);
    ``context`` carries the exception class and, when known, the HTTP status.
    """

    error_type: str
    retryable: bool
    original: Exception
    context: dict[str, Any] = field(default_factory=dict)
    source: str = ""

    def __str__(self) -> str:
        retry_label = "retryable" if self.retryable else "non-retryable"
        return (
            f"ClassifiedError(type={self.error_type}, {retry_label}, "
            f"source={self.source!r}, original={self.original!r})"
        )


def _status_code(error: Exception) -> Optional[int]:
    """HTTP status from ``error.status_code`` or ``error.response.status_code``."""
    status = getattr(error, "status_code", None)
    if status is None:
        status = getattr(getattr(error, "response", None), "status_code", None)
    return status


def classify_error(error: Exception, source: str = "") -> ClassifiedError:
    """Classify *error* against ``ERROR_RULES``.

    Builtin ``ConnectionError``/``TimeoutError`` with unhelpful messages are
    still transient; everything else that matches no rule is permanent.
    """
    context: dict[str, Any] = {"error_class": type(error).__name__}
    haystack = [type(error).__name__, str(error)]

    status = _status_code(error)
    if status is not None:
        context["status_code"] = status
        haystack.append(str(status))

    text = " ".join(haystack).lower()
    rule = next((r for r in ERROR_RULES if r.matches(text)), None)
    if rule is not None:
        return ClassifiedError(rule.error_type, rule.retryable, error, context, source)

    if isinstance(error, (ConnectionError, TimeoutError)):
        return ClassifiedError(ERROR_TYPE_TRANSIENT, True, error, context, source)
    return ClassifiedError(ERROR_TYPE_PERMANENT, False, error, context, source)


def is_retryable_error(error: Exception, source: str = "") -> bool:
    return classify_error(error, source).retryable


def get_retry_delay(classified: ClassifiedError, attempt: int) -> float:
    """Seconds to sleep after failed attempt number *attempt* (1-based)."""
    kind = classified.error_type
    if kind == ERROR_TYPE_RATE_LIMIT:
        return min(30.0 + 10.0 * attempt, 120.0)
    if kind == ERROR_TYPE_TRANSIENT:
        return min(2.0 ** attempt + random.uniform(0, 1), 30.0)  # noqa: S311
    if kind == ERROR_TYPE_VALIDATION:
        return 5.0
    return 0.0


def smart_retry(
    max_attempts: int = 3,
    classifier_fn: Callable[..., ClassifiedError] = classify_error,
    source: str = "",
) -> Callable:
    """Decorator that retries the wrapped call according to its error type.

    Errors classified as non-retryable propagate on the first attempt; the
    last retryable error propagates once *max_attempts* calls have failed.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            attempt = 0
            while True:
                attempt += 1
                try:
                    return func(*args, **kwargs)
                except Exception as exc:
                    classified = classifier_fn(exc, source)
                    if not classified.retryable or attempt >= max_attempts:
                        logger.error(
                            "%s failed on attempt %d/%d (%s): %s",
                            func.__name__, attempt, max_attempts, classified.error_type, exc,
                        )
                        raise
                    delay = get_retry_delay(classified, attempt)
                    logger.warning(
                        "%s hit a %s error (attempt %d/%d); retrying in %.1fs: %s",
                        func.__name__, classified.error_type, attempt, max_attempts, delay, exc,
                    )
                    time.sleep(delay)

        return wrapper

    return decorator


def classified_retry_predicate(source: str = "") -> Callable[[BaseException], bool]:
    """Build a predicate for ``tenacity.retry_if_exception``.

    KeyboardInterrupt and other non-``Exception`` errors are never retried.
    """

    def _should_retry(error: BaseException) -> bool:
        if not isinstance(error, Exception):
            return False
        return is_retryable_error(error, source)

    return _should_retry


def classified_wait(source: str = "") -> Callable[[Any], float]:
    """Build a ``wait=`` callable for tenacity that uses ``get_retry_delay``."""

    def _wait(retry_state: Any) -> float:
        error = retry_state.outcome.exception()
        if error is None:
            return 0.0
        return get_retry_delay(classify_error(error, source), retry_state.attempt_number)

    return _wait
