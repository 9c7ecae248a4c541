"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines the error taxonomy of the feature engine.

- Provides a clear exception hierarchy
- Separates per-token (contained) from per-cycle (fatal) failures
- Carries context for operator-facing logs

============================================================
EXCEPTION HIERARCHY
============================================================
FeatureEngineError (base)
├── ConfigurationError
├── UpstreamError
│   ├── UpstreamUnavailable   (network, rate limit, timeout)
│   └── UpstreamMalformed     (response shape not understood)
├── InsufficientHistory       (field-level, sibling fields unaffected)
├── DuplicateKey              (idempotent write, never fatal)
├── StorageError
└── InternalComputationError  (per-token -> error_fallback snapshot)

============================================================
"""

from enum import Enum
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# ============================================================
# ERROR CLASSIFICATION
# ============================================================

class ErrorClassification(Enum):
    """Classification of error recoverability."""

    RECOVERABLE = "recoverable"
    """Error is handled by a fallback path."""

    TRANSIENT = "transient"
    """Temporary error, a later attempt may succeed."""

    EXPECTED = "expected"
    """Outcome the caller treats as a no-op."""

    NON_RECOVERABLE = "non_recoverable"
    """Permanent error, requires intervention."""


# ============================================================
# BASE EXCEPTION
# ============================================================

class FeatureEngineError(Exception):
    """
    Base exception for all feature engine errors.

    All exceptions carry:
    - context: for debugging
    - recoverable: for error handling decisions
    - timestamp: when the error occurred
    """

    default_recoverable: bool = True
    default_classification: ErrorClassification = ErrorClassification.RECOVERABLE

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        recoverable: Optional[bool] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)

        self.message = message
        self.context = context or {}
        self.recoverable = recoverable if recoverable is not None else self.default_recoverable
        self.classification = self.default_classification
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        if cause:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging/storage."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "recoverable": self.recoverable,
            "classification": self.classification.value,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }

    def __str__(self) -> str:
        if not self.context:
            return self.message
        ctx_str = ", ".join(
            f"{k}={v}" for k, v in self.context.items()
            if k not in ("cause_type", "cause_message")
        )
        return f"{self.message} ({ctx_str})" if ctx_str else self.message


# ============================================================
# CONFIGURATION ERRORS
# ============================================================

class ConfigurationError(FeatureEngineError):
    """Error in configuration."""

    default_recoverable = False
    default_classification = ErrorClassification.NON_RECOVERABLE

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        actual_value: Optional[Any] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if config_key:
            context["config_key"] = config_key
        if actual_value is not None:
            context["actual_value"] = str(actual_value)[:100]

        super().__init__(message, context=context, **kwargs)


# ============================================================
# UPSTREAM ERRORS
# ============================================================

class UpstreamError(FeatureEngineError):
    """Base class for failures of an upstream data provider."""

    default_classification = ErrorClassification.TRANSIENT

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if source:
            context["source"] = source
        if status_code is not None:
            context["status_code"] = status_code
        if url:
            context["url"] = url

        super().__init__(message, context=context, **kwargs)
        self.source = source
        self.status_code = status_code
        self.url = url


class UpstreamUnavailable(UpstreamError):
    """Provider could not be reached, timed out or refused the call."""


class UpstreamMalformed(UpstreamError):
    """Provider answered with a shape the adapter does not understand."""

    default_classification = ErrorClassification.RECOVERABLE


# ============================================================
# COMPUTATION ERRORS
# ============================================================

class InsufficientHistory(FeatureEngineError):
    """Not enough candles or transfers for one indicator."""

    def __init__(
        self,
        message: str,
        indicator: Optional[str] = None,
        required: Optional[int] = None,
        available: Optional[int] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if indicator:
            context["indicator"] = indicator
        if required is not None:
            context["required"] = required
        if available is not None:
            context["available"] = available

        super().__init__(message, context=context, **kwargs)
        self.indicator = indicator
        self.required = required
        self.available = available


class InternalComputationError(FeatureEngineError):
    """Unguarded failure inside a computation step."""

    def __init__(
        self,
        message: str,
        token_id: Optional[str] = None,
        stage: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if token_id:
            context["token_id"] = token_id
        if stage:
            context["stage"] = stage

        super().__init__(message, context=context, **kwargs)
        self.token_id = token_id
        self.stage = stage


# ============================================================
# STORAGE ERRORS
# ============================================================

class DuplicateKey(FeatureEngineError):
    """Row with the same identity already exists."""

    default_classification = ErrorClassification.EXPECTED

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        key: Optional[Dict[str, Any]] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if table:
            context["table"] = table
        if key:
            context.update({k: str(v) for k, v in key.items()})

        super().__init__(message, context=context, **kwargs)
        self.table = table
        self.key = key or {}


class StorageError(FeatureEngineError):
    """Database operation failed for a reason other than a duplicate key."""

    default_recoverable = False
    default_classification = ErrorClassification.NON_RECOVERABLE
