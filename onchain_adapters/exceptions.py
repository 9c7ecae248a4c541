"""
On-chain Adapter Exceptions.

Provider failures are expressed in the engine taxonomy
(UpstreamUnavailable / UpstreamMalformed). The subclasses here keep
"rate limited" and "not found" distinguishable from generic network
failures; neither is retried.
"""

from typing import Optional

from core.exceptions import UpstreamMalformed, UpstreamUnavailable


class RateLimitedError(UpstreamUnavailable):
    """Provider answered 429."""

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        retry_after_seconds: Optional[float] = None,
        **kwargs,
    ) -> None:
        context = kwargs.pop("context", {})
        if retry_after_seconds is not None:
            context["retry_after_seconds"] = retry_after_seconds
        super().__init__(message, source=source, status_code=429, context=context, **kwargs)
        self.retry_after_seconds = retry_after_seconds


class NotFoundError(UpstreamUnavailable):
    """Provider does not know the requested token."""

    def __init__(self, message: str, source: Optional[str] = None, **kwargs) -> None:
        kwargs.setdefault("status_code", 404)
        super().__init__(message, source=source, **kwargs)


NON_RETRYABLE_ERRORS = (RateLimitedError, NotFoundError, UpstreamMalformed)
