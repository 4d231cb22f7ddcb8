"""Full error hierarchy for the notionsource package.

Every public error class inherits from NotionSourceError. Each carries a
machine-readable ``code`` (from :class:`ErrorCode`), a human-readable
``message``, an optional structured ``context`` dict, and an optional
``cause`` (chained exception).

The classes fall into four groups:

* **Transient** -- :class:`NotionSourceRateLimitError`,
  :class:`NotionSourceServerError` and :class:`NotionSourceTimeoutError`.
  The paginated fetcher retries these with a fixed per-category backoff.
* **Permanent remote** -- validation, auth, permission, not-found and
  unclassified network failures.  Surfaced immediately; they abort the
  fetch of the current item.
* **Escape hatch** -- :class:`NotionSourceRetryExhaustedError`, raised only
  when an opt-in retry budget is configured and exceeded.
* **Configuration** -- :class:`NotionSourceConfigurationError`, fatal to
  the whole ingestion run.

Schema drift (unknown block or property kinds) and cache misses are never
errors.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

# ---------------------------------------------------------------------------
# Error code enum
# ---------------------------------------------------------------------------

class ErrorCode(str, Enum):
    """Machine-readable error codes for every error the package can raise."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTH_ERROR = "AUTH_ERROR"
    PERMISSION_ERROR = "PERMISSION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    RATE_LIMITED = "RATE_LIMITED"
    SERVER_ERROR = "SERVER_ERROR"
    REQUEST_TIMEOUT = "REQUEST_TIMEOUT"
    NETWORK_ERROR = "NETWORK_ERROR"
    RETRY_EXHAUSTED = "RETRY_EXHAUSTED"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"


# ---------------------------------------------------------------------------
# Base error
# ---------------------------------------------------------------------------

class NotionSourceError(Exception):
    """Base exception for all notionsource errors.

    Parameters
    ----------
    code:
        A value from :class:`ErrorCode` (or any string) identifying the
        error category.
    message:
        A developer-friendly description of what went wrong.
    context:
        Arbitrary structured data providing extra diagnostic detail.
        Keys and expected types are documented per subclass.
    cause:
        The underlying exception, if this error wraps another.
    """

    def __init__(
        self,
        code: str,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.code: str = code
        self.message: str = message
        self.context: dict[str, Any] = context or {}
        self.cause: Exception | None = cause
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    def __repr__(self) -> str:
        ctx = f", context={self.context!r}" if self.context else ""
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r}{ctx})"


# ---------------------------------------------------------------------------
# Transient remote errors (retried by the fetcher)
# ---------------------------------------------------------------------------

class NotionSourceRateLimitError(NotionSourceError):
    """Notion API returned 429 -- rate limit exceeded.

    Context keys: ``status_code``, ``retry_after_seconds`` (``None`` when the
    server sent no usable ``Retry-After`` header).
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.RATE_LIMITED,
            message=message,
            context=context,
            cause=cause,
        )

    @property
    def retry_after(self) -> float | None:
        """Server-requested delay in seconds, if any."""
        return self.context.get("retry_after_seconds")


class NotionSourceServerError(NotionSourceError):
    """Notion API returned a 5xx status (internal error, unavailable, ...).

    Context keys: ``status_code``, ``notion_code``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.SERVER_ERROR,
            message=message,
            context=context,
            cause=cause,
        )


class NotionSourceTimeoutError(NotionSourceError):
    """The request did not complete within the configured timeout.

    Context keys: ``method``, ``path``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.REQUEST_TIMEOUT,
            message=message,
            context=context,
            cause=cause,
        )


# ---------------------------------------------------------------------------
# Permanent remote errors
# ---------------------------------------------------------------------------

class NotionSourceValidationError(NotionSourceError):
    """Notion API returned 400 (or another unmapped 4xx) -- bad request.

    Context keys: ``status_code``, ``notion_code``, ``body``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.VALIDATION_ERROR,
            message=message,
            context=context,
            cause=cause,
        )


class NotionSourceAuthError(NotionSourceError):
    """Notion API returned 401 -- the integration token is invalid.

    Context keys: ``status_code``, ``notion_code``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.AUTH_ERROR,
            message=message,
            context=context,
            cause=cause,
        )


class NotionSourcePermissionError(NotionSourceError):
    """Notion API returned 403 -- the integration lacks access.

    Context keys: ``status_code``, ``notion_code``, ``operation``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.PERMISSION_ERROR,
            message=message,
            context=context,
            cause=cause,
        )


class NotionSourceNotFoundError(NotionSourceError):
    """Notion API returned 404 -- the resource does not exist or is not shared.

    Context keys: ``status_code``, ``notion_code``, ``path``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.NOT_FOUND,
            message=message,
            context=context,
            cause=cause,
        )


class NotionSourceNetworkError(NotionSourceError):
    """A transport-level failure other than a timeout (DNS, connection reset).

    These are not classified as transient and are surfaced to the caller.

    Context keys: ``method``, ``path``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.NETWORK_ERROR,
            message=message,
            context=context,
            cause=cause,
        )


class NotionSourceRetryExhaustedError(NotionSourceError):
    """A configured retry budget (attempts or elapsed time) ran out.

    Retries are unbounded unless ``retry_max_attempts`` or
    ``retry_max_elapsed`` is set.

    Context keys: ``attempts``, ``elapsed_seconds``, ``last_error_code``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.RETRY_EXHAUSTED,
            message=message,
            context=context,
            cause=cause,
        )


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------

class NotionSourceConfigurationError(NotionSourceError):
    """The caller's configuration does not match the remote database.

    Raised for a slug key that is missing from the database, or one whose
    normalized value is not a string.  Aborts the whole ingestion run.

    Context keys: ``database_id``, ``key``, ``value_type``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.CONFIGURATION_ERROR,
            message=message,
            context=context,
            cause=cause,
        )
