"""
RSS Converter Custom Exceptions
===============================

Exception hierarchy for the converter service with error codes,
context information, and user-friendly error messages.
"""

from typing import Optional, Dict, Any
from enum import Enum


class ErrorCode(str, Enum):
    """Error codes for categorizing exceptions."""

    # Configuration errors (C001-C099)
    CONFIG_INVALID = "C001"
    CONFIG_MISSING = "C002"
    CONFIG_PARSE_ERROR = "C003"
    RULE_INVALID_PATTERN = "C010"
    RULE_INVALID_TEMPLATE = "C011"
    RULE_DUPLICATE = "C012"
    RULE_SET_FROZEN = "C013"

    # Feed fetch errors (F001-F099)
    FEED_INVALID_URL = "F001"
    FEED_FETCH_TIMEOUT = "F002"
    FEED_NETWORK_ERROR = "F004"
    FEED_ACCESS_DENIED = "F005"
    FEED_NOT_FOUND = "F006"
    FEED_BAD_STATUS = "F007"
    FEED_TOO_LARGE = "F008"

    # Feed markup errors (M001-M099)
    FEED_MALFORMED = "M001"
    FEED_UNSUPPORTED_ENCODING = "M002"
    FEED_EMPTY = "M003"

    # Validation errors (V001-V099)
    VALIDATION_REQUIRED_FIELD = "V001"
    VALIDATION_INVALID_FORMAT = "V002"


class RSSConverterError(Exception):
    """Base exception for all converter errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[ErrorCode] = None,
        context: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        recoverable: bool = False,
    ):
        """Initialize converter error.

        Args:
            message: Technical error message for logging
            error_code: Categorized error code
            context: Additional context information
            user_message: User-friendly error message
            recoverable: Whether the error is recoverable
        """
        super().__init__(message)
        self.error_code = error_code
        self.context = context or {}
        self.user_message = user_message or message
        self.recoverable = recoverable

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code.value if self.error_code else None,
            "error_message": str(self),
            "user_message": self.user_message,
            "context": self.context,
            "recoverable": self.recoverable,
        }

    def __str__(self) -> str:
        """String representation with error code."""
        if self.error_code:
            return f"[{self.error_code.value}] {super().__str__()}"
        return super().__str__()


class ConfigurationError(RSSConverterError):
    """Configuration-related errors, fatal at startup."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        rule_name: Optional[str] = None,
        **kwargs,
    ):
        """Initialize configuration error.

        Args:
            message: Error message
            config_key: Configuration key that caused the error
            rule_name: Conversion rule that caused the error
            **kwargs: Additional arguments for RSSConverterError
        """
        context = kwargs.get("context", {})
        if config_key:
            context["config_key"] = config_key
        if rule_name:
            context["rule_name"] = rule_name

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.CONFIG_INVALID),
            context=context,
            user_message=kwargs.get("user_message", f"Configuration error: {message}"),
            **{
                k: v
                for k, v in kwargs.items()
                if k not in ["context", "error_code", "user_message"]
            },
        )


class FeedError(RSSConverterError):
    """Base class for per-request feed errors."""

    def __init__(self, message: str, feed_url: Optional[str] = None, **kwargs):
        """Initialize feed error.

        Args:
            message: Error message
            feed_url: Feed URL that caused the error
            **kwargs: Additional arguments for RSSConverterError
        """
        context = kwargs.get("context", {})
        if feed_url:
            context["feed_url"] = feed_url

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.FEED_NETWORK_ERROR),
            context=context,
            user_message=kwargs.get(
                "user_message", f"Feed processing failed: {message}"
            ),
            recoverable=kwargs.get("recoverable", True),
            **{
                k: v
                for k, v in kwargs.items()
                if k not in ["context", "error_code", "user_message", "recoverable"]
            },
        )


class FeedFetchError(FeedError):
    """Upstream feed unreachable or answered with a non-success status."""

    def __init__(self, message: str, status: Optional[int] = None, **kwargs):
        context = kwargs.pop("context", {})
        if status is not None:
            context["status"] = status
        super().__init__(message, context=context, **kwargs)
        self.status = status


class MalformedFeedError(FeedError):
    """Feed bytes cannot be parsed as well-formed UTF-8 XML."""

    def __init__(
        self,
        message: str,
        line: Optional[int] = None,
        column: Optional[int] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        if line is not None:
            context["line"] = line
        if column is not None:
            context["column"] = column
        kwargs.setdefault("error_code", ErrorCode.FEED_MALFORMED)
        kwargs.setdefault("user_message", f"Upstream feed is malformed: {message}")
        super().__init__(message, context=context, **kwargs)


MalformedFeed = MalformedFeedError


class ValidationError(RSSConverterError):
    """Data validation errors."""

    def __init__(self, message: str, field_name: Optional[str] = None, **kwargs):
        """Initialize validation error.

        Args:
            message: Error message
            field_name: Field name that failed validation
            **kwargs: Additional arguments for RSSConverterError
        """
        context = kwargs.get("context", {})
        if field_name:
            context["field_name"] = field_name

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.VALIDATION_INVALID_FORMAT),
            context=context,
            user_message=kwargs.get(
                "user_message", f"Invalid {field_name or 'input'}: {message}"
            ),
            recoverable=kwargs.get("recoverable", False),
            **{
                k: v
                for k, v in kwargs.items()
                if k not in ["context", "error_code", "user_message", "recoverable"]
            },
        )


def get_user_friendly_message(exception: Exception) -> str:
    """Get user-friendly error message for any exception.

    Args:
        exception: Exception to get message for

    Returns:
        User-friendly error message
    """
    if isinstance(exception, RSSConverterError):
        return exception.user_message

    return "An unexpected error occurred. Please try again later."
