"""
Custom exceptions for MDB Policy Store.

Every failure raised by the adapter derives from PolicyStoreError, which
subclasses RuntimeError so callers catching RuntimeError keep working.
"""

from typing import Any, Dict, Optional


class PolicyStoreError(RuntimeError):
    """
    Base exception for MDB Policy Store errors.

    Attributes:
        message: Error message
        context: Optional dictionary with additional context (db_name,
                 collection_name, etc.)
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        """
        Initialize the exception.

        Args:
            message: Error message
            context: Optional dictionary with additional context information
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        """Return formatted error message with context if available."""
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} (context: {context_str})"
        return self.message


class ConfigurationError(PolicyStoreError):
    """
    Raised when adapter configuration is invalid or missing.

    Raised synchronously, before any connection is attempted.

    Attributes:
        message: Error message
        config_key: Configuration key that caused the error (if available)
        context: Additional context information
    """

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if config_key:
            context["config_key"] = config_key
        super().__init__(message, context=context)
        self.config_key = config_key


class AdapterOperationError(PolicyStoreError):
    """
    Raised when a MongoDB round trip made by the adapter fails.

    The message is the operation's context prefix followed by the
    original error's message. The original error is chained as
    ``__cause__``.

    Attributes:
        message: Error message
        operation: Adapter operation that failed (e.g. "load_policy")
        context: Additional context information
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if operation:
            context["operation"] = operation
        super().__init__(message, context=context)
        self.operation = operation

    @classmethod
    def wrap(
        cls,
        prefix: str,
        error: BaseException,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> "AdapterOperationError":
        """
        Build an error whose message is ``"<prefix>: <original message>"``.

        The caller still has to ``raise ... from error`` to chain the cause.
        Wrapping another PolicyStoreError embeds only its message; its
        context stays on the chained cause.
        """
        context = dict(context or {})
        context.setdefault("error_type", type(error).__name__)
        detail = error.message if isinstance(error, PolicyStoreError) else error
        return cls(f"{prefix}: {detail}", operation=operation, context=context)
