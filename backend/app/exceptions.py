"""
Klara Backend — Custom Exception Hierarchy
============================================

What:  Defines application-specific exceptions for different error scenarios.
Why:   Custom exceptions enable targeted error handling with appropriate HTTP
       status codes and user-friendly messages.
How:   Each exception class carries a message and optional context dict.
       Global exception handlers (registered in main.py) catch these and
       return structured JSON error responses with correct HTTP status codes.
Who:   Raised by services, auth and routes; caught by global handlers.

Exception Hierarchy:
    KlaraError (base)
    ├── ValidationError          → 400 Bad Request (client can fix)
    │   └── MissingAPIKeyError   → 400 Bad Request (no key for provider)
    ├── AuthenticationError      → 401 Unauthorized
    ├── NotFoundError            → 404 Not Found
    ├── ProviderCallError        → internal only, wrapped in LLMServiceError
    ├── LLMServiceError          → 503 Service Unavailable
    ├── MemoryServiceError       → 503 Service Unavailable
    └── DatabaseError            → 500 Internal Server Error

    `message` is safe to return to the client. `context` is logged only.
"""

from typing import Any, Dict, Optional


class KlaraError(Exception):
    """
    Base exception for all Klara application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(KlaraError):
    """
    Raised when client input fails a business-rule check.

    When:    Missing fields, unsupported provider tag, malformed identifiers.
    HTTP:    400 Bad Request. Raised before any side effect or external call.
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class MissingAPIKeyError(ValidationError):
    """
    Raised when the user has no stored key for the requested provider.

    Checked before any database write or network call so that a turn without
    credentials leaves no trace.
    """

    def __init__(self, provider: str):
        super().__init__(
            message=(
                f"No {provider} API key found. "
                "Please add your API key in profile settings."
            ),
            field="model",
            context={"provider": provider},
        )
        self.provider = provider


class AuthenticationError(KlaraError):
    """Bearer token missing, malformed, expired or not signed by Clerk. HTTP 401."""

    def __init__(
        self,
        message: str = "Authentication required",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(KlaraError):
    """
    Raised when a requested resource does not exist or is not owned by the caller.

    Ownership failures deliberately look identical to missing rows so a caller
    cannot probe for other users' note or session ids.
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class ProviderCallError(KlaraError):
    """
    Raised by the provider adapter when a single completion call fails.

    Carries the HTTP status and raw response body (truncated) for logs.
    Never reaches the client directly: orchestrators wrap it in LLMServiceError.
    """

    def __init__(
        self,
        provider: str,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        ctx: Dict[str, Any] = {"provider": provider}
        if status_code is not None:
            ctx["status_code"] = status_code
        if body:
            ctx["body"] = body[:2000]
        super().__init__(message=message, context=ctx)
        self.provider = provider
        self.status_code = status_code
        self.body = body


class LLMServiceError(KlaraError):
    """
    Raised when an AI provider call fails.

    HTTP:    503 Service Unavailable
    The message is deliberately opaque; the original failure is in `context`.
    """

    def __init__(
        self,
        message: str = "AI API call failed. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class MemoryServiceError(KlaraError):
    """
    Raised by the memory client on transport errors, non-2xx or bad payloads.

    Chat turns recover from it (empty context). Operations that need the
    memory store, such as note updates and memory management, surface it as 503.
    """

    def __init__(
        self,
        message: str = "Memory service request failed",
        status_code: Optional[int] = None,
        body: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if status_code is not None:
            ctx["status_code"] = status_code
        if body:
            ctx["body"] = body[:2000]
        super().__init__(message=message, context=ctx)
        self.status_code = status_code
        self.body = body


class DatabaseError(KlaraError):
    """
    Raised when database operations fail unexpectedly. HTTP 500.

    The message returned to the client is always generic.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
