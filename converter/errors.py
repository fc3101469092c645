"""
Error taxonomy for the converter service and its clients.

Server-side errors carry the HTTP status and message the endpoint layer
renders as ``{"error": message}``.
"""

from typing import Any, Optional


class ConverterError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = 500
    default_message: str = "Internal error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthenticated(ConverterError):
    """No token in the request body or Authorization header."""

    status_code = 401
    default_message = "No token provided"


class InvalidToken(ConverterError):
    """The identity provider rejected the token."""

    status_code = 401
    default_message = "Invalid token"


class StoreUnavailable(ConverterError):
    """The history store call failed."""

    status_code = 503
    default_message = "History store unavailable"


class UpstreamUnavailable(ConverterError):
    """The rate lookup service failed or returned an unusable response."""

    status_code = 502
    default_message = "Rate lookup failed"


class IdentityProviderError(ConverterError):
    """Sign-in, registration or token refresh was refused by the provider."""

    status_code = 401
    default_message = "Authentication failed"


class ApiError(ConverterError):
    """Non-success response from the converter HTTP API."""

    def __init__(self, status_code: int, message: Optional[str] = None, body: Any = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message or f"API request failed with status {status_code}")


class ConfigurationError(Exception):
    """Missing or malformed configuration."""
