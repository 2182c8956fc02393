"""Custom exception types for the Azure DevOps MCP server."""

from __future__ import annotations

from typing import Optional


class AzdoToolError(Exception):
    """Base exception for all recoverable tool errors."""


class ConfigurationError(AzdoToolError):
    """Raised when runtime configuration values are missing or invalid."""


class AuthenticationError(AzdoToolError):
    """Raised when Azure DevOps authentication credentials are unavailable."""


class ToolInputError(AzdoToolError):
    """Raised when tool arguments do not satisfy the declared input schema."""


class ApiError(AzdoToolError):
    """Raised when an Azure DevOps API request fails or returns an unexpected response."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(ApiError):
    """Raised when the requested entity does not exist (HTTP 404)."""


class UnauthorizedError(ApiError):
    """Raised when the credential is rejected or lacks permission (HTTP 401/403)."""


class InvalidRequestError(ApiError):
    """Raised when Azure DevOps rejects the request as malformed (HTTP 400)."""


class ApiTimeoutError(ApiError):
    """Raised when a request exceeds its per-call timeout."""


class ApiConnectionError(ApiError):
    """Raised when the Azure DevOps host cannot be reached."""
