"""
Error types and message utilities for providing actionable guidance to users.

This module provides the exceptions raised by the registry and package
clients and by the cleanup engine, plus factory functions that attach
suggested fixes and troubleshooting details to them.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCategory(Enum):
    """Categories of errors for better error handling"""
    CONNECTION = "connection"
    AUTHENTICATION = "authentication"
    PERMISSION = "permission"
    RESOURCE = "resource"
    RATE_LIMIT = "rate_limit"
    INCONSISTENCY = "inconsistency"
    UNKNOWN = "unknown"


class ActionableError(Exception):
    """Exception with actionable guidance for users"""

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.UNKNOWN,
                 suggestions: Optional[List[str]] = None, details: Optional[Dict[str, Any]] = None):
        """Initialize actionable error

        Args:
            message: Primary error message
            category: Error category for classification
            suggestions: List of suggested fixes
            details: Additional context information
        """
        self.message = message
        self.category = category
        self.suggestions = suggestions or []
        self.details = details or {}
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the complete error message with suggestions"""
        lines = [self.message]

        if self.suggestions:
            lines.append("\nSuggested fixes:")
            for i, suggestion in enumerate(self.suggestions, 1):
                lines.append(f"   {i}. {suggestion}")

        if self.details:
            lines.append("\nAdditional details:")
            for key, value in self.details.items():
                lines.append(f"   {key}: {value}")

        return "\n".join(lines)


class ConfigValidationError(Exception):
    """Raised when configuration validation fails"""


class RegistryAuthError(ActionableError):
    """Raised when the registry rejects the supplied credentials"""


class ManifestNotFoundError(Exception):
    """Raised when a manifest digest or tag does not exist in the registry.

    For ghost/partial detection and validation this is data rather than a
    failure; while building the dependency graph it means the package listing
    and the registry disagree.
    """

    def __init__(self, reference: str, message: Optional[str] = None):
        self.reference = reference
        super().__init__(message or f"manifest not found: {reference}")


class PackageNotFoundError(KeyError):
    """Raised when a digest is not part of the loaded package listing"""

    def __init__(self, digest: str):
        self.digest = digest
        super().__init__(digest)

    def __str__(self) -> str:
        return f"package version not found for digest {self.digest}"


class GraphInconsistencyError(ActionableError):
    """Raised when a known package digest has no manifest in the registry"""


def create_registry_auth_error(registry_url: str, error: Exception) -> RegistryAuthError:
    """Create actionable error for registry authentication failures"""
    return RegistryAuthError(
        message=f"Failed to authenticate with container registry at {registry_url}",
        category=ErrorCategory.AUTHENTICATION,
        suggestions=[
            "Verify the GitHub token is set (GITHUB_TOKEN, --token or github.token in the config file)",
            "Check the token has the read:packages, write:packages and delete:packages scopes",
            "Verify the token hasn't expired or been revoked",
            "For organisation packages, check the token is authorised for SSO if the organisation enforces it",
        ],
        details={
            "registry_url": registry_url,
            "error_type": type(error).__name__,
            "error_message": str(error),
        },
    )


def create_registry_connection_error(registry_url: str, error: Exception) -> ActionableError:
    """Create actionable error for registry connection failures"""
    error_str = str(error).lower()

    suggestions = [
        f"Verify the registry URL is correct: {registry_url}",
        "Check network connectivity to the registry",
        "Retry the run; the registry may be temporarily unavailable",
    ]

    if "timeout" in error_str or "timed out" in error_str:
        suggestions.insert(1, "Increase retry.timeout in the config file")

    return ActionableError(
        message=f"Failed to talk to container registry at {registry_url}",
        category=ErrorCategory.CONNECTION,
        suggestions=suggestions,
        details={
            "registry_url": registry_url,
            "error_type": type(error).__name__,
            "error_message": str(error),
        },
    )


def create_github_api_error(operation: str, status_code: Optional[int], error: Exception) -> ActionableError:
    """Create actionable error for GitHub packages API failures"""
    suggestions = [
        "Verify the owner, repository and package names are correct",
        "Check the token has the read:packages and delete:packages scopes",
    ]

    category = ErrorCategory.UNKNOWN
    if status_code in (401, 403):
        category = ErrorCategory.PERMISSION
        suggestions.insert(0, "Check the token has admin access to the package")
    elif status_code == 404:
        category = ErrorCategory.RESOURCE
        suggestions.insert(0, "Verify the package exists and is visible to the token")
    elif status_code is None or status_code >= 500:
        category = ErrorCategory.CONNECTION
        suggestions.insert(0, "Check https://www.githubstatus.com for ongoing incidents")

    return ActionableError(
        message=f"GitHub API operation failed: {operation}",
        category=category,
        suggestions=suggestions,
        details={
            "operation": operation,
            "status_code": status_code,
            "error_type": type(error).__name__,
            "error_message": str(error),
        },
    )


def create_rate_limit_error(operation: str, retry_after: Optional[float] = None) -> ActionableError:
    """Create actionable error for rate limiting"""
    suggestions = [
        "Wait for the rate limit window to reset before retrying",
        "Run the cleanup less frequently or for fewer packages per run",
    ]

    if retry_after:
        suggestions.insert(0, f"Wait {retry_after:.1f} seconds before retrying")

    return ActionableError(
        message=f"Rate limit exceeded for operation: {operation}",
        category=ErrorCategory.RATE_LIMIT,
        suggestions=suggestions,
        details={
            "operation": operation,
            "retry_after": retry_after,
        },
    )
