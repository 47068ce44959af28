"""
Error Taxonomy

Every failure the engine can foresee is raised as one of these types:
- ConfigurationError: missing/invalid credentials or parameters
- BackendTimeoutError: a back end exceeded its deadline
- BackendUnavailableError: network/service failure or malformed response
- ValidationError: input record set empty or malformed
- UnknownClientError: no directory match for an identifier
"""

from typing import Optional


class InsightsError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str, mode: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.mode = mode

    def __str__(self) -> str:
        if self.mode:
            return f"[{self.mode}] {self.message}"
        return self.message


class ConfigurationError(InsightsError):
    """Missing or invalid credentials/parameters for a selected back end."""


class BackendTimeoutError(InsightsError, TimeoutError):
    """A back end exceeded its configured deadline."""

    def __init__(self, message: str, mode: Optional[str] = None, timeout_ms: Optional[int] = None):
        super().__init__(message, mode)
        self.timeout_ms = timeout_ms


class BackendUnavailableError(InsightsError):
    """Network or service failure, including a malformed response."""


class ValidationError(InsightsError):
    """Input record set is empty or malformed."""


class UnknownClientError(InsightsError):
    """No directory entry matches the given identifier."""

    def __init__(self, identifier: str):
        super().__init__(f"No client matches identifier: {identifier!r}")
        self.identifier = identifier
