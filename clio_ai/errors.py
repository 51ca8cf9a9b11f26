# errors.py
from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    # provider layer
    AUTH_ERROR = "AuthError"
    RATE_LIMITED = "RateLimited"
    PROVIDER_UNAVAILABLE = "ProviderUnavailable"
    PROVIDER_UNREACHABLE = "ProviderUnreachable"
    TIMEOUT = "Timeout"
    PROVIDER_REJECTED = "ProviderRejected"
    # action parsing
    PARSE_ERROR = "ParseError"
    SKIPPED = "Skipped"
    # filesystem
    PATH_ESCAPE = "PathEscape"
    ALREADY_EXISTS = "AlreadyExists"
    NOT_FOUND = "NotFound"
    PATCH_MISMATCH = "PatchMismatch"
    IO_FAILURE = "IOFailure"
    # collaborators / session
    CONFIG_MISSING = "ConfigMissing"
    BUSY = "Busy"

    def __str__(self) -> str:
        return self.value


class ClioError(Exception):
    """Base class for every error the agent reports to the user."""

    kind: ErrorKind = ErrorKind.IO_FAILURE

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# ---------------- provider layer ----------------

class ProviderError(ClioError):
    """A request to an inference backend failed."""

    kind = ErrorKind.PROVIDER_REJECTED
    retryable = False

    def __init__(self, message: str, *, provider: str = "", status: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.status = status


class AuthError(ProviderError):
    kind = ErrorKind.AUTH_ERROR


class RateLimited(ProviderError):
    kind = ErrorKind.RATE_LIMITED
    retryable = True

    def __init__(self, message: str, *, provider: str = "", status: Optional[int] = 429,
                 retry_after: Optional[float] = None):
        super().__init__(message, provider=provider, status=status)
        self.retry_after = retry_after


class ProviderUnavailable(ProviderError):
    kind = ErrorKind.PROVIDER_UNAVAILABLE
    retryable = True


class ProviderUnreachable(ProviderError):
    kind = ErrorKind.PROVIDER_UNREACHABLE
    retryable = True


class ProviderTimeout(ProviderError):
    kind = ErrorKind.TIMEOUT


class ProviderRejected(ProviderError):
    kind = ErrorKind.PROVIDER_REJECTED


class ConfigMissing(ProviderError):
    """A provider was invoked without the configuration it needs (e.g. an API key)."""

    kind = ErrorKind.CONFIG_MISSING

    def __init__(self, key: str, *, provider: str = ""):
        super().__init__(
            f"{key} is not set; add it to your environment or a .env file (see /config).",
            provider=provider,
        )
        self.key = key


# ---------------- parsing / session ----------------

class ParseError(ClioError):
    kind = ErrorKind.PARSE_ERROR


class ModelNotFound(ClioError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, model_id: str, available: Optional[list] = None):
        avail = ", ".join(available or [])
        msg = f"Model '{model_id}' not found."
        if avail:
            msg += f" Available: {avail}"
        super().__init__(msg)
        self.model_id = model_id


class BusyError(ClioError):
    kind = ErrorKind.BUSY

    def __init__(self, message: str = "A request is already in progress; wait for it to finish."):
        super().__init__(message)
