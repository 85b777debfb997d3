"""
Error taxonomy shared by the client core and the server.

    BaristaError
      ├── AuthError            bad credentials, expired / rejected token
      ├── NetworkError         transport failure, timeout, 5xx
      ├── ConfigurationError   module missing from the permission matrix
      ├── ProtocolError        malformed realtime frame
      └── CorruptSessionError  unreadable persisted session
"""

from typing import Any, Dict, Optional

INVALID_CREDENTIALS = "Invalid credentials"


class BaristaError(Exception):
    """Base class for every error raised by this package."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class AuthError(BaristaError):
    """Raised when the server refuses credentials or a token."""

    def __init__(
        self,
        message: str = INVALID_CREDENTIALS,
        status_code: Optional[int] = 401,
        **kwargs,
    ):
        self.status_code = status_code
        super().__init__(message, error_code="AUTH_ERROR", **kwargs)


class NetworkError(BaristaError):
    """Raised when a request could not complete (connect, timeout, 5xx)."""

    def __init__(self, message: str = "Network request failed", **kwargs):
        super().__init__(message, error_code="NETWORK_ERROR", **kwargs)


class ConfigurationError(BaristaError):
    """Raised when the permission matrix lacks an entry."""

    def __init__(self, role: str, module: str):
        message = f"Permission matrix has no entry for module '{module}' under role '{role}'"
        super().__init__(
            message,
            error_code="CONFIGURATION_ERROR",
            details={"role": role, "module": module},
        )


class ProtocolError(BaristaError):
    """Raised when a realtime frame cannot be decoded into an envelope."""

    def __init__(self, message: str, raw: Optional[str] = None):
        details = {"raw": raw[:200]} if raw else {}
        super().__init__(message, error_code="PROTOCOL_ERROR", details=details)


class CorruptSessionError(BaristaError):
    """Raised when the persisted session record cannot be parsed."""

    def __init__(self, message: str = "Stored session is corrupt"):
        super().__init__(message, error_code="CORRUPT_SESSION")
