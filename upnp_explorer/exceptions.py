"""
Control point error taxonomy.

Every I/O boundary converts failures into one of these types. The
ControlPoint returns them to callers as values instead of raising.
"""

from typing import Any, Optional


def _describe(cause: Any) -> str:
    """Readable text for a cause, including exceptions with no message."""
    if isinstance(cause, BaseException):
        return str(cause) or type(cause).__name__
    return str(cause)


class ControlPointError(Exception):
    """Base class for all control point failures."""

    code = "error"

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON payload."""
        return {"code": self.code, "message": self.message}


class DiscoveryError(ControlPointError):
    """SSDP multicast/network failure or a malformed response."""

    code = "discovery_error"


class ResolutionError(ControlPointError):
    """Device descriptor could not be fetched or parsed."""

    code = "resolution_error"

    def __init__(self, location: str, cause: Any):
        self.location = location
        super().__init__(
            f"Failed to resolve {location}: {_describe(cause)}",
            cause if isinstance(cause, BaseException) else None,
        )


class NotFoundError(ControlPointError):
    """Request references an unknown device or service."""

    code = "not_found"


class CatalogError(ControlPointError):
    """SCPD document could not be fetched or parsed."""

    code = "catalog_error"

    def __init__(self, url: str, cause: Any):
        self.url = url
        super().__init__(
            f"Failed to load action catalog from {url}: {_describe(cause)}",
            cause if isinstance(cause, BaseException) else None,
        )


class InvocationError(ControlPointError):
    """Control call failed at the network or protocol level."""

    code = "invocation_error"

    def __init__(
        self,
        action: str,
        cause: Any,
        error_code: str = "",
        error_description: str = "",
    ):
        self.action = action
        self.error_code = error_code
        self.error_description = error_description
        message = f"{action} failed: {_describe(cause)}"
        if error_code or error_description:
            message += f" (UPnP error {error_code}: {error_description})"
        super().__init__(message, cause if isinstance(cause, BaseException) else None)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.error_code:
            result["upnpErrorCode"] = self.error_code
        if self.error_description:
            result["upnpErrorDescription"] = self.error_description
        return result


class UnsupportedActionError(InvocationError):
    """Action name is not one of the recognized transport actions."""

    code = "unsupported_action"

    def __init__(self, action: str, reason: str = "unsupported action"):
        super().__init__(action, reason)


class InvalidArgumentError(InvocationError):
    """Argument name cannot be encoded as a SOAP element."""

    code = "invalid_argument"

    def __init__(self, action: str, name: str):
        self.name = name
        super().__init__(action, f"invalid argument name {name!r}")


__all__ = [
    "ControlPointError",
    "DiscoveryError",
    "ResolutionError",
    "NotFoundError",
    "CatalogError",
    "InvocationError",
    "UnsupportedActionError",
    "InvalidArgumentError",
]
