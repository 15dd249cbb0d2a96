"""
Exception taxonomy for the GSCF client.

Every terminal failure surfaces as a distinct subclass of ``GSCFError`` so
callers can branch on the failure kind.  Each exception also carries a
string ``code`` (one of the ``ErrorCode`` constants) for logging and for
callers that prefer to dispatch on a value rather than a type.
"""

from __future__ import annotations


class ErrorCode:
    """Error code constants attached to every ``GSCFError``."""

    TRANSPORT_UNAVAILABLE = "transport_unavailable"
    AUTHENTICATION_FAILED = "authentication_failed"
    SERVER_UNAVAILABLE = "server_unavailable"
    CONFLICT = "conflict"
    UNEXPECTED_STATUS = "unexpected_status"
    UNAUTHORIZED_AFTER_RETRY = "unauthorized_after_retry"
    UNEXPECTED_RESPONSE = "unexpected_response"
    CONFIGURATION_ERROR = "configuration_error"


class GSCFError(Exception):
    """Base exception for all GSCF client errors."""

    def __init__(self, message: str, code: str = "gscf_error"):
        super().__init__(message)
        self.code = code
        self.message = message


class TransportUnavailable(GSCFError):
    """The host could not be reached at the transport level."""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.TRANSPORT_UNAVAILABLE)


class AuthenticationFailed(GSCFError):
    """Bad credentials, or the account lacks the client role."""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.AUTHENTICATION_FAILED)


class ServerUnavailable(GSCFError):
    """The server answered 404 for the API endpoint."""

    def __init__(self, url: str):
        super().__init__(f"the server appears to be down at {url}", ErrorCode.SERVER_UNAVAILABLE)
        self.url = url


class Conflict(GSCFError):
    """Authentication was refused with a structured 409 error."""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.CONFLICT)


class UnexpectedStatus(GSCFError):
    """The server replied with a status code outside the protocol."""

    def __init__(self, status_code: int):
        super().__init__(
            f"server replied with an unexpected status code {status_code}",
            ErrorCode.UNEXPECTED_STATUS,
        )
        self.status_code = status_code


class UnauthorizedAfterRetry(GSCFError):
    """A call was still rejected with 401 after re-authenticating."""

    def __init__(self, service: str):
        super().__init__(f"Unauthorized api call to '{service}'", ErrorCode.UNAUTHORIZED_AFTER_RETRY)
        self.service = service


class UnexpectedResponse(GSCFError):
    """A 200 response whose body could not be decoded as expected."""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.UNEXPECTED_RESPONSE)


class ConfigurationError(GSCFError):
    """Required configuration is missing or the device id cannot be derived."""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR)
