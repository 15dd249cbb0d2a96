"""
Session state and the authenticate handshake.

``authenticate`` is the only place credentials leave the process: the
username and password travel as HTTP Basic auth, which is merely base64
encoded.  It is therefore called only when no session exists yet or when
the client and server have fallen out of sync; every other call proves
possession of the session through the validation hash instead.  Use an
``https://`` base URL.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .config import AUTHENTICATE_SERVICE, REQUEST_TIMEOUT_SECONDS
from .errors import (
    AuthenticationFailed,
    Conflict,
    ServerUnavailable,
    UnexpectedResponse,
    UnexpectedStatus,
)
from .transport import build_service_url, post_form

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credentials:
    username: str
    password: str
    api_key: str

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password='***', api_key='***')"


@dataclass
class SessionState:
    """
    The ``{token, sequence}`` pair issued by the server.

    Single writer: only the owning ``RequestValidator`` mutates an
    instance, via ``advance()`` or by replacing it after authentication.
    """

    token: str
    sequence: int

    def advance(self) -> int:
        """Increment the sequence by one and return the new value."""
        self.sequence += 1
        return self.sequence


def parse_session_payload(payload: object) -> SessionState:
    """
    Build a ``SessionState`` from a decoded authenticate response body.

    Raises:
        UnexpectedResponse: ``token`` is not a non-empty string or
            ``sequence`` is not a non-negative integer.
    """
    if not isinstance(payload, dict):
        raise UnexpectedResponse("authenticate response is not a JSON object")

    token = payload.get("token")
    sequence = payload.get("sequence")

    if not isinstance(token, str) or not token:
        raise UnexpectedResponse("authenticate response carries no token")
    # bool is an int subclass; reject it explicitly
    if isinstance(sequence, bool) or not isinstance(sequence, int) or sequence < 0:
        raise UnexpectedResponse(f"authenticate response carries an invalid sequence: {sequence!r}")

    return SessionState(token=token, sequence=sequence)


class AuthSession:
    """Performs the authenticate handshake for one device/user pair."""

    def __init__(
        self,
        base_url: str,
        credentials: Credentials,
        device_id: str,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
    ):
        self.base_url = base_url
        self.credentials = credentials
        self.device_id = device_id
        self.timeout = timeout

    @property
    def url(self) -> str:
        return build_service_url(self.base_url, AUTHENTICATE_SERVICE)

    def authenticate(self) -> SessionState:
        """
        Exchange credentials and device id for a fresh session.

        No retry is attempted; callers decide whether to try again.

        Returns:
            The new ``SessionState``.

        Raises:
            AuthenticationFailed: 401; bad password or no ROLE_CLIENT.
            ServerUnavailable: 404.
            Conflict: 409, carrying the server's ``error`` message.
            UnexpectedStatus: Any other non-200 status.
            UnexpectedResponse: 200 with an unusable body.
            TransportUnavailable: The server could not be reached.
        """
        username = self.credentials.username
        logger.info("authenticating user '%s' against %s", username, self.base_url)

        response = post_form(
            self.url,
            {"deviceID": self.device_id},
            timeout=self.timeout,
            auth=(username, self.credentials.password),
        )
        status = response.status_code

        if status == 401:
            raise AuthenticationFailed(
                f"password for user '{username}' is invalid or user is not "
                f"authorized to use the api at {self.base_url} "
                "(has ROLE_CLIENT been assigned to the user?)"
            )
        if status == 404:
            raise ServerUnavailable(self.base_url)
        if status == 409:
            raise Conflict(_conflict_message(response))
        if status != 200:
            raise UnexpectedStatus(status)

        try:
            payload = response.json()
        except ValueError as exc:
            raise UnexpectedResponse(f"authenticate response is not JSON: {exc}") from exc

        state = parse_session_payload(payload)
        logger.debug("authenticated; server sequence is %d", state.sequence)
        return state


def _conflict_message(response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or "conflict"
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return "conflict"
