"""
API client: one logical call, with one-shot resynchronization.

Per-call state machine::

    Unauthenticated --authenticate--> Authenticated
    Authenticated   --401----------> Retrying
    Retrying        --resync-------> Authenticated   (call replayed once)
    Retrying        --401 again----> Failed          (UnauthorizedAfterRetry)

A 401 usually means the client and server sequences drifted apart (another
process used the same device id, or a saved session went stale).  Only the
``SessionState`` outlives a call; it is shared by all calls of one client.
"""

from __future__ import annotations

import logging
from typing import Any

from .cache import ResponseCache
from .config import PERSIST_ON_CHANGE, ClientConfig
from .errors import ServerUnavailable, UnauthorizedAfterRetry, UnexpectedResponse, UnexpectedStatus
from .identity import DeviceIdentity
from .session import AuthSession, Credentials
from .store import SessionStore
from .transport import build_service_url, post_form
from .validator import RequestValidator, validation_hash

logger = logging.getLogger(__name__)


class ApiClient:
    """
    Issues validated calls against a GSCF server.

    Nothing touches the network or the disk until the first call.

    Usage:
        config = ClientConfig(
            base_url="https://studies.example.com",
            username="alice", password="secret", api_key="k1",
        )
        with ApiClient(config) as client:
            studies = client.call("getStudies")
    """

    def __init__(self, config: ClientConfig):
        self.config = config.validate()
        self.credentials = Credentials(
            username=self.config.username,
            password=self.config.password,
            api_key=self.config.api_key,
        )
        self.identity = DeviceIdentity(
            self.config.username,
            cache_dir=self.config.cache_dir,
            override=self.config.device_id,
        )
        self.store = SessionStore(self.config.cache_dir)
        self.cache = ResponseCache()
        self._validator: RequestValidator | None = None

    @classmethod
    def from_env(cls) -> ApiClient:
        return cls(ClientConfig.from_env())

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    def __enter__(self) -> ApiClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        """Save the session (best-effort) so the next process can resume it."""
        if self._validator is not None:
            self._validator.persist()

    # -----------------------------------------------------------------------
    # Session plumbing
    # -----------------------------------------------------------------------

    @property
    def device_id(self) -> str:
        return self.identity.derive()

    @property
    def validator(self) -> RequestValidator:
        if self._validator is None:
            auth = AuthSession(
                self.config.base_url,
                self.credentials,
                self.device_id,
                timeout=self.config.timeout,
            )
            self._validator = RequestValidator(
                auth,
                self.store,
                persist_each_change=self.config.persist == PERSIST_ON_CHANGE,
            )
        return self._validator

    def authenticate(self) -> None:
        """Force a fresh authenticate, replacing any held session."""
        self.validator.resync()

    # -----------------------------------------------------------------------
    # Calls
    # -----------------------------------------------------------------------

    def build_payload(self, args: dict | None = None) -> dict:
        """
        Resolve the session, advance the sequence and build the form body.

        Caller arguments are merged over ``deviceID`` and ``validation``.
        """
        validator = self.validator
        token = validator.resolve_token()
        sequence = validator.next_sequence()

        payload = {
            "deviceID": self.device_id,
            "validation": validation_hash(token, sequence, self.credentials.api_key),
        }
        payload.update(args or {})
        return payload

    def call(self, service: str, args: dict | None = None) -> Any:
        """
        Call ``service`` and return its decoded JSON body.

        On a 401 the session is resynchronized once and the call replayed.

        Args:
            service: API service name (e.g. ``'getStudies'``).
            args: Service arguments sent alongside the validation fields.

        Returns:
            Decoded JSON response.

        Raises:
            UnauthorizedAfterRetry: 401 again after resynchronizing.
            ServerUnavailable: 404.
            UnexpectedStatus: Any other non-200 status.
            UnexpectedResponse: 200 with a body that is not JSON.
            TransportUnavailable: The server could not be reached.
            AuthenticationFailed, Conflict: Raised by the resync itself.
        """
        url = build_service_url(self.config.base_url, service)
        retry = False

        while True:
            payload = self.build_payload(args)
            logger.debug(
                "calling %s (sequence %d%s)",
                service,
                self.validator.state.sequence,
                ", retry" if retry else "",
            )
            response = post_form(url, payload, timeout=self.config.timeout)
            status = response.status_code

            if status == 200:
                try:
                    return response.json()
                except ValueError as exc:
                    raise UnexpectedResponse(f"response from '{service}' is not JSON: {exc}") from exc

            if status == 401:
                if retry:
                    raise UnauthorizedAfterRetry(service)
                self.validator.resync()
                retry = True
                continue

            if status == 404:
                raise ServerUnavailable(self.config.base_url)

            raise UnexpectedStatus(status)
