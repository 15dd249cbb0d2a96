"""
Token/sequence resolution and the per-call validation hash.

The server predicts the next sequence for each device, so every call must
carry ``md5(token + sequence + api_key)`` for a sequence one higher than the
last one it saw.  ``RequestValidator`` owns the in-memory ``SessionState``
and is its only writer.
"""

from __future__ import annotations

import hashlib
import logging

from .session import AuthSession, SessionState
from .store import SessionStore

logger = logging.getLogger(__name__)


def validation_hash(token: str, sequence: int, api_key: str) -> str:
    """
    Compute the validation digest for one call.

    Pure: depends on its three arguments only.

    Args:
        token: Session token from authenticate.
        sequence: Sequence number used for this call.
        api_key: The user's API key.

    Returns:
        32-character lowercase hex md5 digest.
    """
    raw = f"{token}{int(sequence)}{api_key}"
    return hashlib.md5(raw.encode("utf-8")).hexdigest()


class RequestValidator:
    """
    Lazily resolves the session and hands out sequence numbers.

    Resolution order when nothing is held in memory: the session store,
    then a fresh authenticate.  With ``persist_each_change`` the store is
    updated after every mutation; otherwise the owner calls ``persist()``.
    """

    def __init__(
        self,
        auth: AuthSession,
        store: SessionStore,
        persist_each_change: bool = True,
    ):
        self.auth = auth
        self.store = store
        self.persist_each_change = persist_each_change
        self._state: SessionState | None = None

    @property
    def device_id(self) -> str:
        return self.auth.device_id

    @property
    def state(self) -> SessionState | None:
        return self._state

    def resolve_token(self) -> str:
        return self._ensure_state().token

    def next_sequence(self) -> int:
        """Advance the sequence by one and return the post-increment value."""
        sequence = self._ensure_state().advance()
        self._changed()
        return sequence

    def resync(self) -> SessionState:
        """
        Re-authenticate unconditionally and replace the held session.

        Authentication errors propagate untouched.
        """
        logger.info("client out of sync with server, re-authenticating device %s", self.device_id)
        self._state = self.auth.authenticate()
        self._changed()
        return self._state

    def persist(self) -> bool:
        """Save the held session, if any.  Returns whether it was written."""
        if self._state is None:
            return False
        return self.store.save(self.device_id, self._state)

    def _ensure_state(self) -> SessionState:
        if self._state is None:
            restored = self.store.load(self.device_id)
            if restored is not None:
                self._state = restored
            else:
                self._state = self.auth.authenticate()
                self._changed()
        return self._state

    def _changed(self) -> None:
        if self.persist_each_change:
            self.persist()
