"""
Per-device persistence of the ``{token, sequence}`` pair.

Persistence is an optimization: a lost or corrupt file only costs one extra
authenticate round trip.  Every method therefore fails soft and never
raises.  There is no locking; two processes sharing a device id and cache
dir race and the last writer wins.

File layout (``<cache_dir>/gscf-<device_id>.json``)::

    {"format": "gscf-session", "version": 1, "token": "abc", "sequence": 42}
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from .config import (
    DEFAULT_CACHE_DIR,
    SESSION_FILE_TEMPLATE,
    SESSION_FORMAT,
    SESSION_FORMAT_VERSION,
)
from .session import SessionState

logger = logging.getLogger(__name__)


class SessionStore:
    def __init__(self, cache_dir: Path = DEFAULT_CACHE_DIR):
        self.cache_dir = Path(cache_dir)

    def path_for(self, device_id: str) -> Path:
        return self.cache_dir / SESSION_FILE_TEMPLATE.format(device_id=device_id)

    def load(self, device_id: str) -> SessionState | None:
        """
        Restore the session saved for ``device_id``.

        Returns:
            The saved ``SessionState``, or ``None`` if the file is missing,
            unreadable, or does not hold a valid versioned record.
        """
        path = self.path_for(device_id)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.debug("session file %s unreadable: %s", path, exc)
            return None

        try:
            record = json.loads(text)
        except ValueError:
            logger.warning("ignoring corrupt session file %s", path)
            return None

        state = _state_from_record(record)
        if state is None:
            logger.warning("ignoring session file %s with an unrecognized layout", path)
            return None

        logger.debug("restored session for device %s at sequence %d", device_id, state.sequence)
        return state

    def save(self, device_id: str, state: SessionState) -> bool:
        """
        Write ``state`` for ``device_id``; best-effort.

        Returns:
            ``True`` if written, ``False`` if the write was skipped.
        """
        path = self.path_for(device_id)
        record = {
            "format": SESSION_FORMAT,
            "version": SESSION_FORMAT_VERSION,
            "token": state.token,
            "sequence": state.sequence,
        }
        try:
            path.write_text(json.dumps(record), encoding="utf-8")
        except OSError as exc:
            logger.debug("session file %s not writable, skipping save: %s", path, exc)
            return False
        return True

    def clear(self, device_id: str) -> None:
        """Remove the saved session for ``device_id`` if there is one."""
        try:
            self.path_for(device_id).unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.debug("could not remove session file: %s", exc)


def _state_from_record(record: object) -> SessionState | None:
    if not isinstance(record, dict):
        return None
    if record.get("format") != SESSION_FORMAT or record.get("version") != SESSION_FORMAT_VERSION:
        return None

    token = record.get("token")
    sequence = record.get("sequence")
    if not isinstance(token, str) or not token:
        return None
    if isinstance(sequence, bool) or not isinstance(sequence, int) or sequence < 0:
        return None

    return SessionState(token=token, sequence=sequence)
