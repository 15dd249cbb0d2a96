"""
Device identity derivation.

The device id is ``md5("<address>::<script path>::<username>")`` where
``<address>`` is the machine's hardware network address, or its hostname
when no address can be read.  The server uses the id to look the user up
on subsequent calls, so it must be stable across process restarts for the
same machine, script and user: the session file is keyed on it.

The resolved address is remembered in a small side file in the cache dir
so the OS is interrogated at most once per machine.
"""

from __future__ import annotations

import hashlib
import json
import logging
import platform
import re
import socket
import subprocess
import sys
from pathlib import Path

from .config import (
    DEFAULT_CACHE_DIR,
    MAC_CACHE_FILENAME,
    MAC_CACHE_FORMAT,
    MAC_CACHE_FORMAT_VERSION,
    MAC_LOOKUP_COMMANDS,
    MAC_LOOKUP_TIMEOUT_SECONDS,
)
from .errors import ConfigurationError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def device_fingerprint(address: str, script_path: str, username: str) -> str:
    """
    Hash the (address, script path, username) triple into a device id.

    Args:
        address: Hardware address or hostname.
        script_path: Path of the invoking script.
        username: Configured API username.

    Returns:
        32-character lowercase hex md5 digest.
    """
    raw = f"{address}::{script_path}::{username}"
    return hashlib.md5(raw.encode("utf-8")).hexdigest()


def parse_mac_address(output: str, label: str) -> str | None:
    """
    Find the first hardware address following ``label`` in command output.

    Windows prints ``00-1A-2B-...``; the result is normalised to lowercase
    with ``:`` separators on every platform.

    Args:
        output: Text printed by ``ifconfig`` / ``ipconfig``.
        label: Regex matching the text preceding the address.

    Returns:
        Normalised address, or ``None`` if nothing matched.
    """
    pattern = re.compile(rf"{label}([ |.:]+)([0-9a-f:\-]{{17}})", re.IGNORECASE)
    for line in output.splitlines():
        match = pattern.search(line)
        if match:
            return match.group(2).lower().replace("-", ":")
    return None


def default_script_path() -> str:
    """Absolute path of the running script, or ``'<stdin>'`` when interactive."""
    if sys.argv and sys.argv[0]:
        return str(Path(sys.argv[0]).resolve())
    return "<stdin>"


def lookup_mac_address(system: str | None = None) -> str | None:
    """
    Ask the OS for the primary interface's hardware address.

    Args:
        system: ``platform.system()`` value; detected when omitted.

    Returns:
        Normalised address, or ``None`` if the platform is unknown, the
        command is missing or fails, or its output has no address.
    """
    system = (system or platform.system()).lower()
    entry = next(
        (cmd for prefix, cmd in MAC_LOOKUP_COMMANDS.items() if system.startswith(prefix)),
        MAC_LOOKUP_COMMANDS["linux"],
    )
    argv, label = entry

    try:
        completed = subprocess.run(
            argv,
            capture_output=True,
            text=True,
            timeout=MAC_LOOKUP_TIMEOUT_SECONDS,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        logger.debug("hardware address lookup via %s failed: %s", argv[0], exc)
        return None

    return parse_mac_address(completed.stdout or "", label)


# ---------------------------------------------------------------------------
# DeviceIdentity
# ---------------------------------------------------------------------------

class DeviceIdentity:
    """
    Derives and remembers the device id for one (machine, script, user).

    Usage:
        identity = DeviceIdentity("alice", cache_dir=Path("/tmp"))
        identity.derive()   # computed once, then returned from memory

    An ``override`` bypasses derivation entirely.
    """

    def __init__(
        self,
        username: str,
        cache_dir: Path = DEFAULT_CACHE_DIR,
        override: str | None = None,
        script_path: str | None = None,
    ):
        self.username = username
        self.cache_dir = Path(cache_dir)
        self.script_path = script_path
        self._device_id = override

    @property
    def mac_cache_path(self) -> Path:
        return self.cache_dir / MAC_CACHE_FILENAME

    def derive(self) -> str:
        """
        Return the device id, computing it on first use.

        Raises:
            ConfigurationError: Neither a hardware address nor a hostname
                could be resolved.
        """
        if self._device_id:
            return self._device_id

        address = self.hardware_address()
        script_path = self.script_path or default_script_path()
        self._device_id = device_fingerprint(address, script_path, self.username)
        logger.debug("derived device id %s", self._device_id)
        return self._device_id

    def hardware_address(self) -> str:
        """
        Resolve the address part of the fingerprint.

        Order: side file, OS lookup, hostname.  A freshly resolved value is
        written back to the side file.
        """
        cached = self._read_mac_cache()
        if cached:
            return cached

        address = lookup_mac_address() or socket.gethostname()
        if not address:
            raise ConfigurationError(
                "cannot derive a device id: no hardware address or hostname "
                "could be resolved; set an explicit device id instead"
            )

        self._write_mac_cache(address)
        return address

    def _read_mac_cache(self) -> str | None:
        try:
            data = json.loads(self.mac_cache_path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None

        if (
            not isinstance(data, dict)
            or data.get("format") != MAC_CACHE_FORMAT
            or data.get("version") != MAC_CACHE_FORMAT_VERSION
        ):
            return None

        address = data.get("macAddress")
        return address if isinstance(address, str) and address else None

    def _write_mac_cache(self, address: str) -> None:
        record = {
            "format": MAC_CACHE_FORMAT,
            "version": MAC_CACHE_FORMAT_VERSION,
            "macAddress": address,
        }
        try:
            self.mac_cache_path.write_text(json.dumps(record), encoding="utf-8")
        except OSError as exc:
            logger.warning("could not cache hardware address at %s: %s", self.mac_cache_path, exc)
