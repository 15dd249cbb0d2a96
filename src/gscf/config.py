"""
Client configuration, wire constants, and environment variable names.

All constants used across the gscf modules are centralized here so that
config is separated from protocol logic.  ``ClientConfig`` is the single
configuration surface a caller fills in before the first API call.
"""

from __future__ import annotations

import os
import re
import tempfile
from dataclasses import dataclass, replace
from pathlib import Path
from urllib.parse import urlparse

from .errors import ConfigurationError

# ---------------------------------------------------------------------------
# Wire constants
# ---------------------------------------------------------------------------

CLIENT_VERSION = "0.1"
USER_AGENT = f"GSCF-PythonClient version {CLIENT_VERSION}"

# Path segment between the base URL and the service name:
#   <base_url>/<API_ENDPOINT>/<service>
API_ENDPOINT = "api"
AUTHENTICATE_SERVICE = "authenticate"

REQUEST_TIMEOUT_SECONDS: float = 60  # HTTP request timeout

# ---------------------------------------------------------------------------
# On-disk records
# ---------------------------------------------------------------------------

# Default cache location: the OS temp dir (/tmp on *nix, %TEMP% on Windows)
DEFAULT_CACHE_DIR = Path(tempfile.gettempdir())

SESSION_FILE_TEMPLATE = "gscf-{device_id}.json"
SESSION_FORMAT = "gscf-session"
SESSION_FORMAT_VERSION = 1

MAC_CACHE_FILENAME = "macaddress.json"
MAC_CACHE_FORMAT = "gscf-macaddress"
MAC_CACHE_FORMAT_VERSION = 1

# ---------------------------------------------------------------------------
# Hardware address lookup, per platform.system() prefix
# ---------------------------------------------------------------------------
#
# Each entry: (command argv, label regex preceding the address in its output)

MAC_LOOKUP_COMMANDS: dict[str, tuple[list[str], str]] = {
    "windows": (["ipconfig", "/all"], r"Physical Address"),
    "darwin": (["/sbin/ifconfig", "en0"], r"ether"),
    "linux": (["/sbin/ifconfig", "eth0"], r"(?:HWaddr|ether)"),
}
MAC_LOOKUP_TIMEOUT_SECONDS: float = 5

# ---------------------------------------------------------------------------
# Session persistence policy
# ---------------------------------------------------------------------------

PERSIST_ON_CHANGE = "on_change"  # save after every sequence/token mutation
PERSIST_ON_CLOSE = "on_close"    # save once, when the client is closed
PERSIST_POLICIES: frozenset[str] = frozenset({PERSIST_ON_CHANGE, PERSIST_ON_CLOSE})

# ---------------------------------------------------------------------------
# Accepted values
# ---------------------------------------------------------------------------

URL_SCHEMES: frozenset[str] = frozenset({"http", "https"})

# An explicit device id becomes part of the session file name
DEVICE_ID_PATTERN = re.compile(r"[A-Za-z0-9_.-]+")

# ---------------------------------------------------------------------------
# Environment variables read by ClientConfig.from_env()
# ---------------------------------------------------------------------------

ENV_URL = "GSCF_URL"
ENV_USERNAME = "GSCF_USERNAME"
ENV_PASSWORD = "GSCF_PASSWORD"
ENV_API_KEY = "GSCF_API_KEY"
ENV_CACHE_DIR = "GSCF_CACHE_DIR"
ENV_DEVICE_ID = "GSCF_DEVICE_ID"
ENV_TIMEOUT = "GSCF_TIMEOUT"
ENV_PERSIST = "GSCF_PERSIST"


@dataclass(frozen=True)
class ClientConfig:
    """
    Everything the client needs before its first call.

    ``username`` must belong to an account with ROLE_CLIENT on the server,
    otherwise authentication fails with a 401.
    """

    base_url: str
    username: str
    password: str
    api_key: str
    cache_dir: Path = DEFAULT_CACHE_DIR
    device_id: str | None = None
    timeout: float = REQUEST_TIMEOUT_SECONDS
    persist: str = PERSIST_ON_CHANGE

    def validate(self) -> ClientConfig:
        """
        Check required fields and normalise the base URL and cache dir.

        Returns:
            A new ``ClientConfig`` with trailing slashes stripped from
            ``base_url`` and ``cache_dir`` coerced to ``Path``.

        Raises:
            ConfigurationError: A required field is empty, ``base_url`` is
                not an http(s) URL with a host, ``device_id`` is not a plain
                file-name-safe token, the timeout is not positive, or
                ``persist`` is not a known policy.
        """
        for name in ("base_url", "username", "password", "api_key"):
            if not getattr(self, name):
                raise ConfigurationError(f"'{name}' must be set before the first call")

        parsed = urlparse(self.base_url)
        if parsed.scheme.lower() not in URL_SCHEMES or not parsed.netloc:
            raise ConfigurationError(
                f"base_url must be an http:// or https:// URL, got {self.base_url!r}"
            )

        if self.device_id is not None and (
            not DEVICE_ID_PATTERN.fullmatch(self.device_id) or ".." in self.device_id
        ):
            raise ConfigurationError(
                f"device_id may only contain letters, digits, '.', '_' and '-' "
                f"(and no '..'), got {self.device_id!r}"
            )

        if self.timeout <= 0:
            raise ConfigurationError(f"timeout must be positive, got {self.timeout!r}")

        if self.persist not in PERSIST_POLICIES:
            raise ConfigurationError(
                f"Unknown persistence policy '{self.persist}'. "
                f"Expected one of: {sorted(PERSIST_POLICIES)}"
            )

        return replace(
            self,
            base_url=self.base_url.rstrip("/"),
            cache_dir=Path(self.cache_dir),
        )

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> ClientConfig:
        """
        Build a validated config from ``GSCF_*`` environment variables.

        Args:
            environ: Mapping to read from; defaults to ``os.environ``.

        Returns:
            Validated ``ClientConfig``.

        Raises:
            ConfigurationError: A required variable is unset, or
                ``GSCF_TIMEOUT`` is not a number, or a value fails ``validate()``.
        """
        env = os.environ if environ is None else environ

        def required(var: str) -> str:
            value = env.get(var)
            if not value:
                raise ConfigurationError(
                    f"Configuration not found. Set the '{var}' environment variable."
                )
            return value

        raw_timeout = env.get(ENV_TIMEOUT)
        try:
            timeout = float(raw_timeout) if raw_timeout else REQUEST_TIMEOUT_SECONDS
        except ValueError as exc:
            raise ConfigurationError(
                f"'{ENV_TIMEOUT}' must be a number of seconds, got {raw_timeout!r}"
            ) from exc

        config = cls(
            base_url=required(ENV_URL),
            username=required(ENV_USERNAME),
            password=required(ENV_PASSWORD),
            api_key=required(ENV_API_KEY),
            cache_dir=Path(env.get(ENV_CACHE_DIR) or DEFAULT_CACHE_DIR),
            device_id=env.get(ENV_DEVICE_ID) or None,
            timeout=timeout,
            persist=env.get(ENV_PERSIST) or PERSIST_ON_CHANGE,
        )
        return config.validate()
