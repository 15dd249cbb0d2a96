"""Process-lifetime read-through cache for API responses."""

from __future__ import annotations

import logging
from typing import Any, Callable, Hashable

logger = logging.getLogger(__name__)


class ResponseCache:
    """
    Maps ``(service_name, parameter_key)`` to a raw response.

    No expiry; entries live until ``clear()`` or the end of the process.
    A fetch that raises is not cached.
    """

    def __init__(self):
        self._entries: dict[tuple[str, Hashable], Any] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: tuple[str, Hashable]) -> bool:
        return key in self._entries

    def get_or_fetch(
        self,
        service_name: str,
        parameter_key: Hashable,
        fetch: Callable[[], Any],
    ) -> Any:
        key = (service_name, parameter_key)
        if key in self._entries:
            logger.debug("cache hit for %s %r", service_name, parameter_key)
            return self._entries[key]

        result = fetch()
        self._entries[key] = result
        return result

    def clear(self) -> None:
        self._entries.clear()
