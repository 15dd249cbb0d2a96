"""
HTTP transport: a single POST helper over ``requests``.

Status codes are not interpreted here; callers dispatch on
``response.status_code`` themselves.  Every exception raised by ``requests``
(unreachable host, timeout, redirect loop, bad URL) is translated into
``TransportUnavailable``.
"""

from __future__ import annotations

import logging

import requests

from .config import API_ENDPOINT, USER_AGENT
from .errors import TransportUnavailable

logger = logging.getLogger(__name__)


def build_service_url(base_url: str, service: str) -> str:
    """
    Return ``<base_url>/api/<service>``.

    Args:
        base_url: Server base URL without a trailing slash.
        service: API service name (e.g. ``'getStudies'``).
    """
    return f"{base_url}/{API_ENDPOINT}/{service}"


def post_form(
    url: str,
    fields: dict,
    timeout: float,
    auth: tuple[str, str] | None = None,
) -> requests.Response:
    """
    POST ``fields`` form-encoded to ``url`` and return the raw response.

    Redirects are followed.  ``auth`` is sent as HTTP Basic credentials.

    Args:
        url: Full endpoint URL.
        fields: Form fields for the request body.
        timeout: Seconds before the request is abandoned.
        auth: Optional ``(username, password)`` pair.

    Returns:
        The ``requests.Response``, whatever its status code.

    Raises:
        TransportUnavailable: Any failure inside ``requests``: connection
            refused, timeout, redirect loop, malformed URL, broken body.
    """
    try:
        return requests.post(
            url,
            data=fields,
            auth=auth,
            headers={"User-Agent": USER_AGENT},
            timeout=timeout,
            allow_redirects=True,
        )
    except requests.RequestException as exc:
        logger.debug("transport failure posting to %s: %s", url, exc)
        raise TransportUnavailable(f"could not reach {url}: {exc}") from exc
