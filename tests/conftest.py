"""
Shared pytest fixtures for the GSCF client tests.

HTTP is never touched: every test patches ``gscf.transport.requests.post``
and feeds it a scripted list of fake responses, one per expected request.
"""

from __future__ import annotations

import hashlib
from unittest.mock import MagicMock, patch

import pytest

from gscf.config import ClientConfig


BASE_URL = "http://studies.example.com"
DEVICE_ID = "device-1"


def md5(text: str) -> str:
    return hashlib.md5(text.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Fake responses
# ---------------------------------------------------------------------------

def make_response(status_code: int, body=None, text: str = "") -> MagicMock:
    """Build a stand-in for ``requests.Response``; ``body=None`` means not JSON."""
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    if body is None:
        response.json.side_effect = ValueError("No JSON object could be decoded")
    else:
        response.json.return_value = body
    return response


def auth_ok(token: str = "abc", sequence: int = 1) -> MagicMock:
    return make_response(200, {"token": token, "sequence": sequence})


@pytest.fixture
def mock_post():
    """Patch the transport's ``requests.post``; set ``side_effect`` per test."""
    with patch("gscf.transport.requests.post") as post:
        yield post


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@pytest.fixture
def config(tmp_path) -> ClientConfig:
    """Config with an explicit device id and an isolated cache dir."""
    return ClientConfig(
        base_url=BASE_URL,
        username="alice",
        password="secret",
        api_key="k1",
        cache_dir=tmp_path,
        device_id=DEVICE_ID,
    )
