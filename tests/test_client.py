"""
Tests for ApiClient.call: request construction, status dispatch, the
one-shot resync on 401, session restoration, and persistence policies.
"""

from __future__ import annotations

import json
from dataclasses import replace

import pytest
import requests

from conftest import BASE_URL, DEVICE_ID, auth_ok, make_response, md5
from gscf.client import ApiClient
from gscf.config import PERSIST_ON_CLOSE, USER_AGENT
from gscf.errors import (
    AuthenticationFailed,
    ConfigurationError,
    GSCFError,
    ServerUnavailable,
    TransportUnavailable,
    UnauthorizedAfterRetry,
    UnexpectedResponse,
    UnexpectedStatus,
)
from gscf.store import SessionStore
from gscf.session import SessionState


def _posted(mock_post, index: int) -> tuple[str, dict]:
    """Return (url, form fields) of the ``index``-th request."""
    call = mock_post.call_args_list[index]
    return call.args[0], call.kwargs["data"]


# ---------------------------------------------------------------------------
# First call on a fresh machine
# ---------------------------------------------------------------------------

class TestFirstCall:
    """No session in memory or on disk: authenticate, then call."""

    def test_example_scenario(self, config, mock_post):
        mock_post.side_effect = [
            auth_ok("abc", 1),
            make_response(200, {"studies": [{"token": "s1"}]}),
        ]

        result = ApiClient(config).call("getStudies")

        assert result == {"studies": [{"token": "s1"}]}
        assert mock_post.call_count == 2

        auth_url, auth_fields = _posted(mock_post, 0)
        assert auth_url == f"{BASE_URL}/api/authenticate"
        assert auth_fields == {"deviceID": DEVICE_ID}
        assert mock_post.call_args_list[0].kwargs["auth"] == ("alice", "secret")

        call_url, call_fields = _posted(mock_post, 1)
        assert call_url == f"{BASE_URL}/api/getStudies"
        assert call_fields["deviceID"] == DEVICE_ID
        assert call_fields["validation"] == md5("abc2k1")

    def test_generic_call_sends_no_basic_auth(self, config, mock_post):
        mock_post.side_effect = [auth_ok(), make_response(200, {})]

        ApiClient(config).call("getStudies")

        assert mock_post.call_args_list[1].kwargs["auth"] is None

    def test_user_agent_and_timeout_are_sent(self, config, mock_post):
        mock_post.side_effect = [auth_ok(), make_response(200, {})]

        ApiClient(config).call("getStudies")

        kwargs = mock_post.call_args_list[1].kwargs
        assert kwargs["headers"]["User-Agent"] == USER_AGENT
        assert kwargs["timeout"] == config.timeout

    def test_service_args_are_merged_into_the_body(self, config, mock_post):
        mock_post.side_effect = [auth_ok(), make_response(200, {"subjects": []})]

        ApiClient(config).call("getSubjectsForStudy", {"studyToken": "st-1"})

        _, fields = _posted(mock_post, 1)
        assert fields["studyToken"] == "st-1"
        assert set(fields) == {"deviceID", "validation", "studyToken"}

    def test_nothing_happens_before_the_first_call(self, config, mock_post):
        ApiClient(config)
        assert mock_post.call_count == 0


# ---------------------------------------------------------------------------
# Sequence monotonicity
# ---------------------------------------------------------------------------

class TestSequence:
    def test_sequences_strictly_increase_across_calls(self, config, mock_post):
        n_calls = 5
        mock_post.side_effect = [auth_ok("abc", 7)] + [
            make_response(200, {}) for _ in range(n_calls)
        ]
        client = ApiClient(config)

        for _ in range(n_calls):
            client.call("getStudies")

        hashes = [_posted(mock_post, i)[1]["validation"] for i in range(1, n_calls + 1)]
        assert hashes == [md5(f"abc{seq}k1") for seq in range(8, 8 + n_calls)]
        assert len(set(hashes)) == n_calls
        assert mock_post.call_count == n_calls + 1  # authenticated once

    def test_sequence_zero_from_server_is_accepted(self, config, mock_post):
        mock_post.side_effect = [auth_ok("abc", 0), make_response(200, {})]

        ApiClient(config).call("getStudies")

        assert _posted(mock_post, 1)[1]["validation"] == md5("abc1k1")


# ---------------------------------------------------------------------------
# Restoring a saved session
# ---------------------------------------------------------------------------

class TestRestoredSession:
    def test_resumes_saved_token_and_sequence_without_authenticating(self, config, mock_post):
        SessionStore(config.cache_dir).save(DEVICE_ID, SessionState("T1", 5))
        mock_post.side_effect = [make_response(200, {"studies": []})]

        ApiClient(config).call("getStudies")

        assert mock_post.call_count == 1
        url, fields = _posted(mock_post, 0)
        assert url.endswith("/api/getStudies")
        assert fields["validation"] == md5("T16k1")

    def test_stale_saved_session_is_resynchronized(self, config, mock_post):
        SessionStore(config.cache_dir).save(DEVICE_ID, SessionState("old", 5))
        mock_post.side_effect = [
            make_response(401),
            auth_ok("new", 20),
            make_response(200, {"ok": True}),
        ]

        assert ApiClient(config).call("getStudies") == {"ok": True}
        assert _posted(mock_post, 2)[1]["validation"] == md5("new21k1")

    def test_corrupt_session_file_falls_back_to_authenticate(self, config, mock_post):
        SessionStore(config.cache_dir).path_for(DEVICE_ID).write_text("not json")
        mock_post.side_effect = [auth_ok("abc", 1), make_response(200, {})]

        ApiClient(config).call("getStudies")

        assert _posted(mock_post, 0)[0].endswith("/api/authenticate")


# ---------------------------------------------------------------------------
# One-shot resynchronization on 401
# ---------------------------------------------------------------------------

class TestResync:
    def test_single_401_triggers_one_authenticate_and_one_retry(self, config, mock_post):
        mock_post.side_effect = [
            auth_ok("abc", 1),
            make_response(401),
            auth_ok("xyz", 10),
            make_response(200, {"studies": []}),
        ]

        result = ApiClient(config).call("getStudies")

        assert result == {"studies": []}
        urls = [call.args[0] for call in mock_post.call_args_list]
        assert urls == [
            f"{BASE_URL}/api/authenticate",
            f"{BASE_URL}/api/getStudies",
            f"{BASE_URL}/api/authenticate",
            f"{BASE_URL}/api/getStudies",
        ]
        assert _posted(mock_post, 3)[1]["validation"] == md5("xyz11k1")

    def test_retry_replays_the_same_service_args(self, config, mock_post):
        mock_post.side_effect = [
            auth_ok(),
            make_response(401),
            auth_ok("xyz", 10),
            make_response(200, {}),
        ]

        ApiClient(config).call("getSamplesForAssay", {"assayToken": "a1"})

        assert _posted(mock_post, 1)[1]["assayToken"] == "a1"
        assert _posted(mock_post, 3)[1]["assayToken"] == "a1"

    def test_second_401_is_terminal(self, config, mock_post):
        mock_post.side_effect = [
            auth_ok("abc", 1),
            make_response(401),
            auth_ok("xyz", 10),
            make_response(401),
        ]

        with pytest.raises(UnauthorizedAfterRetry) as excinfo:
            ApiClient(config).call("getStudies")

        assert excinfo.value.service == "getStudies"
        assert mock_post.call_count == 4  # no third call attempt

    def test_resync_failure_propagates(self, config, mock_post):
        mock_post.side_effect = [
            auth_ok("abc", 1),
            make_response(401),
            make_response(401),  # authenticate itself refused
        ]

        with pytest.raises(AuthenticationFailed):
            ApiClient(config).call("getStudies")

        assert mock_post.call_count == 3

    def test_next_call_after_resync_continues_new_sequence(self, config, mock_post):
        mock_post.side_effect = [
            auth_ok("abc", 1),
            make_response(401),
            auth_ok("xyz", 10),
            make_response(200, {}),
            make_response(200, {}),
        ]
        client = ApiClient(config)

        client.call("getStudies")
        client.call("getStudies")

        assert _posted(mock_post, 4)[1]["validation"] == md5("xyz12k1")


# ---------------------------------------------------------------------------
# Other status codes
# ---------------------------------------------------------------------------

class TestStatusDispatch:
    def test_404_raises_server_unavailable(self, config, mock_post):
        mock_post.side_effect = [auth_ok(), make_response(404)]

        with pytest.raises(ServerUnavailable):
            ApiClient(config).call("getStudies")

    @pytest.mark.parametrize("status", [302, 409, 500, 503])
    def test_other_status_raises_unexpected_status(self, config, mock_post, status):
        mock_post.side_effect = [auth_ok(), make_response(status)]

        with pytest.raises(UnexpectedStatus) as excinfo:
            ApiClient(config).call("getStudies")

        assert excinfo.value.status_code == status
        assert mock_post.call_count == 2  # no retry

    def test_non_json_success_body_raises_unexpected_response(self, config, mock_post):
        mock_post.side_effect = [auth_ok(), make_response(200, None, text="<html>")]

        with pytest.raises(UnexpectedResponse):
            ApiClient(config).call("getStudies")

    def test_unreachable_host_raises_transport_unavailable(self, config, mock_post):
        mock_post.side_effect = requests.ConnectionError("connection refused")

        with pytest.raises(TransportUnavailable):
            ApiClient(config).call("getStudies")

    @pytest.mark.parametrize("error", [
        requests.TooManyRedirects("Exceeded 30 redirects."),
        requests.exceptions.MissingSchema("Invalid URL"),
        requests.exceptions.InvalidURL("Invalid URL"),
        requests.exceptions.ChunkedEncodingError("connection broken"),
        requests.exceptions.ContentDecodingError("bad gzip"),
    ])
    def test_any_requests_failure_on_a_call_is_transport_unavailable(self, config, mock_post, error):
        mock_post.side_effect = [auth_ok(), error]

        with pytest.raises(TransportUnavailable) as excinfo:
            ApiClient(config).call("getStudies")

        assert isinstance(excinfo.value, GSCFError)
        assert excinfo.value.__cause__ is error
        assert mock_post.call_count == 2  # no retry on transport failures

    def test_redirect_loop_during_authenticate_is_transport_unavailable(self, config, mock_post):
        mock_post.side_effect = requests.TooManyRedirects("Exceeded 30 redirects.")

        with pytest.raises(TransportUnavailable):
            ApiClient(config).call("getStudies")

    def test_base_url_without_scheme_fails_before_any_request(self, config, mock_post):
        with pytest.raises(ConfigurationError, match="base_url"):
            ApiClient(replace(config, base_url="studies.example.com"))

        mock_post.assert_not_called()


# ---------------------------------------------------------------------------
# Persistence policy
# ---------------------------------------------------------------------------

class TestPersistence:
    def _saved(self, config) -> dict:
        path = SessionStore(config.cache_dir).path_for(DEVICE_ID)
        return json.loads(path.read_text())

    def test_on_change_saves_after_every_call(self, config, mock_post):
        mock_post.side_effect = [auth_ok("abc", 1), make_response(200, {}), make_response(200, {})]
        client = ApiClient(config)

        client.call("getStudies")
        assert self._saved(config)["sequence"] == 2

        client.call("getStudies")
        assert self._saved(config) == {
            "format": "gscf-session",
            "version": 1,
            "token": "abc",
            "sequence": 3,
        }

    def test_on_close_saves_only_when_closed(self, config, mock_post):
        config = replace(config, persist=PERSIST_ON_CLOSE)
        mock_post.side_effect = [auth_ok("abc", 1), make_response(200, {})]

        with ApiClient(config) as client:
            client.call("getStudies")
            assert not SessionStore(config.cache_dir).path_for(DEVICE_ID).exists()

        assert self._saved(config)["sequence"] == 2

    def test_next_process_resumes_where_the_last_left_off(self, config, mock_post):
        mock_post.side_effect = [auth_ok("abc", 1), make_response(200, {}), make_response(200, {})]

        with ApiClient(config) as first:
            first.call("getStudies")
        with ApiClient(config) as second:
            second.call("getStudies")

        assert mock_post.call_count == 3  # one authenticate in total
        assert _posted(mock_post, 2)[1]["validation"] == md5("abc3k1")

    def test_unwritable_cache_dir_is_not_fatal(self, config, mock_post, tmp_path):
        config = replace(config, cache_dir=tmp_path / "missing" / "dir")
        mock_post.side_effect = [auth_ok(), make_response(200, {"ok": 1})]

        with ApiClient(config) as client:
            assert client.call("getStudies") == {"ok": 1}

    def test_close_without_calls_writes_nothing(self, config):
        ApiClient(config).close()
        assert not SessionStore(config.cache_dir).path_for(DEVICE_ID).exists()
