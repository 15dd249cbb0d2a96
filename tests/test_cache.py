"""Tests for src/gscf/cache.py."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from gscf.cache import ResponseCache


class TestGetOrFetch:
    def test_second_read_does_not_fetch(self):
        cache = ResponseCache()
        fetch = MagicMock(return_value={"studies": []})

        first = cache.get_or_fetch("getStudies", None, fetch)
        second = cache.get_or_fetch("getStudies", None, fetch)

        assert first == second == {"studies": []}
        fetch.assert_called_once()

    def test_keys_are_per_service_and_parameter(self):
        cache = ResponseCache()
        fetch = MagicMock(side_effect=["a", "b", "c"])

        assert cache.get_or_fetch("getAssaysForStudy", "s1", fetch) == "a"
        assert cache.get_or_fetch("getAssaysForStudy", "s2", fetch) == "b"
        assert cache.get_or_fetch("getSubjectsForStudy", "s1", fetch) == "c"
        assert cache.get_or_fetch("getAssaysForStudy", "s1", fetch) == "a"
        assert fetch.call_count == 3
        assert len(cache) == 3

    def test_failed_fetch_is_not_cached(self):
        cache = ResponseCache()
        fetch = MagicMock(side_effect=[RuntimeError("boom"), "ok"])

        with pytest.raises(RuntimeError):
            cache.get_or_fetch("getStudies", None, fetch)

        assert ("getStudies", None) not in cache
        assert cache.get_or_fetch("getStudies", None, fetch) == "ok"

    def test_clear_forces_refetch(self):
        cache = ResponseCache()
        fetch = MagicMock(return_value=1)

        cache.get_or_fetch("getStudies", None, fetch)
        cache.clear()
        cache.get_or_fetch("getStudies", None, fetch)

        assert fetch.call_count == 2
