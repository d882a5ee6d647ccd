from unittest.mock import MagicMock

import httpx

from ghpool import TokenPool


def _pool(tokens="a,b"):
    return TokenPool(tokens, handle_factory=lambda token: MagicMock())


def test_headers_overwrite_quota():
    pool = _pool()
    assert pool.record_usage(1, {"X-RateLimit-Remaining": "7", "X-RateLimit-Reset": "1700000000"})
    assert pool.credentials[1].remaining == 7  # noqa: PLR2004
    assert pool.credentials[1].reset_at == 1700000000.0  # noqa: PLR2004
    assert pool.credentials[0].remaining == 5000  # noqa: PLR2004


def test_header_names_case_insensitive():
    pool = _pool()
    headers = httpx.Headers({"x-ratelimit-remaining": "0", "x-ratelimit-reset": "1700000000"})
    assert pool.record_usage(0, headers)
    assert pool.credentials[0].remaining == 0


def test_missing_or_invalid_headers_are_ignored():
    pool = _pool()
    before = (pool.credentials[0].remaining, pool.credentials[0].reset_at)
    assert not pool.record_usage(0, {"X-RateLimit-Remaining": "12"})
    assert not pool.record_usage(0, {"X-RateLimit-Reset": "1700000000"})
    assert not pool.record_usage(0, {"X-RateLimit-Remaining": "n/a", "X-RateLimit-Reset": "1"})
    assert not pool.record_usage(0, {})
    assert (pool.credentials[0].remaining, pool.credentials[0].reset_at) == before


def test_anonymous_and_out_of_range_are_ignored():
    pool = _pool()
    headers = {"X-RateLimit-Remaining": "1", "X-RateLimit-Reset": "1"}
    assert not pool.record_usage(None, headers)
    assert not pool.record_usage(5, headers)


def test_usage_from_replaced_pool_is_ignored():
    pool = _pool()
    lease = pool.select()
    pool.initialize("c")
    headers = {"X-RateLimit-Remaining": "3", "X-RateLimit-Reset": "1700000000"}
    assert not pool.mark_result(lease, headers)
    assert pool.credentials[0].remaining == 5000  # noqa: PLR2004
