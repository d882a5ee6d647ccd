import logging
from unittest.mock import MagicMock

import pytest

from ghpool import AsyncTokenPool, InvalidConfiguration, PoolClosed, TokenPool, httpx_client

NOW = 1_000_000.0


def _pool(tokens, **kw):
    pool = TokenPool(tokens, handle_factory=lambda token: MagicMock(name=token), **kw)
    pool._now = lambda: NOW
    for c in pool.credentials:
        c.reset_at = NOW + 3600
    return pool


def test_no_rotation_without_exhaustion():
    pool = _pool("a,b,c")
    pool._cursor = 1
    lease = pool.select()
    assert lease.index == 1
    assert lease.handle is pool.credentials[1].handle
    assert pool.select().index == 1


def test_sticky_after_recording_usage():
    pool = _pool("a,b")
    first = pool.select()
    assert first.index == 0
    pool.mark_result(
        first, {"X-RateLimit-Remaining": "4999", "X-RateLimit-Reset": str(int(NOW) + 3600)}
    )
    assert pool.credentials[0].remaining == 4999  # noqa: PLR2004
    second = pool.select()
    assert second.index == 0
    assert second.handle is first.handle


def test_skips_credential_under_margin():
    pool = _pool("a,b")
    pool.credentials[0].remaining = 5
    lease = pool.select()
    assert lease.index == 1
    assert pool.cursor == 1


def test_margin_is_exclusive():
    pool = _pool("a,b")
    pool.credentials[0].remaining = 10
    assert pool.select().index == 1
    pool.credentials[1].remaining = 11
    assert pool.select().index == 1


def test_scan_wraps_around():
    pool = _pool("a,b,c")
    pool._cursor = 2
    pool.credentials[2].remaining = 0
    pool.credentials[0].remaining = 3
    lease = pool.select()
    assert lease.index == 1
    assert pool.cursor == 1


def test_lazy_reset_before_margin_check():
    pool = _pool("a,b")
    pool.credentials[0].remaining = 0
    pool.credentials[0].reset_at = NOW - 1
    lease = pool.select()
    assert lease.index == 0
    assert pool.credentials[0].remaining == 5000  # noqa: PLR2004
    assert pool.credentials[0].reset_at == NOW + 3600


def test_no_reset_at_exact_reset_time():
    pool = _pool("a,b")
    pool.credentials[0].remaining = 0
    pool.credentials[0].reset_at = NOW
    assert pool.select().index == 1
    assert pool.credentials[0].remaining == 0


def test_empty_pool_uses_unauthenticated_handle(caplog):
    created = []

    def factory(token):
        created.append(token)
        return MagicMock()

    pool = TokenPool(None, handle_factory=factory)
    assert pool.is_empty()
    with caplog.at_level(logging.WARNING, logger="ghpool"):
        lease = pool.select()
    assert lease.anonymous
    assert created == [None]
    assert "unauthenticated" in caplog.text
    assert pool.is_empty()
    # a fresh handle every time
    assert pool.select().handle is not lease.handle


def test_strict_initialize_rejects_empty():
    with pytest.raises(InvalidConfiguration):
        TokenPool(" , ", strict=True)
    pool = _pool("a")
    with pytest.raises(InvalidConfiguration):
        pool.initialize("", strict=True)
    assert len(pool) == 1


def test_initialize_replaces_wholesale():
    pool = _pool("a,b")
    old = [c.handle for c in pool.credentials]
    pool.credentials[1].remaining = 1
    pool._cursor = 1
    gen = pool.generation

    pool.initialize("c, d ,e")
    assert [c.token for c in pool.credentials] == ["c", "d", "e"]
    assert all(c.remaining == 5000 for c in pool.credentials)  # noqa: PLR2004
    assert pool.cursor == 0
    assert pool.generation == gen + 1

    pool.close()
    for h in old:
        h.close.assert_called_once()


def test_status_reports_each_credential():
    pool = _pool("a,b")
    pool.credentials[1].remaining = 42
    pool._cursor = 1
    status = pool.status()
    assert [s["index"] for s in status] == [0, 1]
    assert status[1]["remaining"] == 42  # noqa: PLR2004
    assert [s["is_active"] for s in status] == [False, True]
    assert status[0]["reset_time"].endswith("+00:00")


def test_credential_repr_hides_token():
    pool = _pool("supersecret")
    assert "supersecret" not in repr(pool.credentials[0])


def test_closed_pool_refuses_selection():
    pool = _pool("a")
    pool.close()
    with pytest.raises(PoolClosed):
        pool.select()
    with pytest.raises(PoolClosed):
        pool.initialize("b")


@pytest.mark.asyncio
async def test_closed_async_pool_refuses_selection():
    pool = AsyncTokenPool("a", handle_factory=lambda token: httpx_client(token))
    await pool.aclose()
    with pytest.raises(PoolClosed):
        await pool.select()
