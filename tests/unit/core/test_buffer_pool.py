"""Tests for BufferPool."""

import pytest

from fetcher.core.buffer_pool import BufferPool, get_default_pool


def test_acquire_returns_empty_buffer():
    pool = BufferPool()
    buf = pool.acquire()
    buf.write(b"data")
    pool.release(buf)

    reused = pool.acquire()
    assert reused is buf
    assert reused.getvalue() == b""
    assert reused.tell() == 0


def test_double_release_ignored():
    pool = BufferPool()
    buf = pool.acquire()

    pool.release(buf)
    pool.release(buf)

    assert pool.idle_count == 1
    assert pool.acquire() is buf
    assert pool.acquire() is not buf


def test_max_idle():
    pool = BufferPool(max_idle=2)
    buffers = [pool.acquire() for _ in range(4)]
    for buf in buffers:
        pool.release(buf)
    assert pool.idle_count == 2


def test_closed_buffer_not_pooled():
    pool = BufferPool()
    buf = pool.acquire()
    buf.close()
    pool.release(buf)
    assert pool.idle_count == 0


def test_negative_max_idle():
    with pytest.raises(ValueError):
        BufferPool(max_idle=-1)


def test_default_pool_is_shared():
    assert get_default_pool() is get_default_pool()
