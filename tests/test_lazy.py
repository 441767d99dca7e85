import asyncio
import threading

import pytest

from core.errors import EngineInitError
from core.lazy import LazyResource


@pytest.mark.asyncio
async def test_concurrent_first_callers_share_one_build():
    built = {"n": 0}
    gate = threading.Event()

    def factory():
        built["n"] += 1
        gate.wait(timeout=5)
        return object()

    res = LazyResource(factory, name="engine")
    tasks = [asyncio.ensure_future(res.get()) for _ in range(5)]
    await asyncio.sleep(0.05)
    gate.set()
    values = await asyncio.gather(*tasks)

    assert built["n"] == 1
    assert all(v is values[0] for v in values)
    assert res.ready and not res.failed
    assert await res.get() is values[0]


@pytest.mark.asyncio
async def test_failure_is_cached_and_reraised():
    calls = {"n": 0}

    def factory():
        calls["n"] += 1
        raise OSError("weights missing")

    res = LazyResource(factory, name="engine")
    with pytest.raises(EngineInitError):
        await res.get()
    with pytest.raises(EngineInitError):
        await res.get()
    assert calls["n"] == 1
    assert res.failed and not res.ready


def test_not_ready_before_first_get():
    res = LazyResource(lambda: 1, name="engine")
    assert not res.ready and not res.failed
