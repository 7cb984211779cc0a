import asyncio

import pytest

from optimus_http.coalescing import RequestCoalescer, build_dedup_key
from tests.pipeline_helpers import FakeClock


class CountingOp:
    def __init__(self, *, error: Exception | None = None) -> None:
        self.calls = 0
        self.error = error
        self.release = asyncio.Event()

    async def __call__(self) -> dict:
        self.calls += 1
        await self.release.wait()
        if self.error is not None:
            raise self.error
        return {"call": self.calls}


@pytest.mark.asyncio
async def test_same_key_runs_operation_once() -> None:
    coalescer = RequestCoalescer()
    op = CountingOp()

    tasks = [asyncio.create_task(coalescer.dedupe("GET:/articles", op)) for _ in range(3)]
    await asyncio.sleep(0)
    op.release.set()
    results = await asyncio.gather(*tasks)

    assert op.calls == 1
    assert results == [{"call": 1}] * 3
    assert results[0] is results[1] is results[2]


@pytest.mark.asyncio
async def test_same_key_shares_rejection() -> None:
    coalescer = RequestCoalescer()
    op = CountingOp(error=ValueError("boom"))

    tasks = [asyncio.create_task(coalescer.dedupe("GET:/articles", op)) for _ in range(3)]
    await asyncio.sleep(0)
    op.release.set()
    results = await asyncio.gather(*tasks, return_exceptions=True)

    assert op.calls == 1
    assert all(isinstance(result, ValueError) for result in results)
    assert results[0] is results[1] is results[2]
    assert len(coalescer) == 0


@pytest.mark.asyncio
async def test_attach_within_window_while_operation_is_slow() -> None:
    clock = FakeClock()
    coalescer = RequestCoalescer(clock=clock)
    op = CountingOp()

    first = asyncio.create_task(coalescer.dedupe("GET:/articles", op))
    await asyncio.sleep(0)
    clock.advance(0.5)
    second = asyncio.create_task(coalescer.dedupe("GET:/articles", op))
    await asyncio.sleep(0)
    op.release.set()

    assert await first == await second
    assert op.calls == 1


@pytest.mark.asyncio
async def test_new_operation_after_window_even_if_first_is_still_running() -> None:
    clock = FakeClock()
    coalescer = RequestCoalescer(clock=clock)
    op = CountingOp()

    first = asyncio.create_task(coalescer.dedupe("GET:/articles", op))
    await asyncio.sleep(0)
    clock.advance(1.5)
    second = asyncio.create_task(coalescer.dedupe("GET:/articles", op))
    await asyncio.sleep(0)
    op.release.set()
    await asyncio.gather(first, second)

    assert op.calls == 2
    assert len(coalescer) == 0


@pytest.mark.asyncio
async def test_settled_entry_is_not_reused() -> None:
    coalescer = RequestCoalescer()
    op = CountingOp()
    op.release.set()

    await coalescer.dedupe("GET:/articles", op)
    await coalescer.dedupe("GET:/articles", op)

    assert op.calls == 2


@pytest.mark.asyncio
async def test_different_keys_are_independent() -> None:
    coalescer = RequestCoalescer()
    op = CountingOp()
    op.release.set()

    await asyncio.gather(
        coalescer.dedupe("GET:/articles", op),
        coalescer.dedupe("GET:/orders", op),
    )

    assert op.calls == 2


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_cancel_shared_operation() -> None:
    coalescer = RequestCoalescer()
    op = CountingOp()

    first = asyncio.create_task(coalescer.dedupe("GET:/articles", op))
    second = asyncio.create_task(coalescer.dedupe("GET:/articles", op))
    await asyncio.sleep(0)
    first.cancel()
    await asyncio.sleep(0)
    op.release.set()

    assert await second == {"call": 1}
    assert first.cancelled()


def test_dedup_key_ignores_param_order() -> None:
    assert build_dedup_key("get", "/articles", {"page": 1, "size": 10}) == build_dedup_key(
        "GET", "/articles", {"size": 10, "page": 1}
    )
    assert build_dedup_key("GET", "/articles") == "GET:/articles#anonymous"
    assert build_dedup_key("GET", "/articles", {"page": 1}) != build_dedup_key(
        "GET", "/articles", {"page": 2}
    )


def test_dedup_key_separates_credentials() -> None:
    default = build_dedup_key("GET", "/articles", authorization="Bearer access-1")
    rotated = build_dedup_key("GET", "/articles", authorization="Bearer access-2")
    anonymous = build_dedup_key("GET", "/articles")

    assert len({default, rotated, anonymous}) == 3
    assert default == build_dedup_key("get", "/articles", authorization="Bearer access-1")
    assert "access-1" not in default
