import asyncio
import time

import pytest

from listing_pipeline.app.core.rate_limit import SourceLimiter, TokenBucket


@pytest.mark.asyncio
async def test_token_bucket_waits_for_refill():
    bucket = TokenBucket(rate_per_minute=600, capacity=1, poll_interval=0.01)

    start = time.monotonic()
    await bucket.acquire()
    await bucket.acquire()

    assert time.monotonic() - start >= 0.05


@pytest.mark.asyncio
async def test_sources_do_not_share_slots():
    limiter = SourceLimiter(concurrency=1)

    async with limiter.slot("bring_a_trailer"):
        async with limiter.slot("cars_com"):
            assert limiter.in_flight("bring_a_trailer") == 1
            assert limiter.in_flight("cars_com") == 1

    assert limiter.in_flight("bring_a_trailer") == 0


@pytest.mark.asyncio
async def test_slot_caps_one_source():
    limiter = SourceLimiter(concurrency=1)
    entered = asyncio.Event()

    async def hold():
        async with limiter.slot("bring_a_trailer"):
            entered.set()
            await asyncio.sleep(0.05)

    async def wait_turn():
        async with limiter.slot("bring_a_trailer"):
            return limiter.in_flight("bring_a_trailer")

    holder = asyncio.create_task(hold())
    await entered.wait()
    waiter = asyncio.create_task(wait_turn())
    await asyncio.sleep(0.01)
    assert not waiter.done()

    await holder
    assert await waiter == 1
