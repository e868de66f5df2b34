import asyncio

from app.core.rate_limit import RateLimiter


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_sliding_window_blocks_then_recovers():
    clock = FakeClock()
    limiter = RateLimiter(clock=clock)

    async def attempts(count):
        return [await limiter.is_allowed("user:1", 2, 60) for _ in range(count)]

    assert asyncio.run(attempts(3)) == [True, True, False]
    clock.now += 61
    assert asyncio.run(attempts(1)) == [True]


def test_keys_are_independent_and_reset_clears():
    limiter = RateLimiter(clock=FakeClock())

    async def scenario():
        first = await limiter.is_allowed("a", 1, 60)
        blocked = await limiter.is_allowed("a", 1, 60)
        other = await limiter.is_allowed("b", 1, 60)
        limiter.reset()
        again = await limiter.is_allowed("a", 1, 60)
        return first, blocked, other, again

    assert asyncio.run(scenario()) == (True, False, True, True)
