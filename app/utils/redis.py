from typing import NamedTuple

import redis


class RateLimitDecision(NamedTuple):
    allowed: bool
    # True only for the first refused request of a window, so the limit is logged once
    first_refusal: bool


def limiter(
    redis_client: redis.Redis,
    key: str,
    limit: int,
    window: int,
) -> RateLimitDecision:
    """
    Fixed window rate limiter counting the requests of `key`, a client address, during `window` seconds.

    The `limit`-th request of a window is the first refused one.
    See https://konghq.com/blog/how-to-design-a-scalable-rate-limiting-algorithm
    """
    count = redis_client.incr(key)
    if count == 1:
        redis_client.expire(key, window)
    if count < limit:
        return RateLimitDecision(allowed=True, first_refusal=False)
    return RateLimitDecision(allowed=False, first_refusal=count == limit)
