from nowcast.services.cache_service import (
    CacheNamespace,
    CacheStatus,
    TRENDING_KEY,
    cache_key,
)

def test_keys_always_carry_their_namespace():
    assert cache_key(CacheNamespace.FEED, 42) == "feed:42"
    assert cache_key(CacheNamespace.RATE_LIMIT, "like", "user:7") == "ratelimit:like:user:7"
    assert TRENDING_KEY == "trending:posts"
    # Same id, different namespaces, different keys
    assert cache_key(CacheNamespace.USER, 1) != cache_key(CacheNamespace.POST, 1)

async def test_feed_miss_then_hit(cache, services):
    assert (await cache.get_feed(1)).status is CacheStatus.MISS

    assert await cache.cache_feed(1, [30, 20, 10]) is True
    result = await cache.get_feed(1)
    assert result.hit
    assert result.value == [30, 20, 10]
    assert 0 < await services.redis.ttl("feed:1") <= services.settings.FEED_CACHE_TTL

async def test_cache_feed_truncates_to_max_length(cache, services):
    post_ids = list(range(600, 0, -1))
    await cache.cache_feed(1, post_ids)

    result = await cache.get_feed(1)
    assert len(result.value) == services.settings.FEED_MAX_LENGTH
    assert result.value[0] == 600

async def test_prepend_keeps_list_bounded(cache, services):
    max_length = services.settings.FEED_MAX_LENGTH
    await cache.cache_feed(1, list(range(max_length, 0, -1)))

    assert await cache.prepend_to_feed(1, 1000) is True
    result = await cache.get_feed(1)
    assert result.value[0] == 1000
    assert len(result.value) == max_length
    assert result.value[-1] == 2

async def test_prepend_never_recreates_an_invalidated_feed(cache):
    await cache.cache_feed(1, [3, 2, 1])
    await cache.cache_feed(2, [3, 2, 1])
    await cache.invalidate_feed(1)

    await cache.prepend_to_feeds([1, 2, 3], 4)

    assert (await cache.get_feed(1)).status is CacheStatus.MISS
    assert (await cache.get_feed(2)).value == [4, 3, 2, 1]
    assert (await cache.get_feed(3)).status is CacheStatus.MISS

async def test_invalidate_feeds_in_one_call(cache):
    for user_id in (1, 2, 3):
        await cache.cache_feed(user_id, [1])

    assert await cache.invalidate_feeds([1, 2]) is True

    assert not (await cache.get_feed(1)).hit
    assert not (await cache.get_feed(2)).hit
    assert (await cache.get_feed(3)).hit

async def test_snapshots_round_trip_and_invalidate(cache):
    await cache.set_snapshot(CacheNamespace.USER, 5, {"id": 5, "username": "eve"}, ttl=60)

    result = await cache.get_snapshot(CacheNamespace.USER, 5)
    assert result.hit
    assert result.value == {"id": 5, "username": "eve"}
    assert not (await cache.get_snapshot(CacheNamespace.POST, 5)).hit

    await cache.invalidate_snapshot(CacheNamespace.USER, 5)
    assert (await cache.get_snapshot(CacheNamespace.USER, 5)).status is CacheStatus.MISS

async def test_undecodable_snapshot_is_a_miss(cache, services):
    await services.redis.set("post:9", "{not json")
    assert (await cache.get_snapshot(CacheNamespace.POST, 9)).status is CacheStatus.MISS

async def test_cache_stats_counts_per_namespace(cache):
    await cache.cache_feed(1, [1])
    await cache.cache_feed(2, [1])
    await cache.set_snapshot(CacheNamespace.POST, 1, {"id": 1}, ttl=60)

    assert await cache.cache_stats() == {"feed_keys": 2, "user_keys": 0, "post_keys": 1}

async def test_outage_is_reported_not_raised(cache, redis_server):
    redis_server.connected = False

    assert await cache.ping() is False
    assert (await cache.get_feed(1)).status is CacheStatus.UNAVAILABLE
    assert (await cache.get_snapshot(CacheNamespace.USER, 1)).status is CacheStatus.UNAVAILABLE
    assert (await cache.get_trending()).status is CacheStatus.UNAVAILABLE
    assert await cache.cache_feed(1, [1, 2]) is False
    assert await cache.prepend_to_feeds([1, 2], 3) is False
    assert await cache.invalidate_feeds([1]) is False
    assert await cache.set_snapshot(CacheNamespace.USER, 1, {}, ttl=10) is False
    assert await cache.cache_trending([{"id": 1}]) is False
    assert await cache.cache_stats() == {"feed_keys": 0, "user_keys": 0, "post_keys": 0}
