from nowcast.utils.rate_limit import RateLimiter

class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

async def test_sliding_window_admits_limit_then_rejects(services):
    clock = FakeClock()
    limiter = RateLimiter(services.redis, clock=clock)

    results = []
    for _ in range(3):
        results.append(await limiter.check("user:1", "like", limit=3, window_seconds=60))
        clock.now += 1

    assert [r.allowed for r in results] == [True, True, True]
    assert [r.remaining for r in results] == [2, 1, 0]

    rejected = await limiter.check("user:1", "like", limit=3, window_seconds=60)
    assert rejected.allowed is False
    assert rejected.remaining == 0
    # Oldest token was admitted 3s ago, so it leaves the window in 57s
    assert rejected.reset_in == 57

async def test_window_slides_as_old_tokens_expire(services):
    clock = FakeClock()
    limiter = RateLimiter(services.redis, clock=clock)

    for _ in range(3):
        await limiter.check("user:1", "like", limit=3, window_seconds=60)

    clock.now += 61
    result = await limiter.check("user:1", "like", limit=3, window_seconds=60)
    assert result.allowed is True
    assert result.remaining == 2

async def test_rejected_requests_do_not_consume_tokens(services):
    clock = FakeClock()
    limiter = RateLimiter(services.redis, clock=clock)

    await limiter.check("ip:1.2.3.4", "auth", limit=1, window_seconds=60)
    for _ in range(5):
        assert not (await limiter.check("ip:1.2.3.4", "auth", limit=1, window_seconds=60)).allowed

    assert await services.redis.zcard("ratelimit:auth:ip:1.2.3.4") == 1

async def test_actions_and_identifiers_are_isolated(services):
    limiter = RateLimiter(services.redis, clock=FakeClock())

    assert (await limiter.check("user:1", "like", limit=1, window_seconds=60)).allowed
    assert (await limiter.check("user:1", "follow", limit=1, window_seconds=60)).allowed
    assert (await limiter.check("user:2", "like", limit=1, window_seconds=60)).allowed
    assert not (await limiter.check("user:1", "like", limit=1, window_seconds=60)).allowed

async def test_fails_open_when_redis_is_down(services, redis_server):
    limiter = RateLimiter(services.redis, clock=FakeClock())
    redis_server.connected = False

    for _ in range(10):
        result = await limiter.check("user:1", "like", limit=3, window_seconds=60)
        assert result.allowed is True
        assert result.remaining == 3
        assert result.reset_in == 60

async def test_dependency_sets_headers_and_returns_429(client, services, make_user, auth_headers, make_post):
    author = await make_user("alice")
    fan = await make_user("bob")
    headers = auth_headers(fan)

    statuses = []
    for _ in range(services.settings.INTERACTION_RATE_LIMIT):
        post = await make_post(author, "like me")
        response = await client.post(f"/api/v1/likes/posts/{post.id}/like", headers=headers)
        statuses.append(response.status_code)

    assert set(statuses) == {200}
    assert response.headers["X-RateLimit-Remaining"] == "0"

    post = await make_post(author, "one too many")
    response = await client.post(f"/api/v1/likes/posts/{post.id}/like", headers=headers)
    assert response.status_code == 429
    assert int(response.headers["Retry-After"]) > 0
    assert response.headers["X-RateLimit-Remaining"] == "0"
