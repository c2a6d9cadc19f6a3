"""
Process-wide service objects.

``AppServices`` is built once by the application lifespan (or directly by
tests) and stored on ``app.state.services``; request dependencies read it
from there instead of importing module-level clients.
"""
import logging
from typing import Optional

from fastapi import Request
import redis.asyncio as aioredis
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from nowcast.config import Settings
from nowcast.db.session import create_engine_for, create_session_factory
from nowcast.services.cache_service import CacheService
from nowcast.services.notification_service import NotificationRelay
from nowcast.utils.rate_limit import RateLimiter
from nowcast.websocket.manager import ConnectionManager

logger = logging.getLogger(__name__)

class AppServices:
    def __init__(
        self,
        settings: Settings,
        engine: AsyncEngine,
        session_factory: async_sessionmaker,
        redis: Redis,
        publisher: Redis,
        subscriber: Redis,
        rate_limiter: Optional[RateLimiter] = None
    ):
        self.settings = settings
        self.engine = engine
        self.session_factory = session_factory
        self.redis = redis
        self.publisher = publisher
        self.subscriber = subscriber

        self.cache = CacheService(redis, settings)
        self.rate_limiter = rate_limiter or RateLimiter(redis)
        self.ws_manager = ConnectionManager(max_connections=settings.WS_MAX_CONNECTIONS)
        self.relay = NotificationRelay(
            publisher=publisher,
            subscriber=subscriber,
            session_factory=session_factory,
            ws_manager=self.ws_manager,
            channel=settings.NOTIFICATION_CHANNEL
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "AppServices":
        """Create engine and Redis clients from configuration"""
        engine = create_engine_for(settings.database_url, settings)

        def _redis_client() -> Redis:
            return aioredis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
                max_connections=settings.REDIS_POOL_SIZE,
                socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
                socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT,
            )

        # The subscriber blocks on reads, so it gets its own client without a socket timeout
        subscriber = aioredis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)

        return cls(
            settings=settings,
            engine=engine,
            session_factory=create_session_factory(engine),
            redis=_redis_client(),
            publisher=_redis_client(),
            subscriber=subscriber
        )

    async def start(self):
        if not await self.cache.ping():
            logger.warning("Redis cache is unreachable; serving from the database only")
        try:
            await self.relay.start()
        except Exception as e:
            # Notifications stay disabled until restart; writes keep working
            logger.error(f"Failed to start notification relay: {e}")

    async def close(self):
        await self.relay.stop()
        for client in (self.redis, self.publisher, self.subscriber):
            try:
                await client.aclose()
            except Exception as e:
                logger.warning(f"Error closing Redis client: {e}")
        await self.engine.dispose()
        logger.info("Application services closed")

def get_services(request: Request) -> AppServices:
    """Dependency returning the services built by the lifespan"""
    return request.app.state.services
