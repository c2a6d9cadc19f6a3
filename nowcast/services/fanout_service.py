"""
Fan-out on write: keeps cached timelines and snapshots in step with writes.

Every method is best effort. It runs after the database transaction has
committed, never raises, and only logs when Redis could not be reached; the
affected entries then age out through their TTL.
"""
from typing import Iterable, List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from nowcast.models.follow import Follow
from nowcast.models.post import Post
from nowcast.services.cache_service import CacheNamespace, CacheService

logger = logging.getLogger(__name__)

class FanoutService:
    def __init__(self, db: AsyncSession, cache: CacheService):
        self.db = db
        self.cache = cache

    async def _audience(self, author_id: int) -> List[int]:
        """Followers of the author plus the author"""
        result = await self.db.execute(
            select(Follow.follower_id).where(Follow.following_id == author_id)
        )
        return [author_id, *result.scalars().all()]

    async def on_post_created(self, post: Post):
        if not await self.cache.invalidate_snapshot(CacheNamespace.USER, post.author_id):
            logger.warning(f"Could not invalidate profile snapshot of user {post.author_id}")

        # Replies never appear in timelines
        if post.parent_id is not None:
            if not await self.cache.invalidate_snapshot(CacheNamespace.POST, post.parent_id):
                logger.warning(f"Could not invalidate snapshot of post {post.parent_id}")
            return

        audience = await self._audience(post.author_id)
        if await self.cache.prepend_to_feeds(audience, post.id):
            logger.debug(f"Fanned out post {post.id} to {len(audience)} timelines")
        else:
            logger.warning(f"Fan-out of post {post.id} skipped, cache unavailable")

    async def on_post_deleted(
        self,
        post_id: int,
        author_id: int,
        parent_id: Optional[int] = None,
        reply_ids: Iterable[int] = ()
    ):
        """Drop everything that still points at a deleted post and its removed replies"""
        snapshot_ids = [post_id, *reply_ids]
        if parent_id is not None:
            snapshot_ids.append(parent_id)
        ok = await self.cache.invalidate_snapshot(CacheNamespace.POST, *snapshot_ids)
        ok = await self.cache.invalidate_snapshot(CacheNamespace.USER, author_id) and ok

        if parent_id is None:
            audience = await self._audience(author_id)
            ok = await self.cache.invalidate_feeds(audience) and ok

        if not ok:
            logger.warning(f"Invalidation after deleting post {post_id} incomplete, cache unavailable")

    async def on_follow_changed(self, follower_id: int, following_id: int):
        ok = await self.cache.invalidate_feed(follower_id)
        ok = await self.cache.invalidate_snapshot(CacheNamespace.USER, follower_id, following_id) and ok
        if not ok:
            logger.warning(f"Invalidation after follow change {follower_id}->{following_id} incomplete")

    async def on_engagement_changed(self, post_id: int):
        if not await self.cache.invalidate_snapshot(CacheNamespace.POST, post_id):
            logger.warning(f"Could not invalidate snapshot of post {post_id}")
