"""
Feed assembly.

Home timelines are the top-level posts of the viewer and everyone they
follow, newest first. The first page is served from the cached id list
(``feed:<user_id>``), rebuilt from the database on a miss; deeper pages use
the cursor and always go to the database. Explore is never cached, trending
is cached as a short-lived snapshot shared by every viewer.
"""
from datetime import timedelta
from typing import List, Optional, Sequence
from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from nowcast.config import Settings
from nowcast.models.base import utc_now_ms
from nowcast.models.follow import Follow
from nowcast.models.like import Like
from nowcast.models.post import Post
from nowcast.models.repost import Repost
from nowcast.schemas.post_schema import FeedPage, PostResponse
from nowcast.services.cache_service import CacheService, CacheStatus
from nowcast.utils.pagination import apply_cursor_filter, decode_cursor, encode_cursor, newest_first

logger = logging.getLogger(__name__)

async def annotate_viewer_flags(
    db: AsyncSession,
    items: List[PostResponse],
    viewer_id: Optional[int]
) -> List[PostResponse]:
    """Set is_liked / is_reposted with one lookup per relation over the page"""
    if viewer_id is None or not items:
        return items

    post_ids = [item.id for item in items]
    liked = set((await db.execute(
        select(Like.post_id).where(Like.user_id == viewer_id, Like.post_id.in_(post_ids))
    )).scalars().all())
    reposted = set((await db.execute(
        select(Repost.post_id).where(Repost.user_id == viewer_id, Repost.post_id.in_(post_ids))
    )).scalars().all())

    for item in items:
        item.is_liked = item.id in liked
        item.is_reposted = item.id in reposted
    return items

async def build_feed_page(
    db: AsyncSession,
    posts: Sequence[Post],
    limit: int,
    viewer_id: Optional[int],
    has_more: Optional[bool] = None
) -> FeedPage:
    """Turn ``limit + 1`` fetched posts into a page; the extra row only signals has_more"""
    if has_more is None:
        has_more = len(posts) > limit
    page = list(posts[:limit])

    items = await annotate_viewer_flags(
        db, [PostResponse.model_validate(post) for post in page], viewer_id
    )
    next_cursor = encode_cursor(page[-1].created_at, page[-1].id) if has_more and page else None
    return FeedPage(items=items, has_more=has_more, next_cursor=next_cursor)

class FeedService:
    def __init__(self, db: AsyncSession, cache: CacheService, settings: Settings):
        self.db = db
        self.cache = cache
        self.settings = settings

    def _home_filter(self, user_id: int):
        following = select(Follow.following_id).where(Follow.follower_id == user_id)
        return (
            or_(Post.author_id == user_id, Post.author_id.in_(following)),
            Post.parent_id.is_(None),
        )

    async def get_home_feed(self, user_id: int, limit: int = 20, cursor: Optional[str] = None) -> FeedPage:
        """Get a user's home timeline page"""
        decoded = decode_cursor(cursor)
        if decoded is None:
            return await self._first_home_page(user_id, limit)

        stmt = select(Post).where(*self._home_filter(user_id))
        stmt = apply_cursor_filter(stmt, Post, decoded).order_by(*newest_first(Post)).limit(limit + 1)
        result = await self.db.execute(stmt)
        return await build_feed_page(self.db, result.scalars().all(), limit, user_id)

    async def _first_home_page(self, user_id: int, limit: int) -> FeedPage:
        cached = await self.cache.get_feed(user_id)

        if cached.hit:
            post_ids = cached.value
            logger.debug(f"Home feed cache hit for user {user_id} ({len(post_ids)} ids)")
        else:
            post_ids = await self._home_post_ids(user_id, self.settings.FEED_MAX_LENGTH)
            if post_ids and cached.status is CacheStatus.MISS:
                # Written before responding so a later fan-out prepend finds the list
                await self.cache.cache_feed(user_id, post_ids, ttl=self.settings.FEED_CACHE_TTL)

        window = post_ids[:limit + 1]
        posts = await self._hydrate(window)
        has_more = len(posts) > limit or len(post_ids) > len(window)
        return await build_feed_page(self.db, posts, limit, user_id, has_more=has_more)

    async def _home_post_ids(self, user_id: int, max_length: int) -> List[int]:
        stmt = select(Post.id).where(
            *self._home_filter(user_id)
        ).order_by(*newest_first(Post)).limit(max_length)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def _hydrate(self, post_ids: List[int]) -> List[Post]:
        """Load posts by id keeping the given order; ids of deleted posts are skipped"""
        if not post_ids:
            return []
        result = await self.db.execute(select(Post).where(Post.id.in_(post_ids)))
        by_id = {post.id: post for post in result.scalars().all()}
        return [by_id[post_id] for post_id in post_ids if post_id in by_id]

    async def get_explore_feed(
        self,
        limit: int = 20,
        cursor: Optional[str] = None,
        viewer_id: Optional[int] = None
    ) -> FeedPage:
        """All top-level posts, newest first"""
        stmt = select(Post).where(Post.parent_id.is_(None))
        stmt = apply_cursor_filter(stmt, Post, decode_cursor(cursor))
        stmt = stmt.order_by(*newest_first(Post)).limit(limit + 1)
        result = await self.db.execute(stmt)
        return await build_feed_page(self.db, result.scalars().all(), limit, viewer_id)

    async def get_trending_posts(self, limit: int = 10, viewer_id: Optional[int] = None) -> List[PostResponse]:
        """Most engaged top-level posts of the trending window"""
        cached = await self.cache.get_trending()

        if cached.hit:
            snapshots = cached.value
        else:
            since = utc_now_ms() - timedelta(hours=self.settings.TRENDING_WINDOW_HOURS)
            stmt = select(Post).where(
                Post.parent_id.is_(None),
                Post.created_at >= since
            ).order_by(
                Post.likes_count.desc(),
                Post.replies_count.desc(),
                Post.reposts_count.desc(),
                Post.created_at.desc(),
                Post.id.desc()
            ).limit(self.settings.TRENDING_CACHE_SIZE)
            result = await self.db.execute(stmt)

            snapshots = [
                PostResponse.model_validate(post).model_dump(mode="json", exclude={"is_liked", "is_reposted"})
                for post in result.scalars().all()
            ]
            if snapshots:
                await self.cache.cache_trending(snapshots, ttl=self.settings.TRENDING_CACHE_TTL)

        items = [PostResponse.model_validate(snapshot) for snapshot in snapshots[:limit]]
        return await annotate_viewer_flags(self.db, items, viewer_id)
