from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, func
import logging

from nowcast.config import Settings
from nowcast.models.post import Post
from nowcast.models.user import User
from nowcast.schemas.post_schema import FeedPage, ParentSummary, PostCreate, PostDetail, PostUpdate
from nowcast.schemas.user_schema import AuthorSummary
from nowcast.services.cache_service import CacheNamespace, CacheService, CacheStatus
from nowcast.services.fanout_service import FanoutService
from nowcast.services.feed_service import annotate_viewer_flags, build_feed_page
from nowcast.services.notification_service import NotificationRelay
from nowcast.utils.errors import ForbiddenError, NotFoundError
from nowcast.utils.pagination import apply_cursor_filter, decode_cursor, newest_first
from nowcast.utils.text import extract_hashtags, extract_mentions

logger = logging.getLogger(__name__)

class PostService:
    def __init__(
        self,
        db: AsyncSession,
        cache: CacheService,
        relay: NotificationRelay,
        settings: Settings
    ):
        self.db = db
        self.cache = cache
        self.relay = relay
        self.settings = settings
        self.fanout = FanoutService(db, cache)

    async def _get_or_404(self, post_id: int) -> Post:
        post = await self.db.get(Post, post_id)
        if post is None:
            raise NotFoundError("Post not found")
        return post

    async def create_post(self, author: User, post_data: PostCreate) -> Post:
        """Create a post or, with ``parent_id``, a reply"""
        parent = None
        if post_data.parent_id is not None:
            parent = await self.db.get(Post, post_data.parent_id)
            if parent is None:
                raise NotFoundError("Parent post not found")

        post = Post(
            author_id=author.id,
            text=post_data.text,
            image_url=str(post_data.image_url) if post_data.image_url else None,
            hashtags=extract_hashtags(post_data.text),
            parent_id=post_data.parent_id
        )
        self.db.add(post)

        if parent is not None:
            await self.db.execute(
                update(Post)
                .where(Post.id == parent.id)
                .values(replies_count=Post.replies_count + 1)
                .execution_options(synchronize_session=False)
            )

        await self.db.commit()
        await self.db.refresh(post, attribute_names=["author"])
        logger.info(f"User {author.id} created post {post.id}")

        await self.fanout.on_post_created(post)

        if parent is not None:
            await self.relay.notify_reply(parent.author_id, author.id, author.username, post.id)
        await self._notify_mentions(post, author, parent)

        return post

    async def _notify_mentions(self, post: Post, author: User, parent: Optional[Post]):
        usernames = extract_mentions(post.text)
        if not usernames:
            return

        result = await self.db.execute(
            select(User.id).where(func.lower(User.username).in_(usernames))
        )
        # The parent author already gets a reply notification
        skip = {author.id, parent.author_id if parent is not None else None}
        for user_id in result.scalars().all():
            if user_id not in skip:
                await self.relay.notify_mention(user_id, author.id, author.username, post.id)

    async def get_post(self, post_id: int, viewer_id: Optional[int] = None) -> PostDetail:
        """Get a post with its parent summary, through the post snapshot cache"""
        cached = await self.cache.get_snapshot(CacheNamespace.POST, post_id)

        if cached.hit:
            detail = PostDetail.model_validate(cached.value)
        else:
            post = await self._get_or_404(post_id)
            detail = PostDetail.model_validate(post)

            if post.parent_id is not None:
                parent = await self.db.get(Post, post.parent_id)
                if parent is not None:
                    detail.parent = ParentSummary(
                        id=parent.id,
                        text=parent.text,
                        author=AuthorSummary.model_validate(parent.author)
                    )

            if cached.status is CacheStatus.MISS:
                await self.cache.set_snapshot(
                    CacheNamespace.POST,
                    post_id,
                    detail.model_dump(mode="json", exclude={"is_liked", "is_reposted"}),
                    ttl=self.settings.POST_CACHE_TTL
                )

        await annotate_viewer_flags(self.db, [detail], viewer_id)
        return detail

    async def update_post(self, post_id: int, user: User, post_data: PostUpdate) -> Post:
        """Update a post (author only)"""
        post = await self._get_or_404(post_id)
        if post.author_id != user.id:
            raise ForbiddenError("Not authorized to update this post")

        update_data = post_data.model_dump(exclude_unset=True)
        if update_data.get("text") is not None:
            post.text = update_data["text"]
            post.hashtags = extract_hashtags(post.text)
        if "image_url" in update_data:
            post.image_url = str(update_data["image_url"]) if update_data["image_url"] else None

        await self.db.commit()
        await self.db.refresh(post)

        await self.fanout.on_engagement_changed(post.id)
        return post

    async def _reply_subtree_ids(self, post_id: int) -> List[int]:
        """Ids of every reply below a post, which the database removes with it"""
        found: List[int] = []
        frontier = [post_id]
        while frontier:
            result = await self.db.execute(select(Post.id).where(Post.parent_id.in_(frontier)))
            frontier = list(result.scalars().all())
            found.extend(frontier)
        return found

    async def delete_post(self, post_id: int, user: User) -> None:
        """Delete a post and its replies (author only)"""
        post = await self._get_or_404(post_id)
        if post.author_id != user.id:
            raise ForbiddenError("Not authorized to delete this post")

        author_id, parent_id = post.author_id, post.parent_id
        reply_ids = await self._reply_subtree_ids(post_id)

        if parent_id is not None:
            await self.db.execute(
                update(Post)
                .where(Post.id == parent_id, Post.replies_count > 0)
                .values(replies_count=Post.replies_count - 1)
                .execution_options(synchronize_session=False)
            )
        await self.db.execute(delete(Post).where(Post.id == post_id))
        await self.db.commit()
        logger.info(f"User {user.id} deleted post {post_id} ({len(reply_ids)} replies)")

        await self.fanout.on_post_deleted(post_id, author_id, parent_id, reply_ids)

    async def get_post_replies(
        self,
        post_id: int,
        limit: int = 20,
        cursor: Optional[str] = None,
        viewer_id: Optional[int] = None
    ) -> FeedPage:
        await self._get_or_404(post_id)

        stmt = select(Post).where(Post.parent_id == post_id)
        stmt = apply_cursor_filter(stmt, Post, decode_cursor(cursor))
        stmt = stmt.order_by(*newest_first(Post)).limit(limit + 1)
        result = await self.db.execute(stmt)
        return await build_feed_page(self.db, result.scalars().all(), limit, viewer_id)

    async def get_user_posts(
        self,
        username: str,
        limit: int = 20,
        cursor: Optional[str] = None,
        viewer_id: Optional[int] = None
    ) -> FeedPage:
        """Top-level posts of one user, newest first"""
        user_id = await self.db.scalar(select(User.id).where(User.username == username))
        if user_id is None:
            raise NotFoundError("User not found")

        stmt = select(Post).where(Post.author_id == user_id, Post.parent_id.is_(None))
        stmt = apply_cursor_filter(stmt, Post, decode_cursor(cursor))
        stmt = stmt.order_by(*newest_first(Post)).limit(limit + 1)
        result = await self.db.execute(stmt)
        return await build_feed_page(self.db, result.scalars().all(), limit, viewer_id)
