from typing import Optional, Type, Union
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, func
from sqlalchemy.exc import IntegrityError
import logging

from nowcast.models.follow import Follow
from nowcast.models.like import Like
from nowcast.models.post import Post
from nowcast.models.repost import Repost
from nowcast.models.user import User
from nowcast.schemas.user_schema import AuthorSummary, PageInfo, UserListResponse
from nowcast.services.cache_service import CacheService
from nowcast.services.fanout_service import FanoutService
from nowcast.services.notification_service import NotificationRelay
from nowcast.utils.errors import ConflictError, NotFoundError

logger = logging.getLogger(__name__)

Engagement = Union[Type[Like], Type[Repost]]

# Relation model -> denormalized counter on Post
COUNTERS = {
    Like: "likes_count",
    Repost: "reposts_count",
}

class InteractionService:
    """Likes, reposts and follows, with their counters and cache side effects"""

    def __init__(self, db: AsyncSession, cache: CacheService, relay: NotificationRelay):
        self.db = db
        self.cache = cache
        self.relay = relay
        self.fanout = FanoutService(db, cache)

    async def _get_post(self, post_id: int) -> Post:
        post = await self.db.get(Post, post_id)
        if post is None:
            raise NotFoundError("Post not found")
        return post

    async def _find_engagement(self, model: Engagement, user_id: int, post_id: int):
        result = await self.db.execute(
            select(model).where(model.user_id == user_id, model.post_id == post_id)
        )
        return result.scalar_one_or_none()

    async def _counter(self, post_id: int, column: str) -> int:
        return await self.db.scalar(select(getattr(Post, column)).where(Post.id == post_id))

    async def _engage(self, model: Engagement, user: User, post_id: int, conflict_message: str) -> Post:
        post = await self._get_post(post_id)
        if await self._find_engagement(model, user.id, post_id) is not None:
            raise ConflictError(conflict_message)

        column = COUNTERS[model]
        self.db.add(model(user_id=user.id, post_id=post_id))
        await self.db.execute(
            update(Post)
            .where(Post.id == post_id)
            .values({column: getattr(Post, column) + 1})
            .execution_options(synchronize_session=False)
        )

        try:
            await self.db.commit()
        except IntegrityError:
            # Lost a race with a concurrent request; the counter update rolls back too
            await self.db.rollback()
            raise ConflictError(conflict_message)

        await self.fanout.on_engagement_changed(post_id)
        return post

    async def _disengage(self, model: Engagement, user: User, post_id: int, missing_message: str):
        await self._get_post(post_id)
        if await self._find_engagement(model, user.id, post_id) is None:
            raise NotFoundError(missing_message)

        column = COUNTERS[model]
        result = await self.db.execute(
            delete(model)
            .where(model.user_id == user.id, model.post_id == post_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            await self.db.execute(
                update(Post)
                .where(Post.id == post_id, getattr(Post, column) > 0)
                .values({column: getattr(Post, column) - 1})
                .execution_options(synchronize_session=False)
            )
        await self.db.commit()

        await self.fanout.on_engagement_changed(post_id)

    # ============ Likes ============

    async def like_post(self, user: User, post_id: int) -> int:
        """Like a post; returns the new like count"""
        post = await self._engage(Like, user, post_id, "Post already liked")
        logger.info(f"User {user.id} liked post {post_id}")
        await self.relay.notify_like(post.author_id, user.id, user.username, post_id)
        return await self._counter(post_id, "likes_count")

    async def unlike_post(self, user: User, post_id: int) -> int:
        await self._disengage(Like, user, post_id, "Like not found")
        return await self._counter(post_id, "likes_count")

    async def get_post_likes(self, post_id: int, page: int = 1, limit: int = 20) -> UserListResponse:
        """Users who liked a post, most recent first"""
        await self._get_post(post_id)
        stmt = select(User).join(Like, Like.user_id == User.id).where(Like.post_id == post_id)
        total = await self.db.scalar(select(func.count(Like.id)).where(Like.post_id == post_id))
        return await self._user_page(stmt.order_by(Like.created_at.desc(), Like.id.desc()), total, page, limit)

    # ============ Reposts ============

    async def repost(self, user: User, post_id: int) -> int:
        """Repost a post; returns the new repost count"""
        post = await self._engage(Repost, user, post_id, "Post already reposted")
        logger.info(f"User {user.id} reposted post {post_id}")
        await self.relay.notify_repost(post.author_id, user.id, user.username, post_id)
        return await self._counter(post_id, "reposts_count")

    async def unrepost(self, user: User, post_id: int) -> int:
        await self._disengage(Repost, user, post_id, "Repost not found")
        return await self._counter(post_id, "reposts_count")

    # ============ Follows ============

    async def _find_follow(self, follower_id: int, following_id: int) -> Optional[Follow]:
        result = await self.db.execute(
            select(Follow).where(
                Follow.follower_id == follower_id,
                Follow.following_id == following_id
            )
        )
        return result.scalar_one_or_none()

    async def _get_user(self, user_id: int) -> User:
        user = await self.db.get(User, user_id)
        if user is None or not user.is_active:
            raise NotFoundError("User not found")
        return user

    async def follow_user(self, user: User, target_id: int) -> Follow:
        """Follow another user"""
        if user.id == target_id:
            raise ConflictError("You cannot follow yourself")
        await self._get_user(target_id)

        if await self._find_follow(user.id, target_id) is not None:
            raise ConflictError("Already following this user")

        follow = Follow(follower_id=user.id, following_id=target_id)
        self.db.add(follow)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("Already following this user")

        logger.info(f"Created follow: {user.id} -> {target_id}")
        await self.fanout.on_follow_changed(user.id, target_id)
        await self.relay.notify_follow(target_id, user.id, user.username)
        return follow

    async def unfollow_user(self, user: User, target_id: int) -> None:
        result = await self.db.execute(
            delete(Follow)
            .where(Follow.follower_id == user.id, Follow.following_id == target_id)
            .execution_options(synchronize_session=False)
        )
        if not result.rowcount:
            await self.db.rollback()
            raise NotFoundError("Not following this user")
        await self.db.commit()

        logger.info(f"Deleted follow: {user.id} -> {target_id}")
        await self.fanout.on_follow_changed(user.id, target_id)

    async def get_followers(self, user_id: int, page: int = 1, limit: int = 20) -> UserListResponse:
        await self._get_user(user_id)
        stmt = select(User).join(Follow, Follow.follower_id == User.id).where(Follow.following_id == user_id)
        total = await self.db.scalar(select(func.count(Follow.id)).where(Follow.following_id == user_id))
        return await self._user_page(stmt.order_by(Follow.created_at.desc(), Follow.id.desc()), total, page, limit)

    async def get_following(self, user_id: int, page: int = 1, limit: int = 20) -> UserListResponse:
        await self._get_user(user_id)
        stmt = select(User).join(Follow, Follow.following_id == User.id).where(Follow.follower_id == user_id)
        total = await self.db.scalar(select(func.count(Follow.id)).where(Follow.follower_id == user_id))
        return await self._user_page(stmt.order_by(Follow.created_at.desc(), Follow.id.desc()), total, page, limit)

    async def _user_page(self, stmt, total: int, page: int, limit: int) -> UserListResponse:
        result = await self.db.execute(stmt.offset((page - 1) * limit).limit(limit))
        users = result.scalars().all()
        total_pages = (total + limit - 1) // limit

        return UserListResponse(
            users=[AuthorSummary.model_validate(u) for u in users],
            pagination=PageInfo(
                page=page,
                limit=limit,
                total=total,
                total_pages=total_pages,
                has_more=page < total_pages
            )
        )
