"""
User Service for handling profile reads and updates
"""
import logging
from typing import Any, Dict, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from nowcast.config import Settings
from nowcast.models.follow import Follow
from nowcast.models.post import Post
from nowcast.models.user import User
from nowcast.schemas.user_schema import UserProfile, UserUpdate
from nowcast.services.cache_service import CacheNamespace, CacheService, CacheStatus
from nowcast.utils.errors import NotFoundError

logger = logging.getLogger(__name__)

class UserService:
    def __init__(self, db: AsyncSession, cache: CacheService, settings: Settings):
        self.db = db
        self.cache = cache
        self.settings = settings

    async def get_user_by_username(self, username: str) -> User:
        result = await self.db.execute(select(User).where(User.username == username))
        user = result.scalar_one_or_none()
        if user is None or not user.is_active:
            raise NotFoundError("User not found")
        return user

    async def _get_user_post_count(self, user_id: int) -> int:
        """Get user's post count"""
        stmt = select(func.count(Post.id)).where(Post.author_id == user_id)
        return await self.db.scalar(stmt) or 0

    async def _get_user_follower_count(self, user_id: int) -> int:
        """Get user's follower count"""
        stmt = select(func.count(Follow.id)).where(Follow.following_id == user_id)
        return await self.db.scalar(stmt) or 0

    async def _get_user_following_count(self, user_id: int) -> int:
        """Get user's following count"""
        stmt = select(func.count(Follow.id)).where(Follow.follower_id == user_id)
        return await self.db.scalar(stmt) or 0

    async def _build_snapshot(self, user: User) -> Dict[str, Any]:
        profile = UserProfile(
            id=user.id,
            username=user.username,
            bio=user.bio,
            avatar=user.avatar,
            created_at=user.created_at,
            followers_count=await self._get_user_follower_count(user.id),
            following_count=await self._get_user_following_count(user.id),
            posts_count=await self._get_user_post_count(user.id)
        )
        return profile.model_dump(mode="json", exclude={"is_following"})

    async def get_profile(self, username: str, viewer_id: Optional[int] = None) -> UserProfile:
        """Public profile with counts; ``is_following`` is relative to the viewer"""
        user = await self.get_user_by_username(username)

        cached = await self.cache.get_snapshot(CacheNamespace.USER, user.id)
        if cached.hit:
            snapshot = cached.value
        else:
            snapshot = await self._build_snapshot(user)
            if cached.status is CacheStatus.MISS:
                await self.cache.set_snapshot(
                    CacheNamespace.USER, user.id, snapshot, ttl=self.settings.USER_CACHE_TTL
                )

        profile = UserProfile.model_validate(snapshot)
        if viewer_id is not None and viewer_id != user.id:
            profile.is_following = await self.db.scalar(
                select(func.count(Follow.id)).where(
                    Follow.follower_id == viewer_id,
                    Follow.following_id == user.id
                )
            ) > 0
        return profile

    async def update_me(self, user: User, user_data: UserUpdate) -> User:
        """Update the caller's bio and avatar"""
        update_data = user_data.model_dump(exclude_unset=True)
        if "bio" in update_data:
            user.bio = update_data["bio"]
        if "avatar" in update_data:
            user.avatar = str(update_data["avatar"]) if update_data["avatar"] else None

        await self.db.commit()
        await self.db.refresh(user)

        await self.cache.invalidate_snapshot(CacheNamespace.USER, user.id)
        logger.info(f"Updated profile of user {user.id}")
        return user
