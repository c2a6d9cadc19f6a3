from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import logging

from nowcast.schemas.post_schema import FeedPage
from nowcast.schemas.user_schema import UserInDB, UserProfile, UserUpdate
from nowcast.services.post_service import PostService
from nowcast.services.user_service import UserService
from nowcast.services.auth_service import get_current_user, get_optional_user
from nowcast.services.container import AppServices, get_services
from nowcast.db.session import get_db
from nowcast.models.user import User
from nowcast.utils.errors import AppError

logger = logging.getLogger(__name__)

router = APIRouter()

@router.patch("/me", response_model=UserInDB)
async def update_me(
    user_data: UserUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: AppServices = Depends(get_services)
):
    """Update the authenticated user's profile"""
    try:
        user_service = UserService(db, services.cache, services.settings)
        return await user_service.update_me(current_user, user_data)
    except (AppError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error updating profile: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update profile"
        )

@router.get("/{username}", response_model=UserProfile)
async def get_profile(
    username: str,
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
    services: AppServices = Depends(get_services)
):
    """Get a user's public profile"""
    try:
        user_service = UserService(db, services.cache, services.settings)
        viewer_id = current_user.id if current_user else None
        return await user_service.get_profile(username, viewer_id)
    except (AppError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error getting profile: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get profile"
        )

@router.get("/{username}/posts", response_model=FeedPage)
async def get_user_posts(
    username: str,
    limit: int = Query(20, ge=1, le=50),
    cursor: Optional[str] = None,
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
    services: AppServices = Depends(get_services)
):
    """Posts by a specific user"""
    try:
        post_service = PostService(db, services.cache, services.relay, services.settings)
        viewer_id = current_user.id if current_user else None
        return await post_service.get_user_posts(username, limit, cursor, viewer_id)
    except (AppError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error getting user posts: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get user posts"
        )
