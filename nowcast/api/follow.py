from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from nowcast.config import settings
from nowcast.schemas.user_schema import UserListResponse
from nowcast.services.interaction_service import InteractionService
from nowcast.services.auth_service import get_current_user
from nowcast.services.container import AppServices, get_services
from nowcast.db.session import get_db
from nowcast.models.user import User
from nowcast.utils.errors import AppError
from nowcast.utils.rate_limit import RateLimit

logger = logging.getLogger(__name__)

router = APIRouter()

interaction_rate_limit = RateLimit("interaction", settings.INTERACTION_RATE_LIMIT, settings.INTERACTION_RATE_WINDOW)

@router.post("/users/{user_id}/follow", status_code=status.HTTP_201_CREATED)
async def follow_user(
    user_id: int,
    _=Depends(interaction_rate_limit),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: AppServices = Depends(get_services)
):
    """Follow a user"""
    try:
        service = InteractionService(db, services.cache, services.relay)
        await service.follow_user(current_user, user_id)
        return {"message": "Followed user", "user_id": user_id}
    except (AppError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error following user: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to follow user"
        )

@router.delete("/users/{user_id}/follow")
async def unfollow_user(
    user_id: int,
    _=Depends(interaction_rate_limit),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: AppServices = Depends(get_services)
):
    """Unfollow a user"""
    try:
        service = InteractionService(db, services.cache, services.relay)
        await service.unfollow_user(current_user, user_id)
        return {"message": "Unfollowed user", "user_id": user_id}
    except (AppError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error unfollowing user: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to unfollow user"
        )

@router.get("/users/{user_id}/followers", response_model=UserListResponse)
async def get_followers(
    user_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
    services: AppServices = Depends(get_services)
):
    """Get a user's followers"""
    try:
        service = InteractionService(db, services.cache, services.relay)
        return await service.get_followers(user_id, page, limit)
    except (AppError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error getting followers: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get followers"
        )

@router.get("/users/{user_id}/following", response_model=UserListResponse)
async def get_following(
    user_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
    services: AppServices = Depends(get_services)
):
    """Get the users someone follows"""
    try:
        service = InteractionService(db, services.cache, services.relay)
        return await service.get_following(user_id, page, limit)
    except (AppError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error getting following: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get following"
        )
