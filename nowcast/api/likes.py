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

def _interactions(db: AsyncSession, services: AppServices) -> InteractionService:
    return InteractionService(db, services.cache, services.relay)

@router.post("/posts/{post_id}/like")
async def like_post(
    post_id: int,
    _=Depends(interaction_rate_limit),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: AppServices = Depends(get_services)
):
    """Like a post"""
    try:
        likes_count = await _interactions(db, services).like_post(current_user, post_id)
        return {"message": "Post liked", "post_id": post_id, "likes_count": likes_count}
    except (AppError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error liking post: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to like post"
        )

@router.delete("/posts/{post_id}/like")
async def unlike_post(
    post_id: int,
    _=Depends(interaction_rate_limit),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: AppServices = Depends(get_services)
):
    """Unlike a post"""
    try:
        likes_count = await _interactions(db, services).unlike_post(current_user, post_id)
        return {"message": "Post unliked", "post_id": post_id, "likes_count": likes_count}
    except (AppError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error unliking post: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to unlike post"
        )

@router.get("/posts/{post_id}/likes", response_model=UserListResponse)
async def get_post_likes(
    post_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
    services: AppServices = Depends(get_services)
):
    """Users who liked a post"""
    try:
        return await _interactions(db, services).get_post_likes(post_id, page, limit)
    except (AppError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error getting post likes: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get post likes"
        )

@router.post("/posts/{post_id}/repost")
async def repost(
    post_id: int,
    _=Depends(interaction_rate_limit),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: AppServices = Depends(get_services)
):
    """Repost a post"""
    try:
        reposts_count = await _interactions(db, services).repost(current_user, post_id)
        return {"message": "Post reposted", "post_id": post_id, "reposts_count": reposts_count}
    except (AppError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error reposting post: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to repost"
        )

@router.delete("/posts/{post_id}/repost")
async def unrepost(
    post_id: int,
    _=Depends(interaction_rate_limit),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: AppServices = Depends(get_services)
):
    """Undo a repost"""
    try:
        reposts_count = await _interactions(db, services).unrepost(current_user, post_id)
        return {"message": "Repost removed", "post_id": post_id, "reposts_count": reposts_count}
    except (AppError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error removing repost: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to remove repost"
        )
