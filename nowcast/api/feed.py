from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
import logging

from nowcast.config import settings
from nowcast.schemas.post_schema import FeedPage, PostResponse
from nowcast.services.feed_service import FeedService
from nowcast.services.auth_service import get_current_user, get_optional_user
from nowcast.services.container import AppServices, get_services
from nowcast.db.session import get_db
from nowcast.models.user import User
from nowcast.utils.errors import AppError
from nowcast.utils.rate_limit import RateLimit

logger = logging.getLogger(__name__)

router = APIRouter()

read_rate_limit = RateLimit("read", settings.RATE_LIMIT_PER_MINUTE, 60)

@router.get("/", response_model=FeedPage)
async def get_feed(
    limit: int = Query(20, ge=1, le=50),
    cursor: Optional[str] = None,
    _=Depends(read_rate_limit),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: AppServices = Depends(get_services)
):
    """Get the authenticated user's home timeline"""
    try:
        feed_service = FeedService(db, services.cache, services.settings)
        return await feed_service.get_home_feed(current_user.id, limit, cursor)
    except (AppError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error getting feed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get feed"
        )

@router.get("/explore", response_model=FeedPage)
async def explore_posts(
    limit: int = Query(20, ge=1, le=50),
    cursor: Optional[str] = None,
    _=Depends(read_rate_limit),
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
    services: AppServices = Depends(get_services)
):
    """Explore posts (for non-logged in users or to discover new content)"""
    try:
        feed_service = FeedService(db, services.cache, services.settings)
        user_id = current_user.id if current_user else None
        return await feed_service.get_explore_feed(limit, cursor, viewer_id=user_id)
    except (AppError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error getting explore feed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get explore feed"
        )

@router.get("/trending", response_model=List[PostResponse])
async def trending_posts(
    limit: int = Query(10, ge=1, le=50),
    _=Depends(read_rate_limit),
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
    services: AppServices = Depends(get_services)
):
    """Most engaged posts of the last day"""
    try:
        feed_service = FeedService(db, services.cache, services.settings)
        user_id = current_user.id if current_user else None
        return await feed_service.get_trending_posts(limit, viewer_id=user_id)
    except (AppError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error getting trending posts: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get trending posts"
        )
