from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import logging

from nowcast.config import settings
from nowcast.schemas.post_schema import FeedPage, PostCreate, PostDetail, PostResponse, PostUpdate
from nowcast.services.post_service import PostService
from nowcast.services.auth_service import get_current_user, get_optional_user
from nowcast.services.container import AppServices, get_services
from nowcast.db.session import get_db
from nowcast.models.user import User
from nowcast.utils.errors import AppError
from nowcast.utils.rate_limit import RateLimit

logger = logging.getLogger(__name__)

router = APIRouter()

def _post_service(db: AsyncSession, services: AppServices) -> PostService:
    return PostService(db, services.cache, services.relay, services.settings)

@router.post("/", response_model=PostResponse, status_code=status.HTTP_201_CREATED)
async def create_post(
    post_data: PostCreate,
    _=Depends(RateLimit("post", settings.POST_RATE_LIMIT, settings.POST_RATE_WINDOW)),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: AppServices = Depends(get_services)
):
    """Create a new post, or a reply when parent_id is set"""
    try:
        return await _post_service(db, services).create_post(current_user, post_data)
    except (AppError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Create post error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create post"
        )

@router.get("/{post_id}", response_model=PostDetail)
async def get_post(
    post_id: int,
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
    services: AppServices = Depends(get_services)
):
    """Get a post by ID"""
    try:
        viewer_id = current_user.id if current_user else None
        return await _post_service(db, services).get_post(post_id, viewer_id)
    except (AppError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Get post error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get post"
        )

@router.get("/{post_id}/replies", response_model=FeedPage)
async def get_post_replies(
    post_id: int,
    limit: int = Query(20, ge=1, le=50),
    cursor: Optional[str] = None,
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
    services: AppServices = Depends(get_services)
):
    """Replies to a post, newest first"""
    try:
        viewer_id = current_user.id if current_user else None
        return await _post_service(db, services).get_post_replies(post_id, limit, cursor, viewer_id)
    except (AppError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Get replies error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get replies"
        )

@router.put("/{post_id}", response_model=PostResponse)
async def update_post(
    post_id: int,
    post_data: PostUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: AppServices = Depends(get_services)
):
    """Update a post"""
    try:
        return await _post_service(db, services).update_post(post_id, current_user, post_data)
    except (AppError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Update post error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update post"
        )

@router.delete("/{post_id}")
async def delete_post(
    post_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: AppServices = Depends(get_services)
):
    """Delete a post together with its replies"""
    try:
        await _post_service(db, services).delete_post(post_id, current_user)
        return {"message": "Post deleted successfully"}
    except (AppError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Delete post error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete post"
        )
