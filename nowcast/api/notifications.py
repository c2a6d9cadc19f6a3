from fastapi import APIRouter, Depends, HTTPException, status, Query, WebSocket, WebSocketDisconnect
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import json
import logging

from nowcast.schemas.notification_schema import MarkReadRequest, NotificationListResponse
from nowcast.services.notification_service import NotificationService
from nowcast.services.auth_service import decode_access_token, get_current_user
from nowcast.services.container import AppServices
from nowcast.db.session import get_db
from nowcast.models.user import User
from nowcast.utils.errors import AppError

logger = logging.getLogger(__name__)

router = APIRouter()

@router.get("/", response_model=NotificationListResponse)
async def get_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=50),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get user's notifications"""
    try:
        service = NotificationService(db)
        return await service.get_user_notifications(current_user.id, page, limit)
    except (AppError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error getting notifications: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get notifications"
        )

@router.post("/read")
async def mark_notifications_read(
    body: Optional[MarkReadRequest] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Mark the given notifications, or all unread ones, as read"""
    try:
        service = NotificationService(db)
        count = await service.mark_read(current_user.id, body.ids if body else None)
        return {"message": f"Marked {count} notifications as read", "updated": count}
    except (AppError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error marking notifications as read: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to mark notifications as read"
        )

@router.get("/unread-count")
async def get_unread_count(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get the number of unread notifications"""
    try:
        service = NotificationService(db)
        return {"unread_count": await service.get_unread_count(current_user.id)}
    except (AppError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error getting unread count: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get unread count"
        )

@router.websocket("/ws")
async def websocket_notifications(websocket: WebSocket, token: str = ""):
    """WebSocket endpoint for real-time notifications"""
    services: AppServices = websocket.app.state.services

    token_data = decode_access_token(token, services.settings) if token else None
    if token_data is None:
        await websocket.close(code=1008)  # Policy violation
        return

    async with services.session_factory() as db:
        user = await db.get(User, token_data.user_id)
        if user is None or not user.is_active:
            await websocket.close(code=1008)
            return
        unread_count = await NotificationService(db).get_unread_count(user.id)

    user_id = token_data.user_id
    if not await services.ws_manager.connect(user_id, websocket):
        return

    try:
        await websocket.send_text(json.dumps({
            "type": "init",
            "data": {"unread_count": unread_count}
        }))

        # Keep connection alive; the relay pushes notifications on its own
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                continue

            if isinstance(message, dict) and message.get("type") == "ping":
                await websocket.send_text(json.dumps({
                    "type": "pong",
                    "data": {"timestamp": message.get("timestamp")}
                }))
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected for user {user_id}")
    except Exception as e:
        logger.error(f"WebSocket error for user {user_id}: {e}")
    finally:
        await services.ws_manager.disconnect(user_id, websocket)
