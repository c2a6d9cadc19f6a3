"""
Notification relay and read-side service.

Write paths call ``NotificationRelay.notify``, which only publishes an event
on the shared channel and returns. A single consumer task per process reads
the channel, persists each event as a ``Notification`` row and pushes it to
the recipient's open sockets. When the publish itself fails the event is
dropped: no row is written and nothing is delivered. Losing a "liked your
post" alert is accepted in exchange for keeping the request path free of
notification latency.
"""
import asyncio
import json
import logging
from typing import Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError
from redis.asyncio import Redis
from sqlalchemy import select, update, func, and_
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from nowcast.models.notification import Notification
from nowcast.schemas.notification_schema import (
    NotificationEvent,
    NotificationListResponse,
    NotificationResponse,
    NotificationType
)
from nowcast.websocket.manager import ConnectionManager

logger = logging.getLogger(__name__)

TEMPLATES: Dict[NotificationType, str] = {
    NotificationType.LIKE: "{actor} liked your post",
    NotificationType.REPLY: "{actor} replied to your post",
    NotificationType.REPOST: "{actor} reposted your post",
    NotificationType.FOLLOW: "{actor} started following you",
    NotificationType.MENTION: "{actor} mentioned you in a post",
}

class NotificationRelay:
    def __init__(
        self,
        publisher: Redis,
        subscriber: Redis,
        session_factory: async_sessionmaker,
        ws_manager: ConnectionManager,
        channel: str = "notifications"
    ):
        self.publisher = publisher
        self.subscriber = subscriber
        self.session_factory = session_factory
        self.ws_manager = ws_manager
        self.channel = channel
        self._pubsub = None
        self._task: Optional[asyncio.Task] = None
        self._running = False

    # ============ Publish side ============

    async def notify(
        self,
        kind: NotificationType,
        recipient_id: int,
        actor_id: int,
        actor_name: str,
        post_id: Optional[int] = None
    ) -> bool:
        """
        Publish a notification event. Returns False when nothing was published,
        either because the actor is the recipient or because the channel is
        unreachable (the event is then lost).
        """
        if recipient_id == actor_id:
            return False

        event = NotificationEvent(
            type=kind,
            user_id=recipient_id,
            actor_id=actor_id,
            actor_name=actor_name,
            post_id=post_id,
            message=TEMPLATES[kind].format(actor=actor_name)
        )

        try:
            await self.publisher.publish(self.channel, event.model_dump_json())
            return True
        except Exception as e:
            logger.error(f"Dropping {kind.value} notification for user {recipient_id}: publish failed: {e}")
            return False

    async def notify_like(self, recipient_id: int, actor_id: int, actor_name: str, post_id: int) -> bool:
        return await self.notify(NotificationType.LIKE, recipient_id, actor_id, actor_name, post_id)

    async def notify_reply(self, recipient_id: int, actor_id: int, actor_name: str, post_id: int) -> bool:
        return await self.notify(NotificationType.REPLY, recipient_id, actor_id, actor_name, post_id)

    async def notify_repost(self, recipient_id: int, actor_id: int, actor_name: str, post_id: int) -> bool:
        return await self.notify(NotificationType.REPOST, recipient_id, actor_id, actor_name, post_id)

    async def notify_follow(self, recipient_id: int, actor_id: int, actor_name: str) -> bool:
        return await self.notify(NotificationType.FOLLOW, recipient_id, actor_id, actor_name)

    async def notify_mention(self, recipient_id: int, actor_id: int, actor_name: str, post_id: int) -> bool:
        return await self.notify(NotificationType.MENTION, recipient_id, actor_id, actor_name, post_id)

    # ============ Consumer side ============

    async def start(self):
        """Subscribe to the channel and start the consumer task (idempotent)"""
        if self._running:
            return

        self._pubsub = self.subscriber.pubsub()
        await self._pubsub.subscribe(self.channel)
        self._running = True
        self._task = asyncio.create_task(self._listen())
        logger.info(f"Notification relay listening on '{self.channel}'")

    async def stop(self):
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._pubsub is not None:
            try:
                await self._pubsub.unsubscribe(self.channel)
                await self._pubsub.aclose()
            except Exception as e:
                logger.error(f"Error closing notification pub/sub: {e}")
            self._pubsub = None
        logger.info("Notification relay stopped")

    @property
    def running(self) -> bool:
        return self._running

    async def _listen(self):
        while self._running:
            try:
                message = await self._pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Notification channel read error: {e}")
                await asyncio.sleep(1.0)
                continue

            if message is None or message.get("type") != "message":
                continue

            try:
                event = NotificationEvent.model_validate_json(message["data"])
            except (PydanticValidationError, ValueError, TypeError) as e:
                logger.warning(f"Skipping malformed notification message: {e}")
                continue

            try:
                await self.handle_event(event)
            except Exception as e:
                logger.error(f"Error handling {event.type.value} notification for user {event.user_id}: {e}")

    async def handle_event(self, event: NotificationEvent) -> Notification:
        """Persist an event, then push it to the recipient if they are connected"""
        async with self.session_factory() as session:
            notification = Notification(
                user_id=event.user_id,
                type=event.type.value,
                actor_id=event.actor_id,
                actor_name=event.actor_name,
                post_id=event.post_id,
                read=False
            )
            session.add(notification)
            await session.commit()

        if self.ws_manager.is_online(event.user_id):
            data = NotificationResponse.model_validate(notification).model_dump(mode="json")
            data["message"] = event.message
            delivered = await self.ws_manager.push_to_user(
                event.user_id,
                {"type": "notification", "data": data}
            )
            logger.debug(f"Delivered notification {notification.id} to {delivered} socket(s)")

        return notification

class NotificationService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user_notifications(
        self,
        user_id: int,
        page: int = 1,
        limit: int = 20
    ) -> NotificationListResponse:
        """Get notifications for a user, newest first"""
        total = await self.db.scalar(
            select(func.count(Notification.id)).where(Notification.user_id == user_id)
        )

        stmt = select(Notification).where(
            Notification.user_id == user_id
        ).order_by(
            Notification.created_at.desc(), Notification.id.desc()
        ).offset((page - 1) * limit).limit(limit)

        result = await self.db.execute(stmt)
        notifications = result.scalars().all()

        return NotificationListResponse(
            notifications=[NotificationResponse.model_validate(n) for n in notifications],
            total=total,
            page=page,
            limit=limit,
            has_more=page * limit < total,
            unread_count=await self.get_unread_count(user_id)
        )

    async def get_unread_count(self, user_id: int) -> int:
        return await self.db.scalar(
            select(func.count(Notification.id)).where(
                and_(Notification.user_id == user_id, Notification.read == False)  # noqa: E712
            )
        )

    async def mark_read(self, user_id: int, ids: Optional[List[int]] = None) -> int:
        """
        Mark notifications as read. With ``ids`` only those are touched, and ids
        that belong to other users are ignored; without, every unread one is.
        Returns how many rows changed state.
        """
        stmt = update(Notification).where(
            and_(Notification.user_id == user_id, Notification.read == False)  # noqa: E712
        )
        if ids is not None:
            if not ids:
                return 0
            stmt = stmt.where(Notification.id.in_(ids))

        result = await self.db.execute(
            stmt.values(read=True).execution_options(synchronize_session=False)
        )
        await self.db.commit()

        if result.rowcount:
            logger.info(f"Marked {result.rowcount} notifications as read for user {user_id}")
        return result.rowcount
