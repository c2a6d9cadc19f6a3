import asyncio
import json

import pytest
from sqlalchemy import select, func

from nowcast.models.notification import Notification
from nowcast.schemas.notification_schema import NotificationType
from nowcast.schemas.post_schema import PostCreate
from nowcast.services.interaction_service import InteractionService
from nowcast.services.notification_service import NotificationService
from nowcast.services.post_service import PostService
from nowcast.tests.fakes import FakeWebSocket, next_handled

async def count_notifications(test_db, **filters) -> int:
    stmt = select(func.count(Notification.id))
    for column, value in filters.items():
        stmt = stmt.where(getattr(Notification, column) == value)
    return await test_db.scalar(stmt)

async def test_relay_persists_and_pushes_to_online_recipient(services, handled, test_db, make_user):
    author = await make_user("author")
    fan = await make_user("fan")
    socket = FakeWebSocket()
    assert await services.ws_manager.connect(author.id, socket)

    assert await services.relay.notify_like(author.id, fan.id, "fan", post_id=None) is True
    notification = await next_handled(handled)

    assert notification.user_id == author.id
    assert notification.type == "LIKE"
    assert notification.read is False
    assert await count_notifications(test_db, user_id=author.id) == 1

    assert len(socket.sent) == 1
    assert socket.sent[0]["type"] == "notification"
    assert socket.sent[0]["data"]["actor_name"] == "fan"
    assert socket.sent[0]["data"]["message"] == "fan liked your post"

async def test_offline_recipient_still_gets_a_record(services, handled, test_db, make_user):
    author = await make_user("author")
    fan = await make_user("fan")

    await services.relay.notify_follow(author.id, fan.id, "fan")
    notification = await next_handled(handled)

    assert notification.type == "FOLLOW"
    assert await count_notifications(test_db, user_id=author.id, type="FOLLOW") == 1

async def test_self_notifications_are_suppressed(services, handled, test_db, make_user):
    author = await make_user("author")
    fan = await make_user("fan")

    for kind in NotificationType:
        assert await services.relay.notify(kind, author.id, author.id, "author") is False

    # Events on the channel are handled in order, so the first one through is the real one
    await services.relay.notify_reply(author.id, fan.id, "fan", post_id=None)
    notification = await next_handled(handled)

    assert notification.actor_id == fan.id
    assert await count_notifications(test_db) == 1

async def test_malformed_channel_messages_are_skipped(services, handled, test_db, make_user):
    author = await make_user("author")
    fan = await make_user("fan")

    await services.publisher.publish(services.settings.NOTIFICATION_CHANNEL, "not json")
    await services.publisher.publish(services.settings.NOTIFICATION_CHANNEL, json.dumps({"type": "LIKE"}))
    await services.relay.notify_repost(author.id, fan.id, "fan", post_id=None)

    notification = await next_handled(handled)
    assert notification.type == "REPOST"
    assert services.relay.running

async def test_publish_failure_drops_the_event(services, test_db, make_user, redis_server):
    author = await make_user("author")
    fan = await make_user("fan")
    redis_server.connected = False

    assert await services.relay.notify_like(author.id, fan.id, "fan", post_id=None) is False
    assert await count_notifications(test_db) == 0

async def test_start_is_idempotent(services):
    await services.relay.start()
    task = services.relay._task
    await services.relay.start()

    assert services.relay._task is task
    await services.relay.stop()
    assert not services.relay.running

@pytest.fixture
async def published(services, monkeypatch):
    """Start the relay but only record the events it receives"""
    queue: asyncio.Queue = asyncio.Queue()

    async def record(event):
        await queue.put(event)

    monkeypatch.setattr(services.relay, "handle_event", record)
    await services.relay.start()
    return queue

async def test_writes_publish_the_matching_kinds(services, published, test_db, make_user, make_post):
    author = await make_user("author")
    fan = await make_user("fan")
    mentioned = await make_user("mentioned")
    post = await make_post(author, "original")

    interactions = InteractionService(test_db, services.cache, services.relay)
    posts = PostService(test_db, services.cache, services.relay, services.settings)

    await interactions.like_post(fan, post.id)
    await interactions.repost(fan, post.id)
    await interactions.follow_user(fan, author.id)
    # Mentioning the parent author only yields the reply notification for them
    await posts.create_post(fan, PostCreate(text="@author @Mentioned @fan hi", parent_id=post.id))

    received = [await next_handled(published) for _ in range(5)]
    kinds = sorted((event.user_id, event.type.value) for event in received)

    assert kinds == sorted([
        (author.id, "LIKE"),
        (author.id, "REPOST"),
        (author.id, "FOLLOW"),
        (author.id, "REPLY"),
        (mentioned.id, "MENTION"),
    ])

async def test_mark_read_is_scoped_and_idempotent(test_db, make_user):
    alice = await make_user("alice")
    bob = await make_user("bob")
    rows = [
        Notification(user_id=alice.id, type="LIKE", actor_id=bob.id, actor_name="bob"),
        Notification(user_id=alice.id, type="FOLLOW", actor_id=bob.id, actor_name="bob"),
        Notification(user_id=bob.id, type="LIKE", actor_id=alice.id, actor_name="alice"),
    ]
    test_db.add_all(rows)
    await test_db.commit()
    alice_first, _, bobs = (row.id for row in rows)

    service = NotificationService(test_db)

    # Bob's id is ignored for Alice
    assert await service.mark_read(alice.id, [alice_first, bobs]) == 1
    assert await service.mark_read(alice.id, [alice_first]) == 0
    assert await service.get_unread_count(alice.id) == 1
    assert await service.get_unread_count(bob.id) == 1

    assert await service.mark_read(alice.id) == 1
    assert await service.mark_read(alice.id) == 0
    assert await service.mark_read(alice.id, []) == 0
    assert await service.get_unread_count(alice.id) == 0
    assert await service.get_unread_count(bob.id) == 1

async def test_notification_list_pagination(test_db, make_user):
    alice = await make_user("alice")
    bob = await make_user("bob")
    test_db.add_all([
        Notification(user_id=alice.id, type="LIKE", actor_id=bob.id, actor_name="bob")
        for _ in range(3)
    ])
    await test_db.commit()

    service = NotificationService(test_db)
    first = await service.get_user_notifications(alice.id, page=1, limit=2)
    second = await service.get_user_notifications(alice.id, page=2, limit=2)

    assert first.total == 3
    assert first.unread_count == 3
    assert len(first.notifications) == 2
    assert first.has_more is True
    assert len(second.notifications) == 1
    assert second.has_more is False
    assert not {n.id for n in first.notifications} & {n.id for n in second.notifications}
