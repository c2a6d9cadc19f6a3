"""
Models package for Nowcast
"""
from nowcast.models.base import Base, BaseModel
from nowcast.models.user import User
from nowcast.models.post import Post
from nowcast.models.like import Like
from nowcast.models.repost import Repost
from nowcast.models.follow import Follow
from nowcast.models.notification import Notification

__all__ = [
    'Base',
    'BaseModel',
    'User',
    'Post',
    'Like',
    'Repost',
    'Follow',
    'Notification',
]
