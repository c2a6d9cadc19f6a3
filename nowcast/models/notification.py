from sqlalchemy import Column, String, Integer, ForeignKey, Boolean, Index
from nowcast.models.base import BaseModel

class Notification(BaseModel):
    __tablename__ = "notifications"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)  # recipient
    type = Column(String(20), nullable=False)  # LIKE, REPLY, REPOST, FOLLOW, MENTION
    actor_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    actor_name = Column(String(30), nullable=False)
    post_id = Column(Integer, ForeignKey("posts.id", ondelete="SET NULL"), nullable=True)
    read = Column(Boolean, default=False, nullable=False)

    # Indexes for better performance
    __table_args__ = (
        Index('ix_notifications_user_id_read', 'user_id', 'read'),
        Index('ix_notifications_created_at', 'created_at'),
    )
