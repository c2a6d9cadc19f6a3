from sqlalchemy import Column, Integer, ForeignKey, UniqueConstraint, Index
from nowcast.models.base import BaseModel

class Like(BaseModel):
    __tablename__ = "likes"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    post_id = Column(Integer, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False)

    # At most one like per user per post
    __table_args__ = (
        UniqueConstraint('user_id', 'post_id', name='unique_like'),
        Index('ix_likes_post_id', 'post_id'),
    )
