from sqlalchemy import Column, Integer, ForeignKey, UniqueConstraint, Index
from nowcast.models.base import BaseModel

class Repost(BaseModel):
    __tablename__ = "reposts"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    post_id = Column(Integer, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False)

    __table_args__ = (
        UniqueConstraint('user_id', 'post_id', name='unique_repost'),
        Index('ix_reposts_post_id', 'post_id'),
    )
