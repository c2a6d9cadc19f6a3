from sqlalchemy import Column, String, Text, Integer, ForeignKey, DateTime, JSON, Index
from sqlalchemy.orm import relationship
from nowcast.models.base import BaseModel, utc_now_ms

class Post(BaseModel):
    __tablename__ = "posts"

    author_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    text = Column(String(280), nullable=False)
    image_url = Column(Text)
    hashtags = Column(JSON, default=list, nullable=False)
    # Replies point at their parent; a deleted parent takes its thread with it
    parent_id = Column(Integer, ForeignKey("posts.id", ondelete="CASCADE"), nullable=True)
    updated_at = Column(DateTime, default=utc_now_ms, onupdate=utc_now_ms, nullable=False)

    # Denormalized counts, only ever changed in the same transaction as the relation row
    likes_count = Column(Integer, default=0, nullable=False)
    replies_count = Column(Integer, default=0, nullable=False)
    reposts_count = Column(Integer, default=0, nullable=False)

    # Relationships
    author = relationship("User", back_populates="posts", lazy="joined")

    __table_args__ = (
        Index('ix_posts_author_id', 'author_id'),
        Index('ix_posts_parent_id', 'parent_id'),
        Index('ix_posts_created_at_id', 'created_at', 'id'),
        Index('ix_posts_likes_count', 'likes_count'),
    )
