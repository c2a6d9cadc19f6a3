from sqlalchemy import Column, String, Boolean, Text, DateTime, Index
from sqlalchemy.orm import relationship
from nowcast.models.base import BaseModel, utc_now_ms

class User(BaseModel):
    __tablename__ = "users"

    username = Column(String(30), unique=True, index=True, nullable=False)
    email = Column(String(100), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    bio = Column(String(160))
    avatar = Column(Text)
    is_active = Column(Boolean, default=True, nullable=False)
    updated_at = Column(DateTime, default=utc_now_ms, onupdate=utc_now_ms, nullable=False)

    # Relationships
    posts = relationship("Post", back_populates="author", passive_deletes=True)

    __table_args__ = (
        Index('ix_users_created_at', 'created_at'),
    )
