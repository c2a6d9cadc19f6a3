from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_validator
from typing import Optional, List
from datetime import datetime

from nowcast.schemas.user_schema import AuthorSummary

class PostCreate(BaseModel):
    text: str = Field(..., min_length=1, max_length=280)
    parent_id: Optional[int] = None
    image_url: Optional[HttpUrl] = None

    @field_validator("text")
    @classmethod
    def text_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Post text is required")
        return value

class PostUpdate(BaseModel):
    text: Optional[str] = Field(None, min_length=1, max_length=280)
    image_url: Optional[HttpUrl] = None

class PostResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    text: str
    image_url: Optional[str] = None
    hashtags: List[str] = []
    author: AuthorSummary
    parent_id: Optional[int] = None
    likes_count: int = 0
    replies_count: int = 0
    reposts_count: int = 0
    created_at: datetime
    updated_at: datetime
    # Viewer-specific, never cached
    is_liked: bool = False
    is_reposted: bool = False

class ParentSummary(BaseModel):
    id: int
    text: str
    author: AuthorSummary

class PostDetail(PostResponse):
    parent: Optional[ParentSummary] = None

class FeedPage(BaseModel):
    items: List[PostResponse]
    has_more: bool
    next_cursor: Optional[str] = None
