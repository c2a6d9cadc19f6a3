from pydantic import BaseModel, ConfigDict, Field, HttpUrl
from typing import Optional, List
from datetime import datetime

class AuthorSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    avatar: Optional[str] = None

class UserInDB(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    bio: Optional[str] = None
    avatar: Optional[str] = None
    created_at: datetime

class UserUpdate(BaseModel):
    bio: Optional[str] = Field(None, max_length=160)
    avatar: Optional[HttpUrl] = None

class UserProfile(BaseModel):
    """Public profile; everything except ``is_following`` is cacheable"""
    id: int
    username: str
    bio: Optional[str] = None
    avatar: Optional[str] = None
    created_at: datetime
    followers_count: int = 0
    following_count: int = 0
    posts_count: int = 0
    is_following: bool = False

class PageInfo(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_more: bool

class UserListResponse(BaseModel):
    """User list response with page/limit pagination"""
    users: List[AuthorSummary]
    pagination: PageInfo
