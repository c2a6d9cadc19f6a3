from datetime import datetime, timedelta
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from nowcast.config import Settings
from nowcast.schemas.auth_schema import RegisterRequest, TokenData
from nowcast.models.user import User
from nowcast.db.session import get_db
from nowcast.utils.errors import ConflictError, UnauthorizedError

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)

def decode_access_token(token: str, settings: Settings) -> Optional[TokenData]:
    """Verify a JWT access token; invalid or expired tokens yield None"""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None

    if payload.get("type") != "access":
        return None

    username = payload.get("sub")
    user_id = payload.get("user_id")
    if username is None or user_id is None:
        return None

    return TokenData(username=username, user_id=user_id)

class AuthService:
    def __init__(self, db: AsyncSession, settings: Settings):
        self.db = db
        self.settings = settings

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        """Verify a password against its hash"""
        return pwd_context.verify(plain_password, hashed_password)

    def get_password_hash(self, password: str) -> str:
        """Hash a password"""
        return pwd_context.hash(password)

    async def create_user(self, user_data: RegisterRequest) -> User:
        """Create a new user"""
        stmt = select(User).where(
            or_(User.email == user_data.email, User.username == user_data.username)
        )
        result = await self.db.execute(stmt)
        existing = result.scalars().first()

        if existing:
            if existing.email == user_data.email:
                raise ConflictError("Email already registered")
            raise ConflictError("Username already taken")

        user = User(
            username=user_data.username,
            email=user_data.email,
            hashed_password=self.get_password_hash(user_data.password),
            bio=user_data.bio,
            is_active=True
        )

        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("Username or email already taken")
        await self.db.refresh(user)

        logger.info(f"Registered user {user.id} ({user.username})")
        return user

    async def authenticate_user(self, username: str, password: str) -> Optional[User]:
        """Authenticate by username or email"""
        stmt = select(User).where(
            (User.username == username) | (User.email == username)
        )
        result = await self.db.execute(stmt)
        user = result.scalar_one_or_none()

        if not user or not self.verify_password(password, user.hashed_password):
            return None

        if not user.is_active:
            raise UnauthorizedError("Inactive user")

        return user

    def create_access_token(self, user: User, expires_delta: Optional[timedelta] = None) -> str:
        """Create a JWT access token"""
        if expires_delta is None:
            expires_delta = timedelta(minutes=self.settings.ACCESS_TOKEN_EXPIRE_MINUTES)

        to_encode = {
            "sub": user.username,
            "user_id": user.id,
            "exp": datetime.utcnow() + expires_delta,
            "type": "access",
        }
        return jwt.encode(to_encode, self.settings.secret_key, algorithm=self.settings.ALGORITHM)

async def _user_from_token(token: Optional[str], request: Request, db: AsyncSession) -> Optional[User]:
    if not token:
        return None

    token_data = decode_access_token(token, request.app.state.services.settings)
    if token_data is None:
        return None

    user = await db.get(User, token_data.user_id)
    if user is None or not user.is_active:
        return None
    return user

async def get_current_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db)
) -> User:
    """Dependency to get current authenticated user"""
    user = await _user_from_token(token, request, db)
    if user is None:
        raise UnauthorizedError("Could not validate credentials")
    return user

async def get_optional_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db)
) -> Optional[User]:
    """Like get_current_user, but anonymous callers get None instead of a 401"""
    return await _user_from_token(token, request, db)
