from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from nowcast.config import settings
from nowcast.schemas.auth_schema import RegisterRequest, TokenResponse
from nowcast.schemas.user_schema import UserInDB
from nowcast.services.auth_service import AuthService, get_current_user
from nowcast.services.container import AppServices, get_services
from nowcast.db.session import get_db
from nowcast.models.user import User
from nowcast.utils.errors import AppError, UnauthorizedError
from nowcast.utils.rate_limit import RateLimit

logger = logging.getLogger(__name__)

router = APIRouter()

auth_rate_limit = RateLimit("auth", settings.AUTH_RATE_LIMIT, settings.AUTH_RATE_WINDOW)

@router.post("/register", response_model=UserInDB, status_code=status.HTTP_201_CREATED)
async def register(
    user_data: RegisterRequest,
    _=Depends(auth_rate_limit),
    db: AsyncSession = Depends(get_db),
    services: AppServices = Depends(get_services)
):
    """Register a new user"""
    try:
        auth_service = AuthService(db, services.settings)
        return await auth_service.create_user(user_data)
    except (AppError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Registration error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Registration failed"
        )

@router.post("/login", response_model=TokenResponse)
async def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    _=Depends(auth_rate_limit),
    db: AsyncSession = Depends(get_db),
    services: AppServices = Depends(get_services)
):
    """Login with username or email and return an access token"""
    try:
        auth_service = AuthService(db, services.settings)

        user = await auth_service.authenticate_user(
            form_data.username,
            form_data.password
        )

        if not user:
            raise UnauthorizedError("Incorrect username or password")

        return TokenResponse(
            access_token=auth_service.create_access_token(user),
            expires_in=services.settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
        )
    except (AppError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Login error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Login failed"
        )

@router.get("/me", response_model=UserInDB)
async def read_me(current_user: User = Depends(get_current_user)):
    """Get the authenticated user"""
    return current_user
