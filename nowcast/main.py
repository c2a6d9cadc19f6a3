from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Dict, List, Optional
import logging

from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text

from nowcast.config import Settings, settings
from nowcast.db.session import init_db
from nowcast.api import auth, users, posts, likes, follow, feed, notifications
from nowcast.services.container import AppServices
from nowcast.utils.errors import AppError, TooManyRequestsError, ValidationError

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Rate limiter
limiter = Limiter(key_func=get_remote_address)

async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    content = {"detail": exc.message}
    headers = {}

    if isinstance(exc, ValidationError):
        content["errors"] = exc.errors
    elif isinstance(exc, TooManyRequestsError):
        headers = {
            "Retry-After": str(exc.reset_in),
            "X-RateLimit-Remaining": str(exc.remaining),
            "X-RateLimit-Reset": str(exc.reset_in),
        }
    elif exc.status_code == 401:
        headers = {"WWW-Authenticate": "Bearer"}

    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)

async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Answer FastAPI's validation errors in the same shape as ValidationError"""
    errors: Dict[str, List[str]] = {}
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"] if part != "body") or "body"
        errors.setdefault(field, []).append(error["msg"])
    return JSONResponse(status_code=422, content={"detail": "Validation Error", "errors": errors})

def create_app(services: Optional[AppServices] = None, app_settings: Settings = settings) -> FastAPI:
    """Build the application; tests pass pre-built services"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup and shutdown events"""
        # Startup
        logger.info("Starting up...")
        app_services = services or AppServices.from_settings(app_settings)
        await init_db(app_services.engine)
        await app_services.start()
        app.state.services = app_services

        yield

        # Shutdown
        logger.info("Shutting down...")
        await app_services.close()

    app = FastAPI(
        title=app_settings.PROJECT_NAME,
        version=app_settings.VERSION,
        description="Timelines, fan-out and real-time notifications for a microblog",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
        lifespan=lifespan
    )
    if services is not None:
        app.state.services = services

    # Add rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-RateLimit-Remaining", "X-RateLimit-Reset", "Retry-After"],
    )

    # Include routers
    prefix = app_settings.API_V1_PREFIX
    app.include_router(auth.router, prefix=f"{prefix}/auth", tags=["Authentication"])
    app.include_router(users.router, prefix=f"{prefix}/users", tags=["Users"])
    app.include_router(posts.router, prefix=f"{prefix}/posts", tags=["Posts"])
    app.include_router(likes.router, prefix=f"{prefix}/likes", tags=["Likes"])
    app.include_router(follow.router, prefix=f"{prefix}/follow", tags=["Follow"])
    app.include_router(feed.router, prefix=f"{prefix}/feed", tags=["Feed"])
    app.include_router(notifications.router, prefix=f"{prefix}/notifications", tags=["Notifications"])

    @app.get("/")
    async def root():
        """Root endpoint with API information"""
        return {
            "message": f"Welcome to {app_settings.PROJECT_NAME}",
            "version": app_settings.VERSION,
            "docs": "/api/docs",
            "redoc": "/api/redoc"
        }

    @app.get("/health")
    @limiter.limit("10/minute")
    async def health_check(request: Request):
        """Health check endpoint"""
        app_services: AppServices = request.app.state.services

        try:
            async with app_services.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            database = "connected"
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            database = "unavailable"

        redis_ok = await app_services.cache.ping()
        return {
            "status": "healthy" if database == "connected" else "degraded",
            "database": database,
            "redis": "connected" if redis_ok else "unavailable",
            "cache": await app_services.cache.cache_stats() if redis_ok else None,
            "websocket_connections": app_services.ws_manager.get_connection_count(),
            "timestamp": datetime.utcnow().isoformat()
        }

    return app

app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "nowcast.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
