"""
Domain error taxonomy.

Each error carries the HTTP status it maps to; the handler registered in
``nowcast.main`` turns them into JSON responses. Infrastructure failures
(cache, pub/sub) never appear here: they are logged and swallowed at the
cache and relay boundaries.
"""
from typing import Dict, List, Optional

class AppError(Exception):
    status_code: int = 500

    def __init__(self, message: str = "Internal Server Error", status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

class NotFoundError(AppError):
    status_code = 404

    def __init__(self, message: str = "Not Found"):
        super().__init__(message)

class ConflictError(AppError):
    status_code = 409

    def __init__(self, message: str = "Conflict"):
        super().__init__(message)

class ForbiddenError(AppError):
    status_code = 403

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message)

class UnauthorizedError(AppError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)

class TooManyRequestsError(AppError):
    status_code = 429

    def __init__(self, message: str = "Too Many Requests", remaining: int = 0, reset_in: int = 0):
        super().__init__(message)
        self.remaining = remaining
        self.reset_in = reset_in

class ValidationError(AppError):
    status_code = 422

    def __init__(self, message: str = "Validation Error", errors: Optional[Dict[str, List[str]]] = None):
        super().__init__(message)
        self.errors = errors or {}
