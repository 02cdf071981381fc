# app/core/errors.py
"""
Domain errors raised by the service layer.

Each error carries a stable `code` for the response envelope and the HTTP
status the boundary layer maps it to. Services never return error values;
they raise one of these and let the exception handlers in `app.main`
render `{"success": false, "error": {"code", "message"}}`.
"""


class AppError(Exception):
    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str = "Unexpected error"):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {"code": self.code, "message": self.message}


class ValidationError(AppError):
    code = "VALIDATION_ERROR"
    status_code = 400


class UnauthorizedError(AppError):
    code = "UNAUTHORIZED"
    status_code = 401


class ForbiddenError(AppError):
    code = "FORBIDDEN"
    status_code = 403


class NotFoundError(AppError):
    code = "NOT_FOUND"
    status_code = 404


class InvalidStateTransitionError(AppError):
    code = "INVALID_STATE_TRANSITION"
    status_code = 409


class DuplicateRequestError(AppError):
    code = "DUPLICATE_REQUEST"
    status_code = 409


class DuplicateRatingError(AppError):
    code = "DUPLICATE_RATING"
    status_code = 409


class ConflictError(AppError):
    code = "CONFLICT"
    status_code = 409


class RateLimitedError(AppError):
    code = "RATE_LIMITED"
    status_code = 429
