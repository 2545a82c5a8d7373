"""
Error hierarchy for the Tasks API.

Every error carries a code and an HTTP status, and renders to the same
{"message", "data"} envelope that successful responses use.
"""


class ApiError(Exception):
    """Base exception for all API errors."""

    def __init__(self, message: str, code: str, http_status: int = 500, details: dict = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.http_status = http_status
        self.details = details or {}

    def to_response(self) -> dict:
        return {"message": self.message, "data": {"code": self.code, **self.details}}


class ValidationError(ApiError):
    """Missing or invalid input field."""

    def __init__(self, message: str, field: str = None):
        super().__init__(message, "VALIDATION_ERROR", 400, {"field": field} if field else None)


class ConflictError(ApiError):
    """A unique constraint was violated."""

    def __init__(self, message: str = "A user with the given email already exists"):
        super().__init__(message, "DUPLICATE_KEY", 400)


class NotFoundError(ApiError):
    """No record matches the requested id."""

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            f"{resource} not found", "NOT_FOUND", 404,
            {"resource": resource, "id": resource_id},
        )


class DependencyError(ApiError):
    """The persistence backend failed. Earlier sync steps are not rolled back."""

    def __init__(self, operation: str):
        # Driver messages stay in the logs; only the failed operation is reported
        super().__init__(
            f"Database {operation} failed", "DEPENDENCY_ERROR", 500,
            {"operation": operation},
        )
        self.operation = operation
