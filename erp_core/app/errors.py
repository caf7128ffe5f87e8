"""
Domain exceptions raised by the service layer.

Each carries the HTTP status it maps to; ``main.create_app`` turns them into
``{"error": ...}`` responses.
"""


class ERPError(Exception):
    """Base exception for ERP operations"""
    status_code = 400

    def __init__(self, message: str, **extra):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict:
        return {"error": self.message, **self.extra}


class NotFoundError(ERPError):
    """Referenced row does not exist"""
    status_code = 404


class InvalidOperationError(ERPError):
    """Operation not allowed in the current state"""
    status_code = 400


class InsufficientStockError(ERPError):
    """Requested length is more than the roll has left"""
    status_code = 400

    def __init__(self, message: str, requested: float, available: float):
        super().__init__(message, requested=requested, available=available)
        self.requested = requested
        self.available = available


class AuthenticationError(ERPError):
    """No resolvable session user"""
    status_code = 401


class DuplicateError(ERPError):
    """Unique value already taken"""
    status_code = 409
