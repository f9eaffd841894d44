from typing import Optional, Any

class MemberPassError(Exception):
    """
    Base exception for MemberPass application.
    """
    def __init__(self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500, details: Optional[Any] = None):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)

class ResourceNotFoundError(MemberPassError):
    """
    Raised when a requested resource is not found.
    """
    def __init__(self, message: str = "Resource not found", details: Optional[Any] = None):
        super().__init__(message, code="NOT_FOUND", status_code=404, details=details)

class AuthenticationError(MemberPassError):
    """
    Raised when authentication fails (webhook signature, admin key).
    """
    def __init__(self, message: str = "Authentication failed", details: Optional[Any] = None):
        super().__init__(message, code="AUTHENTICATION_FAILED", status_code=401, details=details)

class ValidationError(MemberPassError):
    """
    Raised when input validation fails.
    """
    def __init__(self, message: str = "Validation error", details: Optional[Any] = None):
        super().__init__(message, code="VALIDATION_ERROR", status_code=422, details=details)

class ExternalServiceError(MemberPassError):
    """
    Raised when an external service (LINE, Cloudinary) fails or times out.
    """
    def __init__(self, message: str = "External service error", details: Optional[Any] = None, code: str = "EXTERNAL_SERVICE_ERROR"):
        super().__init__(message, code=code, status_code=502, details=details)

class MemberStoreError(ExternalServiceError):
    """
    Raised when the member database cannot be read or written.
    """
    def __init__(self, message: str = "Member store error", details: Optional[Any] = None):
        super().__init__(message, details=details, code="STORE_ERROR")

class InvalidTransitionError(MemberPassError):
    """
    Raised when a computed transition is not in the allowed transition table.
    """
    def __init__(self, message: str = "Invalid state transition", details: Optional[Any] = None):
        super().__init__(message, code="INVALID_TRANSITION", status_code=500, details=details)

class ReplyDeliveryError(ExternalServiceError):
    """
    Raised when reply messages could not be sent after the member was already updated.
    """
    def __init__(self, message: str = "Reply delivery failed", details: Optional[Any] = None):
        super().__init__(message, details=details, code="REPLY_FAILED")
