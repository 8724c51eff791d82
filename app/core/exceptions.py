from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ValidationError(ServiceError):
    """Bad input shape or missing field. User-correctable."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class InvalidDateError(ValidationError):
    """Date of birth missing or unparseable."""


class NotFoundError(ServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class ClassNotFoundError(NotFoundError):
    def __init__(self, class_id) -> None:
        super().__init__(f"Class not found: {class_id}")
        self.class_id = class_id


class CapacityExceededError(ServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


class ConcurrencyConflictError(ServiceError):
    """Another writer holds or changed the class roster. Safe to retry."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


class CredentialExhaustionError(ServiceError):
    """No free username candidate within the attempt bound. Not retryable."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR)


class PersistenceError(ServiceError):
    """Transient storage failure or timeout. Safe to retry."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_503_SERVICE_UNAVAILABLE)
