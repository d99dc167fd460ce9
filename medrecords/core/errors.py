from fastapi import status


class ServiceError(Exception):
    """Base class for failures surfaced by the application services.

    Each subclass carries the HTTP status the request boundary renders it with,
    so services stay free of transport concerns.
    """

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Request failed."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidCredentials(ServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid email or password"


class DuplicateEmail(ServiceError):
    default_message = "User with this email already exists"


class ValidationError(ServiceError):
    default_message = "Invalid data provided"


class NotFound(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "File not found or access denied"


class Unauthorized(ServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "User not authenticated"


class StorageFailure(ServiceError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "An error occurred while accessing file storage"
