# colorshop/backend/product_service/colorshop/errors.py

from typing import Optional

from fastapi import status


class ColorshopError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ColorshopError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid product data"


class NotFoundError(ColorshopError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Product not found"


class AuthError(ColorshopError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid credentials"


class AlreadyExistsError(ColorshopError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Admin already exists"


class StorageError(ColorshopError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Storage operation failed"


class StorageUnavailableError(StorageError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Image storage is not configured or available."
