"""
Typed domain errors raised by the service layer.

Each error carries a stable error code and the HTTP status the API layer
translates it to. Messages are safe to show to the caller.
"""
from typing import Any, Dict, Optional

from fastapi import status


class PortalError(Exception):
    """Base class for all expected portal errors."""

    error_code = "InternalError"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


# Not found family (404)

class NotFound(PortalError):
    error_code = "NotFound"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Peer not found"


class PeerNotFound(NotFound):
    default_message = "Peer not found"


class UserNotFound(NotFound):
    default_message = "User not found"


class NoAvailable(PortalError):
    error_code = "NoAvailable"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "No available peers to claim"


# Business rule violations (400)

class ValidationError(PortalError):
    error_code = "ValidationError"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class LimitExceeded(PortalError):
    error_code = "LimitExceeded"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "You have reached your peer limit"


class PeerNotAvailable(PortalError):
    error_code = "PeerNotAvailable"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Peer is not available for assignment"


class InvalidDomain(PortalError):
    error_code = "InvalidDomain"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "E-mail domain is not accepted"


# Conflicts (409)

class DuplicateName(PortalError):
    error_code = "DuplicateName"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Friendly name already in use"


class EmailExists(PortalError):
    error_code = "EmailExists"
    status_code = status.HTTP_409_CONFLICT
    default_message = "A user with this e-mail already exists"


class ConcurrentClaimConflict(PortalError):
    error_code = "ConcurrentClaimConflict"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Peer was claimed concurrently, please retry"


# Authorization (403)

class Forbidden(PortalError):
    error_code = "Forbidden"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Insufficient permissions"


# Internal failures (500, generic message only)

class StorageError(PortalError):
    error_code = "InternalError"
    default_message = "Internal error"


class ConfigError(PortalError):
    error_code = "ConfigError"
    default_message = "Server is not configured for this operation"


class ImportDirectoryError(PortalError):
    error_code = "DirError"
    default_message = "Import directory could not be read"


class CryptoError(PortalError):
    """Base class for envelope failures. Never carries key or plaintext material."""
    error_code = "InternalError"
    default_message = "Internal error"


class InvalidKey(CryptoError):
    default_message = "Encryption key is invalid"


class MalformedCiphertext(CryptoError):
    default_message = "Ciphertext is malformed"


class AuthenticationFailed(CryptoError):
    default_message = "Ciphertext authentication failed"


class InvalidId(ValidationError):
    error_code = "InvalidId"
    default_message = "Invalid id format"
