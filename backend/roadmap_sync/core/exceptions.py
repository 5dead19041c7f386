"""Custom exception classes."""

from typing import Any, Optional


class AppException(Exception):
    """Base application exception, rendered as a JSON error response."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Any] = None,
        status_code: int = 400,
    ):
        self.code = code
        self.message = message
        self.details = details
        self.status_code = status_code
        super().__init__(message)


# ========== Request Exceptions ==========
class InvalidFormatError(AppException):
    """Payload shape not recognized or a required identity field is missing."""

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(
            code="INVALID_FORMAT",
            message=message,
            details=details,
            status_code=400,
        )


class AuthenticationError(AppException):
    """Shared secret missing."""

    def __init__(self, message: str = "Missing X-API-KEY header"):
        super().__init__(code="AUTHENTICATION_ERROR", message=message, status_code=401)


class AuthorizationError(AppException):
    """Shared secret does not match."""

    def __init__(self, message: str = "Invalid API key"):
        super().__init__(code="AUTHORIZATION_ERROR", message=message, status_code=403)


class PayloadTooLargeError(AppException):
    def __init__(self, limit: int):
        super().__init__(
            code="PAYLOAD_TOO_LARGE",
            message="Request body too large",
            details={"max_bytes": limit},
            status_code=413,
        )


# ========== Resource Exceptions ==========
class NotFoundError(AppException):
    """Referenced record absent."""

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(
            code="NOT_FOUND",
            message=message,
            details=details,
            status_code=404,
        )


class ClientNotFoundError(NotFoundError):
    def __init__(self, details: Optional[Any] = None):
        super().__init__("Client not found", details=details)


class EngagementNotFoundError(NotFoundError):
    def __init__(self, details: Optional[Any] = None):
        super().__init__("Coach-client relation not found", details=details)


# ========== Server Exceptions ==========
class ConfigurationError(AppException):
    """Store or identity-provider credentials unset or malformed."""

    def __init__(
        self,
        message: str = "Server configuration error",
        details: Optional[Any] = None,
    ):
        super().__init__(
            code="CONFIGURATION_ERROR",
            message=message,
            details=details,
            status_code=500,
        )


class CredentialConfigurationError(ConfigurationError):
    """The identity provider refused the service key (no admin rights)."""

    def __init__(self):
        super().__init__(
            message="Authentication error with identity provider",
            details=(
                "The SERVICE_ROLE_KEY is invalid or does not have admin permissions"
            ),
        )


class ProvisioningError(AppException):
    """Identity, profile or relation creation failed."""

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(
            code="PROVISIONING_ERROR",
            message=message,
            details=details,
            status_code=500,
        )


class AuthProvisioningError(ProvisioningError):
    def __init__(self, details: Optional[Any] = None):
        super().__init__("Failed to create user", details=details)


class ProfileCreationError(ProvisioningError):
    def __init__(self, details: Optional[Any] = None):
        super().__init__("Failed to create profile", details=details)


class RelationCreationError(ProvisioningError):
    def __init__(self, message: str = "Failed to create coach-client relation", details: Optional[Any] = None):
        super().__init__(message, details=details)


class AccountUpdateError(ProvisioningError):
    def __init__(self, details: Optional[Any] = None):
        super().__init__("Error blocking user", details=details)


# ========== Internal Exceptions ==========
class StoreError(Exception):
    """A store operation failed."""


class ConflictTargetError(StoreError):
    """The store rejected the conflict columns of an upsert."""

    def __init__(self, table: str, conflict: tuple[str, ...]):
        self.table = table
        self.conflict = conflict
        super().__init__(f"{table}: no unique constraint matching ({', '.join(conflict)})")


class IdentityProviderError(Exception):
    """Admin identity API failure, with an HTTP-like status."""

    def __init__(self, message: str, status: int = 500):
        self.message = message
        self.status = status
        super().__init__(message)

    def as_details(self) -> dict[str, Any]:
        return {"message": self.message, "status": self.status, "name": type(self).__name__}


class UpstreamError(Exception):
    """Completion or email service failed. Always absorbed by the caller."""
