"""Custom exception classes for structured error handling."""

from typing import Any


class TenantGateError(Exception):
    """Base exception for all tenantgate errors."""

    def __init__(self, code: str, message: str, status_code: int = 500) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": {"code": self.code, "message": self.message}}


class TenantNotFoundError(TenantGateError):
    """Generic resolution failure.

    The message is fixed: unknown hosts, soft-deleted tenants and an
    unreachable registry must all render the same response body.
    """

    def __init__(self) -> None:
        super().__init__(code="TENANT_NOT_FOUND", message="Not found", status_code=404)


class InvalidSandboxIdError(TenantGateError):
    def __init__(self, message: str = "Sandbox identifier failed format validation") -> None:
        super().__init__(code="INVALID_SANDBOX_ID", message=message, status_code=500)


class SandboxIdCollisionError(TenantGateError):
    def __init__(self, message: str = "Could not allocate a unique sandbox identifier") -> None:
        super().__init__(code="SANDBOX_ID_COLLISION", message=message, status_code=500)


class RegistryUnavailableError(TenantGateError):
    def __init__(self, message: str = "Tenant registry unavailable") -> None:
        super().__init__(code="REGISTRY_UNAVAILABLE", message=message, status_code=503)


class DatabaseConnectionError(RegistryUnavailableError):
    def __init__(self, message: str = "Database connection failed") -> None:
        super().__init__(message=message)
        self.code = "DATABASE_CONNECTION_ERROR"


class RedisConnectionError(RegistryUnavailableError):
    def __init__(self, message: str = "Redis connection failed") -> None:
        super().__init__(message=message)
        self.code = "REDIS_CONNECTION_ERROR"
