"""Exceptions raised by the clone engine."""


class CloneError(Exception):
    """Base class for engine errors."""


class ValidationError(CloneError):
    """Raised when category names or a clone request fail validation."""

    def __init__(self, message: str, invalid: list | None = None):
        self.invalid = invalid or []
        super().__init__(message)


class SettingsStoreError(CloneError):
    """Raised when the storefront settings or their inputs cannot be read."""

    def __init__(self, tenant_id: str, message: str):
        self.tenant_id = tenant_id
        self.message = message
        super().__init__(f"Settings error for tenant {tenant_id}: {message}")


class SettingsWriteError(SettingsStoreError):
    """Raised when a settings upsert still fails after all retry attempts."""

    def __init__(self, tenant_id: str, message: str, attempts: int):
        self.attempts = attempts
        super().__init__(tenant_id, f"{message} (after {attempts} attempts)")
