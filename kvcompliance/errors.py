from __future__ import annotations


class KeyVaultAuditError(Exception):
    """Base class for errors raised by the compliance tooling."""


class SetupError(KeyVaultAuditError):
    """Cloud session or target scope could not be established. Fatal."""


class VaultPermissionError(KeyVaultAuditError):
    """A read or list call was denied for a vault or one of its collections."""


class CallTimeoutError(KeyVaultAuditError):
    """A single Azure call did not answer within the configured timeout."""


class ThrottledError(KeyVaultAuditError):
    """Azure answered with HTTP 429."""

    def __init__(self, message: str, retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class RemediationError(KeyVaultAuditError):
    """A mutating call failed."""

    def __init__(self, vault: str, message: str):
        super().__init__(f"{vault}: {message}")
        self.vault = vault


class RenderError(KeyVaultAuditError):
    """A renderer received input it could not parse."""
