from __future__ import annotations


class IssuanceError(Exception):
    """Base class for failures raised by the issuance pipeline layers."""


class CatalogError(IssuanceError):
    pass


class RenderError(IssuanceError):
    pass


class StorageError(IssuanceError):
    pass


class LedgerUnavailableError(IssuanceError):
    pass


class SecretLookupError(IssuanceError):
    pass


class PublishError(IssuanceError):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
