from __future__ import annotations


class AppError(Exception):
    """Base app error."""


class ValidationError(AppError):
    pass


class NotFoundError(AppError):
    pass


class InsufficientStockError(AppError):
    pass


class AuthorizationError(AppError):
    pass


class BackupError(AppError):
    pass


class HostedBackendError(AppError):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
