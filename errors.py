from __future__ import annotations

from typing import Optional


class ExpenseTraceError(Exception):
    pass


class NotFoundError(ExpenseTraceError, LookupError):
    def __init__(self, message: str = "record not found") -> None:
        super().__init__(message)


class ValidationError(ExpenseTraceError, ValueError):
    def __init__(self, message: str, *, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class UnsupportedFormatError(ValidationError):
    pass


class EmptyFileError(ValidationError):
    pass


class NoDataRowsError(ValidationError):
    pass


class NoRecordsError(ValidationError):
    pass


class ConflictError(ExpenseTraceError):
    pass


class MigrationError(ExpenseTraceError):
    def __init__(self, version: int, name: str, reason: str) -> None:
        super().__init__(f"migration {version} ({name}) failed: {reason}")
        self.version = version
        self.name = name


class StorageError(ExpenseTraceError):
    def __init__(self, operation: str, reason: str) -> None:
        super().__init__(f"{operation}: {reason}")
        self.operation = operation
