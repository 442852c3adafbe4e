"""Taxonomía de errores del data store.

- RetryableStoreError: conectividad transitoria (reset, refused, timeout)
- FatalStoreError: violaciones de constraint, datos mal formados, FK inexistente

La clasificación se basa en un código: SQLSTATE de Postgres cuando el
driver lo expone, o un código estilo errno para errores de socket.
"""

from __future__ import annotations

import errno
from typing import Optional

from sqlalchemy import exc as sa_exc

# Solo estos códigos se reintentan; cualquier otro aborta en el acto.
RETRYABLE_CODES = frozenset({
    "08000",  # connection_exception
    "08003",  # connection_does_not_exist
    "08006",  # connection_failure
    "57P01",  # admin_shutdown
    "ECONNRESET",
    "ECONNREFUSED",
    "ETIMEDOUT",
})

_ERRNO_CODES = {
    errno.ECONNRESET: "ECONNRESET",
    errno.ECONNREFUSED: "ECONNREFUSED",
    errno.ETIMEDOUT: "ETIMEDOUT",
}

# Mensajes redactados para dataError: nunca se reenvía el texto del driver.
_REDACTED_MESSAGES = {
    "23502": "Required field missing",
    "22P02": "Invalid data format",
    "23503": "Invalid reference: machine not found",
    "23505": "Data already exists",
}


class StoreError(Exception):
    """Error del data store con código clasificable."""

    def __init__(self, message: str, code: Optional[str] = None, operation: Optional[str] = None):
        self.code = code
        self.operation = operation
        super().__init__(message)


class RetryableStoreError(StoreError):
    """Fallo transitorio de conectividad; elegible para retry con backoff."""


class FatalStoreError(StoreError):
    """Fallo definitivo; se propaga sin reintentar."""


def error_code(exc: BaseException) -> Optional[str]:
    """Extrae el código de clasificación de una excepción (o None)."""
    if isinstance(exc, StoreError):
        return exc.code

    code = getattr(exc, "pgcode", None) or getattr(exc, "sqlstate", None)
    if isinstance(code, str) and code:
        return code

    if isinstance(exc, sa_exc.DBAPIError):
        if exc.orig is not None:
            orig_code = error_code(exc.orig)
            if orig_code:
                return orig_code
        if exc.connection_invalidated:
            return "08006"
        return None

    if isinstance(exc, ConnectionResetError):
        return "ECONNRESET"
    if isinstance(exc, ConnectionRefusedError):
        return "ECONNREFUSED"
    if isinstance(exc, TimeoutError):
        return "ETIMEDOUT"
    if isinstance(exc, OSError) and exc.errno in _ERRNO_CODES:
        return _ERRNO_CODES[exc.errno]
    return None


def is_retryable(exc: BaseException) -> bool:
    return error_code(exc) in RETRYABLE_CODES


def to_store_error(exc: Exception, operation: str) -> StoreError:
    """Traduce una excepción del driver/SQLAlchemy a StoreError."""
    if isinstance(exc, StoreError):
        return exc

    code = error_code(exc)
    if code is None:
        if isinstance(exc, sa_exc.IntegrityError):
            code = "23000"
        elif isinstance(exc, sa_exc.DataError):
            code = "22000"

    message = f"{operation} failed: {type(exc).__name__}"
    if code in RETRYABLE_CODES:
        return RetryableStoreError(message, code=code, operation=operation)
    return FatalStoreError(message, code=code, operation=operation)


def describe_store_error(exc: BaseException) -> str:
    """Mensaje redactado apto para enviar al dashboard."""
    code = error_code(exc)
    if code in _REDACTED_MESSAGES:
        return _REDACTED_MESSAGES[code]
    if code in RETRYABLE_CODES:
        return "Database temporarily unavailable"
    return "Database error"
