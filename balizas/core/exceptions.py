"""Balizas V16 — Error taxonomy.

Feed errors are recovered by the feed service (example-data fallback),
storage-unavailable errors are degraded to empty analytics by the API layer,
invalid parameters surface as 400s.
"""

import errno
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy.exc import SQLAlchemyError

# SQLSTATE codes meaning "the store is not there", not "the query is wrong"
STORAGE_UNAVAILABLE_CODES = {
    "42P01",  # undefined_table
    "3D000",  # invalid_catalog_name
    "08000",
    "08001",
    "08003",
    "08004",
    "08006",
    "57P01",  # admin_shutdown
    "57P03",  # cannot_connect_now
    "ECONNREFUSED",
}

STORAGE_UNAVAILABLE_MARKERS = (
    "econnrefused",
    "connection refused",
    "could not connect",
    "does not exist",
    "no such table",
    "unable to open database",
    "base de datos no disponible",
)


class FeedSourceError(Exception):
    """Raised when the DGT feed cannot be fetched or decoded."""

    def __init__(self, message: str, status_code: int = 0, source: str = ""):
        self.status_code = status_code
        self.source = source
        super().__init__(message)


class FeedConfigurationError(FeedSourceError):
    """Raised when a feed source is selected but not configured (URL / token)."""


class StorageUnavailableError(Exception):
    """The database is unreachable or its schema is missing."""

    def __init__(self, message: str, code: Optional[str] = None, operation: str = ""):
        self.code = code
        self.operation = operation
        super().__init__(message)


class InvalidParameterError(ValueError):
    """An unrecognized filter or enum value was supplied."""

    def __init__(self, parameter: str, value: object, allowed: tuple = ()):
        self.parameter = parameter
        self.value = value
        self.allowed = allowed
        message = f"Invalid value for '{parameter}': {value!r}"
        if allowed:
            message += f" (expected one of: {', '.join(map(str, allowed))})"
        super().__init__(message)


def _error_code(exc: BaseException) -> Optional[str]:
    """SQLSTATE from the DBAPI error (psycopg2 ``pgcode``, psycopg ``sqlstate``)."""
    for attr in ("pgcode", "sqlstate"):
        value = getattr(exc, attr, None)
        if isinstance(value, str) and value:
            return value
    if isinstance(exc, OSError) and exc.errno == errno.ECONNREFUSED:
        return "ECONNREFUSED"
    return None


def _error_chain(exc: BaseException) -> Iterator[BaseException]:
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        # SQLAlchemy wraps the driver error in .orig
        orig = getattr(current, "orig", None)
        if isinstance(orig, BaseException) and id(orig) not in seen:
            yield orig
            seen.add(id(orig))
        current = current.__cause__ or current.__context__


def storage_error_code(exc: BaseException) -> Optional[str]:
    for err in _error_chain(exc):
        code = _error_code(err)
        if code:
            return code
    return None


def is_storage_unavailable(exc: BaseException) -> bool:
    """Tell infrastructure failures apart from genuine query errors."""
    if isinstance(exc, StorageUnavailableError):
        return True
    for err in _error_chain(exc):
        if isinstance(err, ConnectionRefusedError):
            return True
        code = _error_code(err)
        if code in STORAGE_UNAVAILABLE_CODES:
            return True
        message = str(err).lower()
        if any(marker in message for marker in STORAGE_UNAVAILABLE_MARKERS):
            return True
    return False


@contextmanager
def storage_guard(operation: str = "") -> Iterator[None]:
    """Re-raise database errors that mean "storage is down" as StorageUnavailableError."""
    try:
        yield
    except StorageUnavailableError:
        raise
    except (SQLAlchemyError, OSError) as e:
        if is_storage_unavailable(e):
            raise StorageUnavailableError(
                str(e), code=storage_error_code(e), operation=operation
            ) from e
        raise
