from enum import Enum


class ErrorKind(str, Enum):
    NO_CONTENT_FOUND = "no_content_found"
    TRANSIENT = "transient"
    FATAL = "fatal"
    PARSE_FAILURE = "parse_failure"
    STORAGE_CONFLICT = "storage_conflict"
    CONNECTIVITY = "connectivity"


class MenuboardError(Exception):
    kind: ErrorKind = ErrorKind.FATAL


class NoContentFound(MenuboardError):
    """The page held neither a menu image nor a dated caption."""
    kind = ErrorKind.NO_CONTENT_FOUND


class ConnectivityError(MenuboardError):
    """Document renderer or storage could not be reached before any post was processed."""
    kind = ErrorKind.CONNECTIVITY


class ExtractionError(MenuboardError):
    pass


class TransientError(ExtractionError):
    """Timeouts, rate limits, refused connections. Worth retrying."""
    kind = ErrorKind.TRANSIENT


class FatalError(ExtractionError):
    """Malformed request, unsupported input, empty response. Retrying will not help."""
    kind = ErrorKind.FATAL


class StorageConflict(MenuboardError):
    """Version token on write did not match the stored object."""
    kind = ErrorKind.STORAGE_CONFLICT
