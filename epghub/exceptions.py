"""
Error taxonomy for guide feed handling.

Record-level validation problems (missing attributes, stop <= start) never
surface as exceptions; the parser drops those records.
"""
from enum import Enum


class EpgError(Exception):
    """Base class for all EPG pipeline errors"""
    pass


class DownloadFailure(str, Enum):
    TIMEOUT = "timeout"
    TRANSPORT = "transport"
    HTTP_STATUS = "http_status"
    NOT_FOUND = "not_found"
    EMPTY = "empty"


class FeedDownloadError(EpgError):
    """Raised when a feed cannot be retrieved"""

    def __init__(self, message: str, kind: DownloadFailure, status_code: int | None = None):
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code


class UnrecognizedFeedError(EpgError):
    """Raised when a body does not look like an XMLTV document"""
    pass


class FeedParseError(EpgError):
    """Raised when an XMLTV document is structurally invalid"""
    pass
