"""
Error taxonomy for the xc client.

Every error surfaced to the operator derives from XcError and carries a
human-readable message.
"""

from typing import Optional


class XcError(Exception):
    """Base class for all xc errors."""


class ConfigError(XcError):
    """Raised when a config, budget or pricing file cannot be used."""


class AuthError(XcError):
    """Raised when no usable credentials are available for an account."""


class XApiError(XcError):
    """Raised when the X API answers with a non-success status."""
    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class BudgetExceeded(XcError):
    """Raised when the BLOCK budget action refuses a call."""


class UserCancelled(XcError):
    """Raised when the operator declines an over-budget call."""


class MalformedLedgerEntry(XcError):
    """Raised while decoding a ledger line; never surfaced to callers."""


class UnsupportedType(XcError):
    """Raised when a media file extension is not supported."""


class FileTooLarge(XcError):
    """Raised when a media file exceeds its category size ceiling."""


class UploadInitFailed(XcError):
    """Raised when INIT or one-shot upload returns no media identifier."""


class AppendFailed(XcError):
    """Raised when an APPEND segment is rejected."""
    def __init__(self, message: str, segment_index: int):
        super().__init__(message)
        self.segment_index = segment_index


class FinalizeFailed(XcError):
    """Raised when FINALIZE fails."""


class ProcessingFailed(XcError):
    """Raised when the server reports failed media processing."""


class ProcessingTimeout(XcError):
    """Raised when media processing polling attempts are exhausted."""
