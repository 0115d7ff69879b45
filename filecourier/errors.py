"""
Transfer Errors

Every failure a sender or a receiving worker can hit maps onto one of these.
Filesystem problems are left as plain OSError.
"""


class TransferError(Exception):
    """Base class for transfer failures."""


class MalformedHeaderError(TransferError):
    """The transfer header is truncated or a field has the wrong width."""


class ArtifactFormatError(TransferError):
    """An encrypted artifact is too short to hold its salt and nonce."""


class DecryptionError(TransferError):
    """Authenticated decryption failed: wrong key or corrupted data."""

    def __init__(self, message: str = "decryption failed: wrong key or corrupted data"):
        super().__init__(message)


class TransportError(TransferError):
    """Connection refused, reset, or closed abnormally."""
