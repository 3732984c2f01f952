"""
Exception classes for record decoding, remote fetches and redemption.

Per-item failures are carried as data by the callers; these types mark
where a record, a page or an order has to be abandoned.
"""


class KeyExportError(Exception):
    """Base exception for all keyexport errors."""

    pass


class DecodeError(KeyExportError):
    """Raised when a stored record cannot be decompressed or parsed."""

    def __init__(self, key: str | None, reason: str) -> None:
        self.key = key
        self.reason = reason
        super().__init__(f"Could not decode record {key or '<unknown>'}: {reason}")


class FetchError(KeyExportError):
    """Raised when a remote page answers with a non-success status."""

    def __init__(self, url: str, status_code: int) -> None:
        self.url = url
        self.status_code = status_code
        super().__init__(f"Failed to fetch choice page: {status_code}")


class ParseError(KeyExportError):
    """Raised when a fetched page lacks the expected embedded data."""

    pass


class RedeemError(KeyExportError):
    """Raised when a key redemption is rejected or returns nothing usable.

    ``permanent`` marks failures that will not succeed on a retry within the
    same session, such as depleted keys.
    """

    def __init__(self, message: str, *, permanent: bool = False) -> None:
        self.message = message
        self.permanent = permanent
        super().__init__(message)


class SelectionError(KeyExportError):
    """Raised when the content selection call is rejected."""

    pass
