"""Exception hierarchy for the fill backfill."""

from typing import Optional


class BackfillError(Exception):
    """Base class for every error that aborts a backfill run."""


class InvalidDateRangeError(BackfillError):
    """Start boundary is not strictly earlier than the end boundary."""


class CredentialError(BackfillError):
    """Credential file is missing, unreadable or malformed."""


class FetchError(BackfillError):
    """A page request failed at the transport or HTTP level."""

    def __init__(self, message: str, status: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.body = body


class ResponseFormatError(FetchError):
    """The response body does not have the expected structure."""

    def __init__(self, message: str, body: str):
        super().__init__(
            f"{message}\n\nresponse body:\n{body}",
            body=body
        )


class SinkError(BackfillError):
    """An output sink could not be created or written."""
