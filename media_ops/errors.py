"""Error taxonomy for the media pipeline.

Every failure a request can hit is one of these classes.  Each carries
the HTTP status the service answers with, so the HTTP layer needs a
single exception handler instead of one branch per error type.
"""

from __future__ import annotations


class MediaOpsError(Exception):
    """Base class for every pipeline error surfaced to clients."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidRequestError(MediaOpsError):
    """Bad or missing request parameters, raised before any I/O."""

    status_code = 400


class NoValidInputsError(InvalidRequestError):
    """Every candidate input was filtered out by the allow-list."""


class FetchError(MediaOpsError):
    """A remote asset could not be downloaded completely."""

    status_code = 502

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Failed to fetch {url}: {reason}")
        self.url = url
        self.reason = reason


class ProcessingError(MediaOpsError):
    """The external engine exited non-zero or ran past its timeout."""

    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        stderr: str = "",
        returncode: int | None = None,
        timed_out: bool = False,
    ) -> None:
        super().__init__(message)
        self.stderr = stderr
        self.returncode = returncode
        self.timed_out = timed_out


class NotFoundError(MediaOpsError):
    """Unknown artifact identifier on retrieval."""

    status_code = 404
