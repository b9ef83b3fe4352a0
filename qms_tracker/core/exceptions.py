"""
Tracker-wide exception hierarchy.

Services raise these types; the application factory registers one handler per
type so every blueprint gets the same HTTP status codes and error envelope.

Error taxonomy:
  - SourceUnavailableError  the sheet or Drive could not be read (503)
  - InvalidStatusError      status outside the enumerated set (422)
  - WriteFailureError       write-back to the sheet failed (502)
  - NotFoundError           unknown record code or file id (404)

Malformed source data (bad review JSON, bad dates, bad codes) is never raised;
it is recovered locally where it is parsed.

Usage:
    from qms_tracker.core.exceptions import NotFoundError, InvalidStatusError

    raise NotFoundError(resource="Record", resource_id="F/12")
    raise InvalidStatusError("archived", allowed=("approved", "rejected"))
"""


class NotFoundError(Exception):
    """Raised when a requested record or file does not exist in the snapshot.

    Args:
        resource: Human-readable entity name (e.g. "Record", "File").
        resource_id: The identifier that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is well-formed but violates a business rule.

    Maps to HTTP 422 in the error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class InvalidStatusError(ValidationError):
    """Raised when a file or record is set to a status outside the allowed set.

    No state is changed when this is raised.
    """

    def __init__(self, status, allowed: tuple | list = ()) -> None:
        self.status = status
        self.allowed = tuple(allowed)
        super().__init__(
            f"Invalid status {status!r}",
            details={"status": status, "allowed": list(self.allowed)},
        )


class SourceUnavailableError(Exception):
    """Raised when the sheet or the Drive folder listing could not be read.

    Args:
        source: "sheets" or "drive".
        message: Error text reported by the gateway.
        status_code: HTTP status from the source, None on network failure.
    """

    def __init__(self, source: str, message: str, status_code: int | None = None) -> None:
        self.source = source
        self.status_code = status_code
        super().__init__(f"{source} unavailable: {message}")


class WriteFailureError(Exception):
    """Raised when a write-back to the sheet is rejected or cannot be sent.

    ``source_message`` is the source's own error text, surfaced verbatim so the
    caller can retry or warn the actor. The in-memory change that triggered the
    write must be treated as not committed.
    """

    def __init__(
        self,
        source_message: str,
        *,
        row_index: int | None = None,
        column: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.source_message = source_message
        self.row_index = row_index
        self.column = column
        self.status_code = status_code
        super().__init__(f"Google Sheets rejected the write: {source_message}")
