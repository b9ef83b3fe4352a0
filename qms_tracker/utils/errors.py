"""Standardised API error responses.

Usage
-----
    from qms_tracker.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Record not found")
    return api_error(E.VALIDATION_REQUIRED, "status is required")
    return api_error(E.WRITE_FAILED, str(exc), details={"column": "P"})
"""

from __future__ import annotations

from flask import jsonify


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants.

    Convention:
     • ERR_  prefix for standard application errors
     • SOURCE_ prefix for failures of the sheet / Drive collaborators
    """

    # Validation – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Business rule – HTTP 422
    INVALID_STATUS = "ERR_INVALID_STATUS"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Server – HTTP 500
    INTERNAL = "ERR_INTERNAL"

    # External sources – HTTP 502 / 503
    SOURCE_UNAVAILABLE = "SOURCE_UNAVAILABLE"
    WRITE_FAILED = "SOURCE_WRITE_FAILED"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.INVALID_STATUS: 422,
    E.NOT_FOUND: 404,
    E.INTERNAL: 500,
    E.SOURCE_UNAVAILABLE: 503,
    E.WRITE_FAILED: 502,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (allowed statuses, failed cell, etc.).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status
