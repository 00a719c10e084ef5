"""Standardised API error responses.

Usage
-----
    from portal.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "WorkflowRequest not found")
    return api_error(E.VALIDATION_INVALID, "Comment is required", details={"comment": "required"})
"""

from __future__ import annotations

import logging

from flask import jsonify, request

from portal.core.exceptions import (
    AuthorizationError,
    AuthResolutionError,
    ConfigurationError,
    ConflictError,
    NotFoundError,
    UploadFailure,
    UploadTimeoutError,
    ValidationError,
)

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants (``ERR_`` prefix)."""

    # Validation – HTTP 400 / 422
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict / duplicate – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"

    # Definition problems – HTTP 422
    CONFIGURATION = "ERR_CONFIGURATION"

    # Identity / permissions – HTTP 401 / 403
    AUTH_RESOLUTION = "ERR_AUTH_RESOLUTION"
    FORBIDDEN = "ERR_FORBIDDEN"

    # Attachments – HTTP 502 / 504
    UPLOAD_FAILED = "ERR_UPLOAD_FAILED"
    UPLOAD_TIMEOUT = "ERR_UPLOAD_TIMEOUT"

    # Routing / transport – HTTP 405 / 413 / 429
    METHOD_NOT_ALLOWED = "ERR_METHOD_NOT_ALLOWED"
    PAYLOAD_TOO_LARGE = "ERR_PAYLOAD_TOO_LARGE"
    RATE_LIMITED = "ERR_RATE_LIMITED"

    # Server – HTTP 500
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 422,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.CONFIGURATION: 422,
    E.AUTH_RESOLUTION: 401,
    E.FORBIDDEN: 403,
    E.UPLOAD_FAILED: 502,
    E.UPLOAD_TIMEOUT: 504,
    E.METHOD_NOT_ALLOWED: 405,
    E.PAYLOAD_TOO_LARGE: 413,
    E.RATE_LIMITED: 429,
    E.INTERNAL: 500,
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
        Extra structured payload (field errors, etc.).

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


def register_error_handlers(bp):
    """Attach the service-exception → HTTP mapping to a blueprint."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_INVALID, str(error), details=error.details)

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(E.CONFLICT_DUPLICATE, str(error))

    @bp.errorhandler(ConfigurationError)
    def _handle_configuration(error: ConfigurationError):
        return api_error(E.CONFIGURATION, str(error))

    @bp.errorhandler(AuthResolutionError)
    def _handle_auth_resolution(error: AuthResolutionError):
        return api_error(E.AUTH_RESOLUTION, str(error))

    @bp.errorhandler(AuthorizationError)
    def _handle_forbidden(error: AuthorizationError):
        return api_error(E.FORBIDDEN, str(error))

    @bp.errorhandler(UploadTimeoutError)
    def _handle_upload_timeout(error: UploadTimeoutError):
        return api_error(E.UPLOAD_TIMEOUT, str(error))

    @bp.errorhandler(UploadFailure)
    def _handle_upload_failure(error: UploadFailure):
        return api_error(E.UPLOAD_FAILED, str(error))

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        from werkzeug.exceptions import HTTPException
        if isinstance(error, HTTPException):
            return error
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")
