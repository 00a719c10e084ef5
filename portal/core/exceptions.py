"""
Portal-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere.

Usage:
    from portal.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="WorkflowRequest", resource_id="0042")
    raise ValidationError("Comment is required", details={"comment": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "WorkflowRequest").
        resource_id: The key that was looked up. Included in logs and messages.
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
    """Raised when input fails business-rule validation in the service layer.

    The data was well-formed but violated a rule: missing required comment,
    empty recipient list, response that does not match the stage action,
    backward transition, and so on.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """A write lost against existing state (HTTP 409).

    Either a unique value is already taken, or a guarded update found the
    row no longer in the state it was read in (another writer got there
    first). Pass *message* for the second case.
    """

    def __init__(self, resource: str, field: str, value: str | None = None,
                 message: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(message or f"{resource} with {field}={value!r} already exists")


class ConfigurationError(Exception):
    """The workflow definition behind a request is missing or unusable.

    Raised when the definition cannot be resolved by name, has no stages, is
    inactive, or no longer contains the request's current stage. Never
    retried automatically.
    """

    def __init__(self, message: str, definition: str | None = None) -> None:
        self.definition = definition
        super().__init__(message)


class AuthResolutionError(Exception):
    """The acting user cannot be mapped to a known collaborator."""

    def __init__(self, identity: str | None) -> None:
        self.identity = identity
        super().__init__(
            f"Could not resolve collaborator for {identity!r}" if identity
            else "No acting user supplied"
        )


class AuthorizationError(Exception):
    """The actor is not allowed to perform the operation.

    For owner/assignee-gated operations: the actor is neither the
    definition owner nor the current assignee. For submissions: the
    collaborator is not in the definition's allowed list.
    """

    def __init__(self, message: str, actor_id: str | None = None) -> None:
        self.actor_id = actor_id
        super().__init__(message)


class UploadFailure(Exception):
    """The attachment step failed (storage error)."""

    def __init__(self, filename: str | None, reason: str) -> None:
        self.filename = filename
        self.reason = reason
        super().__init__(f"Upload of {filename!r} failed: {reason}")


class UploadTimeoutError(UploadFailure):
    """The attachment step did not finish within the caller-supplied timeout."""

    def __init__(self, filename: str | None, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(filename, f"timed out after {timeout:g}s")


class NotificationFailure(Exception):
    """A notification rule failed. Always logged, never surfaced to users."""

    def __init__(self, rule: str, cause: Exception) -> None:
        self.rule = rule
        self.cause = cause
        super().__init__(f"Notification rule {rule!r} failed: {cause}")
