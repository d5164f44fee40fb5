"""
Engine-wide exception hierarchy.

Scoring functions never raise on dirty data: they clamp and fall back to
neutral values. These exceptions are reserved for requests that are
structurally impossible to serve (unknown lever, unsupported horizon,
missing workspace). Blueprints map them to HTTP status codes once.

Usage:
    from control_tower.core.exceptions import CapacityError, NotFoundError, ValidationError

    raise NotFoundError(resource="LedgerEntry", resource_id="led_42", workspace_id="ws-1")
    raise ValidationError("Unsupported lever", details={"lever": "..."})
    raise CapacityError(resource="artifact", limit=100, workspace_id="ws-1")
"""


class NotFoundError(Exception):
    """Raised when a requested record does not exist for the given workspace.

    Args:
        resource: Human-readable entity name (e.g. "StrategicArtifact").
        resource_id: The id that was looked up.
        workspace_id: The workspace scope that was searched.
    """

    def __init__(
        self,
        resource: str,
        resource_id: str | None = None,
        workspace_id: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.workspace_id = workspace_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if workspace_id is not None:
            msg += f" (workspace={workspace_id})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when a request is well-formed but cannot be evaluated.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class CapacityError(Exception):
    """Raised when an operation would push a capped collection past its limit.

    Maps to HTTP 409 (CAPACITY_ACTIVE_LIMIT).

    Args:
        resource: Human-readable entity name.
        limit: The cap that would be exceeded.
        workspace_id: The workspace scope that is full.
    """

    def __init__(self, resource: str, limit: int, workspace_id: str | None = None) -> None:
        self.resource = resource
        self.limit = limit
        self.workspace_id = workspace_id
        msg = f"Active {resource} limit of {limit} reached"
        if workspace_id is not None:
            msg += f" (workspace={workspace_id})"
        super().__init__(msg)
