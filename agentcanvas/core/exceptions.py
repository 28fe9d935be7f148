"""
Engine-wide exception hierarchy.

All services raise these types; blueprints map them to HTTP responses once
(see ``agentcanvas.utils.errors``), and the edit session converts the
input-error family into displayable messages at each view transition.

Usage:
    from agentcanvas.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Canvas", resource_id=42)
    raise ValidationError("name is required", details={"name": "required"})
"""


class EditorInputError(Exception):
    """Base for errors the caller recovers from by correcting its input.

    ``ValidationError``, ``ParseError`` and ``ShapeError`` derive from it so a
    view transition or a normalization call can catch the whole family at its
    boundary and leave the prior state authoritative.
    """


class ValidationError(EditorInputError):
    """Raised when a legacy document or a draft violates a structural rule.

    Maps to HTTP 400 in blueprint error handlers.

    Args:
        message: Human-readable, field-qualified explanation
                 (e.g. ``agentGroups[1].groupName is required``).
        details: Optional field-level breakdown. Keys are field paths;
                 values are error descriptions.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ParseError(EditorInputError):
    """Raised when serialized text is not well-formed YAML."""

    def __init__(self, message: str, line: int | None = None) -> None:
        self.line = line
        super().__init__(message)


class ShapeError(EditorInputError):
    """Raised when parsed text is not a single mapping where one is required.

    Args:
        expected: What the caller needed (e.g. "agent", "section").
        actual: Python type name of what was parsed.
    """

    def __init__(self, expected: str, actual: str) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{expected.capitalize()} YAML must describe an object, got {actual}"
        )


class NotFoundError(Exception):
    """Raised when an entity is absent from the scoped collection.

    Used for both genuinely missing records and cross-org access attempts so
    a 404 never confirms that a record exists in another org.

    Args:
        resource: Entity name (e.g. "Canvas", "Agent").
        resource_id: The id that was looked up.
        org_id: Optional scope that was enforced. For debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        org_id: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.org_id = org_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if org_id is not None:
            msg += f" (org={org_id})"
        super().__init__(msg)


class ConflictError(Exception):
    """Raised when an operation would duplicate a unique value.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")


class StoreError(Exception):
    """Raised when the backend record store fails.

    Opaque to the engine: surfaced to the caller verbatim and never retried.
    In-memory collections are left as they were before the attempted write.
    """

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        super().__init__(f"{operation} failed: {message}")
