"""Domain error taxonomy.

Every failure a caller can act on is one of these types. Each carries an
``error_code`` and an HTTP status so the transport layer can render it
without inspecting the message.
"""

from typing import Any


class ChallengeHubError(Exception):
    """Base exception for all domain errors."""

    error_code = "ERROR"
    status_code = 400

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(ChallengeHubError):
    """Malformed input: missing field, out-of-range value, unknown enum."""

    error_code = "VALIDATION_ERROR"
    status_code = 422

    def __init__(self, message: str, field: str | None = None) -> None:
        details: dict[str, Any] = {}
        if field:
            details["field"] = field
        super().__init__(message, details)
        self.field = field


class NotFoundError(ChallengeHubError):
    """Raised when an id does not resolve."""

    error_code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(
            f"{entity_type} with id '{entity_id}' not found",
            {"entity_type": entity_type, "entity_id": str(entity_id)},
        )
        self.entity_type = entity_type
        self.entity_id = entity_id


class ForbiddenError(ChallengeHubError):
    """Caller lacks ownership or role."""

    error_code = "FORBIDDEN"
    status_code = 403


class ConflictError(ChallengeHubError):
    """Operation is illegal in the entity's current state."""

    error_code = "CONFLICT"
    status_code = 409


class ServiceUnavailableError(ChallengeHubError):
    """A collaborator service could not be reached."""

    error_code = "SERVICE_UNAVAILABLE"
    status_code = 503


class InvalidTransitionError(ChallengeHubError):
    """Status change outside the allowed transition table."""

    error_code = "INVALID_TRANSITION"
    status_code = 409

    def __init__(self, entity_type: str, current: str, target: str, allowed: list[str]) -> None:
        super().__init__(
            f"Cannot transition {entity_type} from '{current}' to '{target}'. "
            f"Allowed from '{current}': {allowed}",
            {
                "entity_type": entity_type,
                "current": current,
                "target": target,
                "allowed": allowed,
            },
        )


__all__ = [
    "ChallengeHubError",
    "ValidationError",
    "NotFoundError",
    "ForbiddenError",
    "ConflictError",
    "InvalidTransitionError",
    "ServiceUnavailableError",
]
