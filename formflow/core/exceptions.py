"""Error taxonomy for FormFlow.

Authorization and validation errors are raised before anything is mutated.
Dependency failures belong to collaborators (email, broker) and are logged
and swallowed once a transition has been committed.
"""

from typing import Any, Optional


class FormFlowError(Exception):
    """Base class for all domain errors."""


class NotFoundError(FormFlowError):
    """Raised when a submission, template or user does not exist."""

    def __init__(self, resource: str, identifier: Any):
        super().__init__(f"{resource} {identifier} not found")
        self.resource = resource
        self.identifier = identifier


class AuthorizationError(FormFlowError):
    """Raised when the actor is not the approver bound to the current level."""

    def __init__(self, message: str, actor_id: Any = None, level: Optional[int] = None):
        super().__init__(message)
        self.actor_id = actor_id
        self.level = level


class ValidationError(FormFlowError):
    """Raised for malformed flows and actions on non-actionable submissions."""


class ConflictError(ValidationError):
    """Raised when a concurrent writer updated the submission first."""


class DependencyFailure(FormFlowError):
    """Raised when an external collaborator (email, broker, storage) fails."""

    def __init__(self, collaborator: str, cause: Optional[BaseException] = None):
        message = f"{collaborator} failed"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.collaborator = collaborator
        self.cause = cause
