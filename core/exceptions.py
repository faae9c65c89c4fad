"""
Typed domain errors.

Services raise these; the API layer maps each to an HTTP status and error
code (see api/errors.py). Store-level failures from the database driver are
translated into ConflictError or TransientStoreError by the postgres client,
so callers never see driver exceptions.
"""


class CRMError(Exception):
    """Base class for all domain errors."""


class NotFoundError(CRMError):
    """
    Referenced entity does not exist.

    No mutation has happened; safe to retry after correcting input.
    """


class ValidationError(CRMError):
    """Malformed or contradictory input, rejected before any write."""


class InvalidStatusTransitionError(ValidationError):
    """Requested lifecycle transition is not allowed from the current status."""

    def __init__(self, entity: str, entity_id: object, current: str, action: str):
        self.entity = entity
        self.entity_id = entity_id
        self.current = current
        self.action = action
        super().__init__(
            f"{entity} {entity_id} cannot {action} from status {current}"
        )


class ConflictError(CRMError):
    """
    Write collided with existing or concurrently changed state.

    Duplicate natural keys, serialization failures, deadlocks. Callers should
    re-validate before retrying.
    """


class TransientStoreError(CRMError):
    """
    Datastore unreachable or statement timed out.

    The surrounding transaction has been rolled back; the whole operation can
    be retried from scratch.
    """
