"""Propagate the acting staff member through the call stack using contextvars."""

from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from uuid import UUID

# Audit records written outside a request (jobs, scripts) are attributed here
SYSTEM_USER_ID = UUID("00000000-0000-0000-0000-000000000000")


@dataclass(frozen=True)
class ActorContext:
    """Who is performing an operation, and from where."""

    user_id: UUID
    user_ip: str = "127.0.0.1"
    request_id: str | None = None


SYSTEM_ACTOR = ActorContext(user_id=SYSTEM_USER_ID, user_ip="127.0.0.1")

_current_actor: ContextVar[ActorContext | None] = ContextVar("current_actor", default=None)


def get_current_user_id() -> UUID:
    """
    Get current user ID from context.

    Raises RuntimeError if no user context is set.
    This is fail-fast behavior - code that records who did something
    (interactions, task assignment) must run inside a user context.
    """
    actor = _current_actor.get()
    if actor is None:
        raise RuntimeError(
            "No user context set. This usually means you're calling "
            "user-attributed code outside of an authenticated request."
        )
    return actor.user_id


def get_actor() -> ActorContext:
    """Current actor, or the system actor when none is set."""
    actor = _current_actor.get()
    return actor if actor is not None else SYSTEM_ACTOR


@contextmanager
def actor_context(actor: ActorContext):
    """Temporarily set the acting user, restoring the previous actor on exit."""
    previous = _current_actor.get()
    _current_actor.set(actor)
    try:
        yield actor
    finally:
        _current_actor.set(previous)


@contextmanager
def user_context(user_id: UUID, user_ip: str = "127.0.0.1", request_id: str | None = None):
    """
    Context manager for temporarily setting user context.

    Useful for:
    - Tests
    - Background jobs acting on behalf of a staff member

    Example:
        with user_context(staff_id):
            interaction_service.create(data)
    """
    with actor_context(ActorContext(user_id=user_id, user_ip=user_ip, request_id=request_id)):
        yield user_id
