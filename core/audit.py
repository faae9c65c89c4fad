"""
Audit trail for business-significant actions.

Every mutation of a customer, order, interaction or task is recorded here.
The audit log is:
- Append-only (entries never modified or deleted)
- Actor-attributed (user ID, IP, request ID from the current actor context)
- Detailed (captures old and new values, or the merge summary)

Writing an audit record is best-effort once the business change has
committed: log_safely() swallows sink failures so audit availability never
gates the operation it describes.
"""

import logging
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from core.models import AuditEntry, AuditStatus
from core.stores.base import AuditStore
from utils.timezone import now_utc
from utils.user_context import ActorContext, get_actor

logger = logging.getLogger(__name__)


class AuditAction(Enum):
    """Audited actions, recorded by their string value."""

    CREATE_CUSTOMER = "create_customer"
    UPDATE_CUSTOMER = "update_customer"
    DELETE_CUSTOMER = "delete_customer"
    MERGE_CUSTOMERS = "merge_customers"
    CREATE_ORDER = "create_order"
    UPDATE_ORDER = "update_order"
    DELETE_ORDER = "delete_order"
    CREATE_INTERACTION = "create_interaction"
    UPDATE_INTERACTION = "update_interaction"
    DELETE_INTERACTION = "delete_interaction"
    CREATE_TASK = "create_task"
    UPDATE_TASK = "update_task"
    START_TASK = "start_task"
    COMPLETE_TASK = "complete_task"
    CANCEL_TASK = "cancel_task"
    DELAY_TASK = "delay_task"
    DELETE_TASK = "delete_task"
    MARK_TASKS_OVERDUE = "mark_tasks_overdue"


def compute_changes(
    old: dict[str, Any],
    new: dict[str, Any],
    exclude_fields: set[str] | None = None
) -> dict[str, dict[str, Any]]:
    """
    Compute changes between two entity states.

    Args:
        old: Previous state of entity
        new: New state of entity
        exclude_fields: Fields to ignore (defaults to {"updated_at"})

    Returns:
        Dict of {field: {"old": old_val, "new": new_val}} for changed fields.
        Empty dict if no changes.
    """
    exclude = exclude_fields or {"updated_at"}
    changes = {}

    all_keys = set(old.keys()) | set(new.keys())
    for key in all_keys:
        if key in exclude:
            continue

        old_val = old.get(key)
        new_val = new.get(key)

        if old_val != new_val:
            changes[key] = {"old": old_val, "new": new_val}

    return changes


class AuditLogger:
    """
    Writes and reads audit records through an AuditStore.

    IMPORTANT: Always pass JSON-compatible changes; use model_dump(mode="json")
    for pydantic models so UUIDs, datetimes and Decimals serialize.

    Usage:
        audit = AuditLogger(datastore.audit)

        audit.log(
            AuditAction.UPDATE_CUSTOMER,
            entity="Customer",
            entity_id=customer.phone,
            changes=compute_changes(old.model_dump(mode="json"), new.model_dump(mode="json")),
        )
    """

    def __init__(self, store: AuditStore):
        self.store = store

    def log(
        self,
        action: AuditAction | str,
        entity: str,
        entity_id: Any,
        changes: dict[str, Any],
        status: AuditStatus = AuditStatus.SUCCESS,
        latency_ms: int = 0,
        actor: ActorContext | None = None,
    ) -> AuditEntry:
        """
        Append one audit record.

        The actor defaults to the current request's actor (or the system actor
        outside a request). Raises whatever the store raises.
        """
        actor = actor or get_actor()
        entry = AuditEntry(
            id=uuid4(),
            request_id=actor.request_id or f"{_action_value(action)}-{uuid4().hex[:12]}",
            user_id=actor.user_id,
            user_ip=actor.user_ip,
            action=_action_value(action),
            entity=entity,
            entity_id=str(entity_id),
            changes=changes,
            status=status,
            latency_ms=max(0, int(latency_ms)),
            created_at=now_utc(),
        )
        return self.store.insert(entry)

    def log_safely(self, *args, **kwargs) -> AuditEntry | None:
        """Same as log(), but a failing sink is logged and swallowed."""
        try:
            return self.log(*args, **kwargs)
        except Exception:
            logger.exception(
                "Audit write failed for %s",
                _action_value(kwargs.get("action", args[0] if args else "unknown")),
            )
            return None

    def get_entity_history(self, entity: str, entity_id: Any, limit: int = 100) -> list[AuditEntry]:
        """Audit records for one entity, newest first."""
        return self.store.list_all(limit=limit, offset=0, entity=entity, entity_id=str(entity_id))

    def get_user_activity(self, user_id: UUID | None = None, limit: int = 100) -> list[AuditEntry]:
        """Recent records by a user (defaults to the current actor), newest first."""
        if user_id is None:
            user_id = get_actor().user_id
        return self.store.list_all(limit=limit, offset=0, user_id=user_id)

    def list_all(self, limit: int = 20, offset: int = 0, **filters) -> list[AuditEntry]:
        """Filtered audit records, newest first. `action` filters by substring."""
        return self.store.list_all(limit=limit, offset=offset, **filters)


def _action_value(action: AuditAction | str) -> str:
    return action.value if isinstance(action, AuditAction) else str(action)
