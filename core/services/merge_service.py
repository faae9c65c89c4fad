"""
Customer merge.

Folds one or more secondary customers into a primary customer in a single
transaction: back-fill selected fields, re-point every order, interaction and
task at the primary phone, then delete the secondaries. Either all of it
commits or none of it does.

A merge is one-shot and irreversible. Repeating the same request fails with
NotFoundError because the secondaries no longer exist.

Concurrency: all involved customer rows are locked (SELECT ... FOR UPDATE, in
phone order) at the start of the transaction. A second merge touching any of
the same customers blocks until the first finishes, then sees the rows gone
(NotFoundError), or the database aborts it (ConflictError). Child rows
inserted for a secondary by another request between our lock and commit are
not covered by the lock; with the foreign keys in schema.sql the delete of the
secondary then fails and the whole merge rolls back.
"""

import logging
import time
from typing import Any

from core.audit import AuditAction, AuditLogger
from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.models import AuditStatus, Customer, MergeFields, MergeRequest
from core.stores.base import Datastore, StoreSession
from utils.timezone import now_utc
from utils.user_context import ActorContext, get_actor

logger = logging.getLogger(__name__)

NOTES_DELIMITER = "\n---\n"


def fold_merge_fields(
    primary: Customer,
    secondaries: list[Customer],
    fields: MergeFields,
) -> dict[str, Any]:
    """
    Compute the primary's new values for the requested mergeable fields.

    Secondaries are applied in the given order:
    - email: first non-empty secondary email, only when the primary has none
    - notes: appended, each separated by NOTES_DELIMITER
    - tags: union, primary's tags first, then first-seen order

    Returns only the fields that change.
    """
    updates: dict[str, Any] = {}
    email = primary.email
    notes = primary.notes
    tags = list(primary.tags)

    for secondary in secondaries:
        if fields.email and secondary.email and not email:
            email = secondary.email
            updates["email"] = email

        if fields.notes and secondary.notes:
            notes = f"{notes}{NOTES_DELIMITER}{secondary.notes}" if notes else secondary.notes
            updates["notes"] = notes

        if fields.tags and secondary.tags:
            for tag in secondary.tags:
                if tag not in tags:
                    tags.append(tag)
            if tags != primary.tags:
                updates["tags"] = list(tags)

    return updates


class CustomerMergeService:
    """Consolidate duplicate customer identities into one."""

    def __init__(self, datastore: Datastore, audit: AuditLogger):
        self.datastore = datastore
        self.audit = audit

    def merge(self, request: MergeRequest, actor: ActorContext | None = None) -> Customer:
        """
        Merge request.secondary_phones into request.primary_phone.

        Args:
            request: Validated merge request
            actor: Who is merging; defaults to the current actor context.
                Used for the audit record only.

        Returns:
            The primary customer after the merge.

        Raises:
            ValidationError: Primary listed as a secondary, or repeated secondaries.
                Raised before any transaction is opened.
            NotFoundError: Primary or any secondary does not exist. Nothing written.
            ConflictError: A concurrent operation changed the same customers.
            TransientStoreError: Database unavailable or timed out. Rolled back.
        """
        actor = actor or get_actor()
        self._validate(request)

        fields = request.merge_fields or MergeFields()
        started = time.monotonic()

        try:
            with self.datastore.transaction() as session:
                primary, secondaries = self._load(session, request)
                merged_data = fold_merge_fields(primary, secondaries, fields)

                updated = session.customers.update(primary.phone, merged_data, now_utc())
                if updated is None:
                    raise ConflictError(
                        f"Primary customer {primary.phone} was removed during merge"
                    )

                reassigned = {}
                for secondary in secondaries:
                    reassigned[secondary.phone] = self._absorb(session, secondary, primary.phone)
        except Exception as e:
            self.audit.log_safely(
                AuditAction.MERGE_CUSTOMERS,
                entity="Customer",
                entity_id=request.primary_phone,
                changes={
                    "primaryPhone": request.primary_phone,
                    "secondaryPhones": list(request.secondary_phones),
                    "mergeFields": fields.model_dump(),
                    "error": str(e),
                },
                status=AuditStatus.ERROR,
                latency_ms=_elapsed_ms(started),
                actor=actor,
            )
            raise

        self.audit.log_safely(
            AuditAction.MERGE_CUSTOMERS,
            entity="Customer",
            entity_id=updated.phone,
            changes={
                "primaryPhone": updated.phone,
                "secondaryPhones": list(request.secondary_phones),
                "mergeFields": fields.model_dump(),
                "mergedData": merged_data,
                "reassigned": reassigned,
            },
            status=AuditStatus.SUCCESS,
            latency_ms=_elapsed_ms(started),
            actor=actor,
        )

        logger.info(
            "Merged %d customer(s) into %s (fields: %s)",
            len(request.secondary_phones),
            updated.phone,
            ", ".join(fields.requested) or "none",
        )
        return updated

    def _validate(self, request: MergeRequest) -> None:
        if not request.secondary_phones:
            raise ValidationError("At least one secondary phone is required")

        if request.primary_phone in request.secondary_phones:
            raise ValidationError(
                f"Primary customer {request.primary_phone} cannot also be a secondary"
            )

        if len(set(request.secondary_phones)) != len(request.secondary_phones):
            raise ValidationError("Secondary phones must not repeat")

    def _load(
        self, session: StoreSession, request: MergeRequest
    ) -> tuple[Customer, list[Customer]]:
        """Lock and load every involved customer; secondaries in request order."""
        phones = [request.primary_phone, *request.secondary_phones]
        found = {c.phone: c for c in session.customers.get_many(phones, for_update=True)}

        primary = found.get(request.primary_phone)
        if primary is None:
            raise NotFoundError(f"Primary customer {request.primary_phone} not found")

        missing = [p for p in request.secondary_phones if p not in found]
        if missing:
            raise NotFoundError(
                f"Secondary customer(s) not found: {', '.join(missing)}"
            )

        return primary, [found[p] for p in request.secondary_phones]

    def _absorb(self, session: StoreSession, secondary: Customer, primary_phone: str) -> dict[str, int]:
        """Move a secondary's children to the primary, then delete the secondary."""
        moved = {
            "orders": session.orders.reassign_customer(secondary.phone, primary_phone),
            "interactions": session.interactions.reassign_customer(secondary.phone, primary_phone),
            "tasks": session.tasks.reassign_customer(secondary.phone, primary_phone),
        }

        if not session.customers.delete(secondary.phone):
            raise ConflictError(
                f"Secondary customer {secondary.phone} was removed during merge"
            )

        return moved


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
