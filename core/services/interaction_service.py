"""
Interaction service.

An interaction is a logged contact with a customer. The staff member who
logged it comes from the user context, never from the request body.
"""

import logging
from uuid import UUID, uuid4

from core.audit import AuditLogger, AuditAction, compute_changes
from core.exceptions import NotFoundError, ValidationError
from core.models import Interaction, InteractionCreate, InteractionUpdate
from core.stores.base import Datastore
from utils.timezone import now_utc
from utils.user_context import get_current_user_id

logger = logging.getLogger(__name__)


class InteractionService:
    """Service for interaction operations."""

    def __init__(self, datastore: Datastore, audit: AuditLogger):
        self.datastore = datastore
        self.audit = audit

    def create(self, data: InteractionCreate) -> Interaction:
        """
        Log a new interaction.

        Requires user context (set by the API middleware or user_context()).

        Raises:
            ValidationError: If the customer does not exist
            RuntimeError: If no user context is set
        """
        user_id = get_current_user_id()

        if self.datastore.customers.get(data.customer_phone) is None:
            raise ValidationError(f"Customer {data.customer_phone} does not exist")

        now = now_utc()
        interaction = self.datastore.interactions.insert(
            Interaction(
                id=uuid4(),
                user_id=user_id,
                **data.model_dump(),
                created_at=now,
                updated_at=now,
            )
        )

        self.audit.log(
            AuditAction.CREATE_INTERACTION,
            entity="Interaction",
            entity_id=interaction.id,
            changes={"created": interaction.model_dump(mode="json")},
        )

        return interaction

    def get_by_id(self, interaction_id: UUID) -> Interaction | None:
        """Get interaction by ID."""
        return self.datastore.interactions.get(interaction_id)

    def update(self, interaction_id: UUID, data: InteractionUpdate) -> Interaction:
        """
        Update interaction fields. Only non-None fields are changed.

        Raises:
            NotFoundError: If interaction not found
        """
        current = self.get_by_id(interaction_id)
        if current is None:
            raise NotFoundError(f"Interaction {interaction_id} not found")

        updates = data.model_dump(exclude_none=True)
        if not updates:
            return current

        updated = self.datastore.interactions.update(interaction_id, updates, now_utc())
        if updated is None:
            raise NotFoundError(f"Interaction {interaction_id} not found")

        changes = compute_changes(
            current.model_dump(mode="json"),
            updated.model_dump(mode="json")
        )
        if changes:
            self.audit.log(
                AuditAction.UPDATE_INTERACTION,
                entity="Interaction",
                entity_id=interaction_id,
                changes=changes,
            )

        return updated

    def delete(self, interaction_id: UUID) -> None:
        """
        Delete an interaction.

        Raises:
            NotFoundError: If interaction not found
        """
        current = self.get_by_id(interaction_id)
        if current is None or not self.datastore.interactions.delete(interaction_id):
            raise NotFoundError(f"Interaction {interaction_id} not found")

        self.audit.log(
            AuditAction.DELETE_INTERACTION,
            entity="Interaction",
            entity_id=interaction_id,
            changes={"deleted": current.model_dump(mode="json")},
        )

    def list_for_customer(self, customer_phone: str, limit: int = 50) -> list[Interaction]:
        """Interactions with a customer, newest first."""
        return self.datastore.interactions.list_for_customer(customer_phone, limit)
