"""
Store interfaces, one per aggregate.

Services depend on these protocols rather than on a database client, so the
same service code runs against PostgreSQL in production and an in-memory
double in tests. A Datastore hands out autocommitting stores for single
operations and, through transaction(), a StoreSession whose stores all write
through one atomic transaction.
"""

from contextlib import AbstractContextManager
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol
from uuid import UUID

from core.models import AuditEntry, Customer, Interaction, Order, Task


class CustomerStore(Protocol):
    def get(self, phone: str, for_update: bool = False) -> Customer | None: ...

    def get_many(self, phones: list[str], for_update: bool = False) -> list[Customer]: ...

    def find_by_name(self, name: str, exclude_phone: str | None = None) -> list[Customer]:
        """Case-sensitive substring match on name."""
        ...

    def insert(self, customer: Customer) -> Customer: ...

    def update(self, phone: str, fields: dict[str, Any], updated_at: datetime) -> Customer | None: ...

    def delete(self, phone: str) -> bool: ...

    def list_all(
        self,
        limit: int,
        offset: int,
        search: str | None = None,
        source: str | None = None,
    ) -> list[Customer]: ...

    def count(self, search: str | None = None, source: str | None = None) -> int: ...

    def count_by_source(self) -> dict[str, int]: ...

    def list_uncontacted(self, created_before: datetime) -> list[Customer]:
        """Customers created before the cutoff with no interactions and no open FOLLOW_UP task."""
        ...


class ChildStore(Protocol):
    """Shared shape of the stores whose rows hang off a customer phone."""

    def count(self, customer_phone: str | None = None) -> int: ...

    def reassign_customer(self, from_phone: str, to_phone: str) -> int:
        """Bulk re-point every row of from_phone to to_phone. Returns rows moved."""
        ...


class OrderStore(ChildStore, Protocol):
    def count(self, customer_phone: str | None = None, status: str | None = None) -> int: ...

    def get(self, order_id: UUID) -> Order | None: ...

    def insert(self, order: Order) -> Order: ...

    def update(self, order_id: UUID, fields: dict[str, Any], updated_at: datetime) -> Order | None: ...

    def delete(self, order_id: UUID) -> bool: ...

    def list_all(
        self,
        limit: int,
        offset: int,
        customer_phone: str | None = None,
        status: str | None = None,
    ) -> list[Order]: ...

    def count_by_status(self) -> dict[str, int]: ...

    def total_amount(self) -> Decimal: ...

    def list_delivered_between(
        self, start: datetime, end: datetime, without_task_type: str
    ) -> list[Order]:
        """DELIVERED orders last updated in [start, end) with no task of that type linked."""
        ...

    def list_awaiting_payment_or_refund(self, pending_since: datetime) -> list[Order]:
        """
        Orders that need a payment or refund follow-up, oldest first.

        PENDING orders created at or before pending_since, unless they have an
        unfinished PAYMENT_REMINDER or one created after pending_since. CANCELLED
        and REFUNDED orders that never had a REFUND_PROCESS task.
        """
        ...


class InteractionStore(ChildStore, Protocol):
    def get(self, interaction_id: UUID) -> Interaction | None: ...

    def insert(self, interaction: Interaction) -> Interaction: ...

    def update(
        self, interaction_id: UUID, fields: dict[str, Any], updated_at: datetime
    ) -> Interaction | None: ...

    def delete(self, interaction_id: UUID) -> bool: ...

    def list_for_customer(self, customer_phone: str, limit: int) -> list[Interaction]: ...


class TaskStore(ChildStore, Protocol):
    def count(
        self,
        customer_phone: str | None = None,
        status: str | None = None,
        priority: str | None = None,
        assignee_user_id: UUID | None = None,
    ) -> int: ...

    def get(self, task_id: UUID) -> Task | None: ...

    def insert(self, task: Task) -> Task: ...

    def update(self, task_id: UUID, fields: dict[str, Any], updated_at: datetime) -> Task | None: ...

    def delete(self, task_id: UUID) -> bool: ...

    def list_all(
        self,
        limit: int,
        offset: int,
        customer_phone: str | None = None,
        status: str | None = None,
        priority: str | None = None,
        assignee_user_id: UUID | None = None,
    ) -> list[Task]: ...

    def list_open_for_customer(self, customer_phone: str) -> list[Task]:
        """PENDING and IN_PROGRESS tasks, earliest due first."""
        ...

    def count_grouped(self, column: str) -> dict[str, int]:
        """Row counts per value of status, priority or type."""
        ...

    def count_open_due_between(self, start: datetime | None, end: datetime) -> int:
        """PENDING/IN_PROGRESS tasks with start <= due_at < end (no lower bound when start is None)."""
        ...

    def mark_overdue(self, now: datetime) -> int: ...


class AuditStore(Protocol):
    def insert(self, entry: AuditEntry) -> AuditEntry: ...

    def list_all(
        self,
        limit: int,
        offset: int,
        entity: str | None = None,
        entity_id: str | None = None,
        action: str | None = None,
        user_id: UUID | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[AuditEntry]: ...


class StoreSession(Protocol):
    """The stores of one unit of work."""

    customers: CustomerStore
    orders: OrderStore
    interactions: InteractionStore
    tasks: TaskStore
    audit: AuditStore


class Datastore(StoreSession, Protocol):
    """Autocommitting stores plus transactional sessions."""

    def transaction(self) -> AbstractContextManager[StoreSession]:
        """All writes through the yielded session commit together or not at all."""
        ...


__all__ = [
    "AuditStore",
    "ChildStore",
    "CustomerStore",
    "Datastore",
    "InteractionStore",
    "OrderStore",
    "StoreSession",
    "TaskStore",
]
