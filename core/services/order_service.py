"""
Order service.

Orders belong to exactly one customer (by phone). Order numbers are
ORD-YYYYMMDD-XXXXXX, dated in the business timezone.
"""

import logging
import secrets
from typing import Any
from uuid import UUID, uuid4

from core.audit import AuditLogger, AuditAction, compute_changes
from core.exceptions import NotFoundError, ValidationError
from core.models import Order, OrderCreate, OrderUpdate, Page, Pagination
from core.stores.base import Datastore
from utils.timezone import business_date_stamp, now_utc

logger = logging.getLogger(__name__)


def generate_order_number(now) -> str:
    """ORD-<business date>-<6 random hex digits>."""
    return f"ORD-{business_date_stamp(now)}-{secrets.token_hex(3).upper()}"


class OrderService:
    """Service for order operations."""

    def __init__(self, datastore: Datastore, audit: AuditLogger):
        self.datastore = datastore
        self.audit = audit

    def create(self, data: OrderCreate) -> Order:
        """
        Create a new order for an existing customer.

        Raises:
            ValidationError: If the customer does not exist
            ConflictError: If the generated order number collides
        """
        if self.datastore.customers.get(data.customer_phone) is None:
            raise ValidationError(f"Customer {data.customer_phone} does not exist")

        now = now_utc()
        order = self.datastore.orders.insert(
            Order(
                id=uuid4(),
                order_number=generate_order_number(now),
                **data.model_dump(),
                created_at=now,
                updated_at=now,
            )
        )

        self.audit.log(
            AuditAction.CREATE_ORDER,
            entity="Order",
            entity_id=order.id,
            changes={"created": order.model_dump(mode="json")},
        )

        return order

    def get_by_id(self, order_id: UUID) -> Order | None:
        """Get order by ID."""
        return self.datastore.orders.get(order_id)

    def update(self, order_id: UUID, data: OrderUpdate) -> Order:
        """
        Update order fields. Only non-None fields are changed.

        Raises:
            NotFoundError: If order not found
        """
        current = self.get_by_id(order_id)
        if current is None:
            raise NotFoundError(f"Order {order_id} not found")

        updates = data.model_dump(exclude_none=True)
        if not updates:
            return current

        # Items are stored as JSON
        if "items" in updates:
            updates["items"] = [item.model_dump(mode="json") for item in data.items]

        updated = self.datastore.orders.update(order_id, updates, now_utc())
        if updated is None:
            raise NotFoundError(f"Order {order_id} not found")

        changes = compute_changes(
            current.model_dump(mode="json"),
            updated.model_dump(mode="json")
        )
        if changes:
            self.audit.log(
                AuditAction.UPDATE_ORDER,
                entity="Order",
                entity_id=order_id,
                changes=changes,
            )

        return updated

    def delete(self, order_id: UUID) -> None:
        """
        Delete an order.

        Raises:
            NotFoundError: If order not found
        """
        current = self.get_by_id(order_id)
        if current is None or not self.datastore.orders.delete(order_id):
            raise NotFoundError(f"Order {order_id} not found")

        self.audit.log(
            AuditAction.DELETE_ORDER,
            entity="Order",
            entity_id=order_id,
            changes={"deleted": current.model_dump(mode="json")},
        )

    def list_all(
        self,
        limit: int = 20,
        offset: int = 0,
        customer_phone: str | None = None,
        status: str | None = None,
    ) -> Page[Order]:
        """List orders, newest first."""
        orders = self.datastore.orders.list_all(
            limit, offset, customer_phone=customer_phone, status=status
        )
        total = self.datastore.orders.count(customer_phone, status=status)
        return Page[Order](data=orders, pagination=Pagination.build(limit, offset, total))

    def stats(self) -> dict[str, Any]:
        """Order totals, revenue and per-status counts."""
        return {
            "total": self.datastore.orders.count(),
            "total_amount": str(self.datastore.orders.total_amount()),
            "by_status": self.datastore.orders.count_by_status(),
        }
