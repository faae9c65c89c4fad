"""
Customer service for CRUD operations, duplicate checks and merges.

Customers are identified by phone. A phone is taken once and only a merge
retires it.
"""

import logging
from typing import Any

from core.audit import AuditLogger, AuditAction, compute_changes
from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.models import (
    Customer, CustomerCreate, CustomerUpdate,
    DuplicateCheckRequest, MergeRequest, Page, Pagination,
)
from core.services.duplicate_detector import DuplicateDetector
from core.services.merge_service import CustomerMergeService
from core.stores.base import Datastore
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

# How much history get_detail() embeds
_RECENT_LIMIT = 10


class CustomerService:
    """Service for customer operations."""

    def __init__(self, datastore: Datastore, audit: AuditLogger):
        self.datastore = datastore
        self.audit = audit
        self.duplicates = DuplicateDetector(datastore.customers)
        self.merger = CustomerMergeService(datastore, audit)

    def create(self, data: CustomerCreate) -> Customer:
        """
        Create a new customer.

        Possible name duplicates are logged as a warning but do not block
        creation; staff resolve them later with a merge.

        Raises:
            ConflictError: If the phone already belongs to a customer
        """
        if self.datastore.customers.get(data.phone) is not None:
            raise ConflictError(f"Customer with phone {data.phone} already exists")

        similar = self.duplicates.check(data.name)
        if similar:
            logger.warning(
                "Potential name duplicate for %s: %s",
                data.phone,
                [(c.phone, c.name) for c in similar],
            )

        now = now_utc()
        customer = self.datastore.customers.insert(
            Customer(**data.model_dump(), created_at=now, updated_at=now)
        )

        self.audit.log(
            AuditAction.CREATE_CUSTOMER,
            entity="Customer",
            entity_id=customer.phone,
            changes={"created": data.model_dump(mode="json", exclude_none=True)},
        )

        return customer

    def get(self, phone: str) -> Customer | None:
        """Get customer by phone, or None."""
        return self.datastore.customers.get(phone)

    def get_detail(self, phone: str) -> dict[str, Any]:
        """
        Customer with recent history.

        Returns:
            Customer fields plus latest orders, latest interactions, open
            tasks and per-type counts.

        Raises:
            NotFoundError: If customer not found
        """
        customer = self.get(phone)
        if customer is None:
            raise NotFoundError(f"Customer {phone} not found")

        store = self.datastore
        data = customer.model_dump(mode="json")
        data["orders"] = [
            o.model_dump(mode="json")
            for o in store.orders.list_all(limit=_RECENT_LIMIT, offset=0, customer_phone=phone)
        ]
        data["interactions"] = [
            i.model_dump(mode="json")
            for i in store.interactions.list_for_customer(phone, _RECENT_LIMIT)
        ]
        data["tasks"] = [
            t.model_dump(mode="json") for t in store.tasks.list_open_for_customer(phone)
        ]
        data["counts"] = {
            "orders": store.orders.count(phone),
            "interactions": store.interactions.count(phone),
            "tasks": store.tasks.count(phone),
        }
        return data

    def update(self, phone: str, data: CustomerUpdate) -> Customer:
        """
        Update customer fields. Only non-None fields are changed.

        Raises:
            NotFoundError: If customer not found
        """
        current = self.get(phone)
        if current is None:
            raise NotFoundError(f"Customer {phone} not found")

        updates = data.model_dump(exclude_none=True)
        if not updates:
            return current

        updated = self.datastore.customers.update(phone, updates, now_utc())
        if updated is None:
            raise NotFoundError(f"Customer {phone} not found")

        changes = compute_changes(
            current.model_dump(mode="json"),
            updated.model_dump(mode="json")
        )
        if changes:
            self.audit.log(
                AuditAction.UPDATE_CUSTOMER,
                entity="Customer",
                entity_id=phone,
                changes=changes,
            )

        return updated

    def delete(self, phone: str) -> None:
        """
        Delete a customer that has no history.

        Raises:
            NotFoundError: If customer not found
            ValidationError: If the customer still has orders, interactions or tasks
        """
        current = self.get(phone)
        if current is None:
            raise NotFoundError(f"Customer {phone} not found")

        counts = {
            "orders": self.datastore.orders.count(phone),
            "interactions": self.datastore.interactions.count(phone),
            "tasks": self.datastore.tasks.count(phone),
        }
        if any(counts.values()):
            raise ValidationError(
                f"Cannot delete customer {phone} with existing orders, interactions, or tasks"
            )

        if not self.datastore.customers.delete(phone):
            raise NotFoundError(f"Customer {phone} not found")

        self.audit.log(
            AuditAction.DELETE_CUSTOMER,
            entity="Customer",
            entity_id=phone,
            changes={"deleted": current.model_dump(mode="json")},
        )

    def list_all(
        self,
        limit: int = 20,
        offset: int = 0,
        search: str | None = None,
        source: str | None = None,
    ) -> Page[Customer]:
        """
        List customers, most recently updated first.

        Args:
            limit: Page size
            offset: Rows to skip
            search: Case-insensitive substring of name, phone or email
            source: Exact source filter
        """
        customers = self.datastore.customers.list_all(limit, offset, search=search, source=source)
        total = self.datastore.customers.count(search=search, source=source)
        return Page[Customer](data=customers, pagination=Pagination.build(limit, offset, total))

    def check_duplicates(self, request: DuplicateCheckRequest) -> dict[str, list]:
        """Customers whose name contains the requested name."""
        return {
            "name_duplicates": self.duplicates.check(request.name, request.exclude_phone),
        }

    def merge(self, request: MergeRequest) -> Customer:
        """Fold secondary customers into the primary. See CustomerMergeService.merge."""
        return self.merger.merge(request)

    def stats(self) -> dict[str, Any]:
        """Customer totals overall and per source."""
        return {
            "total": self.datastore.customers.count(),
            "by_source": self.datastore.customers.count_by_source(),
        }
