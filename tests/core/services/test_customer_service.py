"""Tests for CustomerService."""

import logging
from datetime import timedelta

import pytest
from pydantic import ValidationError as PydanticValidationError

from fakes import seed_interaction, seed_order, seed_task
from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.models import CustomerCreate, CustomerSource, CustomerUpdate
from core.services.customer_service import CustomerService


@pytest.fixture
def customer_service(datastore, audit):
    return CustomerService(datastore, audit)


class TestCustomerCreate:
    """Tests for CustomerService.create."""

    def test_creates_customer(self, datastore, customer_service):
        """Creates customer with provided data."""
        customer = customer_service.create(CustomerCreate(
            phone="0912345678",
            name="王小明",
            email="wang@example.com",
            source=CustomerSource.REFERRAL,
            tags=[" vip ", "vip", ""],
        ))

        assert customer.phone == "0912345678"
        assert customer.name == "王小明"
        assert customer.source == CustomerSource.REFERRAL
        assert customer.tags == ["vip"]
        assert datastore.customers.get("0912345678") == customer

    def test_duplicate_phone_conflicts(self, customer_service, make_customer):
        """A phone can belong to one customer only."""
        make_customer("0912345678", "Someone")

        with pytest.raises(ConflictError, match="already exists"):
            customer_service.create(CustomerCreate(phone="0912345678", name="王小明"))

    def test_similar_name_warns_but_creates(self, customer_service, make_customer, caplog):
        """Possible duplicates are logged, not blocked."""
        make_customer("0912345678", "王小明")

        with caplog.at_level(logging.WARNING, logger="core.services.customer_service"):
            customer = customer_service.create(CustomerCreate(phone="0912345679", name="王小明"))

        assert customer.phone == "0912345679"
        assert "Potential name duplicate" in caplog.text
        assert "0912345678" in caplog.text

    def test_invalid_phone_rejected(self):
        """Phones must be Taiwan mobile format."""
        with pytest.raises(PydanticValidationError):
            CustomerCreate(phone="12345", name="Test")

    def test_blank_name_rejected(self):
        """Whitespace-only names are rejected."""
        with pytest.raises(PydanticValidationError):
            CustomerCreate(phone="0912345678", name="   ")

    def test_audited(self, datastore, customer_service, as_test_user):
        """Creation writes a create_customer record for the acting user."""
        customer_service.create(CustomerCreate(phone="0912345678", name="王小明"))

        entries = datastore.audit.list_all(limit=10, offset=0, entity="Customer")
        assert [e.action for e in entries] == ["create_customer"]
        assert entries[0].entity_id == "0912345678"
        assert entries[0].user_id == as_test_user


class TestCustomerDetail:
    """Tests for CustomerService.get_detail."""

    def test_includes_history(self, datastore, customer_service, make_customer):
        """Detail embeds orders, interactions, open tasks and counts."""
        make_customer("0912345678", "王小明")
        seed_order(datastore, "0912345678")
        seed_interaction(datastore, "0912345678")
        seed_task(datastore, "0912345678")

        detail = customer_service.get_detail("0912345678")

        assert detail["phone"] == "0912345678"
        assert len(detail["orders"]) == 1
        assert len(detail["interactions"]) == 1
        assert len(detail["tasks"]) == 1
        assert detail["counts"] == {"orders": 1, "interactions": 1, "tasks": 1}

    def test_missing_not_found(self, customer_service):
        """Unknown phone raises NotFoundError."""
        with pytest.raises(NotFoundError):
            customer_service.get_detail("0900000000")

    def test_get_missing_returns_none(self, customer_service):
        """get() returns None rather than raising."""
        assert customer_service.get("0900000000") is None


class TestCustomerUpdate:
    """Tests for CustomerService.update."""

    def test_updates_fields(self, datastore, customer_service, make_customer):
        """Only provided fields change."""
        make_customer("0912345678", "王小明", region="台北")

        updated = customer_service.update("0912345678", CustomerUpdate(email="new@example.com"))

        assert updated.email == "new@example.com"
        assert updated.region == "台北"

    def test_audit_has_diff(self, datastore, customer_service, make_customer):
        """update_customer record carries old and new values."""
        make_customer("0912345678", "王小明")

        customer_service.update("0912345678", CustomerUpdate(name="王大明"))

        entry = datastore.audit.list_all(limit=1, offset=0, action="update_customer")[0]
        assert entry.changes["name"] == {"old": "王小明", "new": "王大明"}
        assert "updated_at" not in entry.changes

    def test_empty_update_is_noop(self, datastore, customer_service, make_customer):
        """No fields means no write and no audit."""
        original = make_customer("0912345678", "王小明")

        result = customer_service.update("0912345678", CustomerUpdate())

        assert result == original
        assert datastore.audit.list_all(limit=10, offset=0) == []

    def test_name_is_stripped(self, customer_service, make_customer):
        """Padding around a new name is not stored."""
        make_customer("0912345678", "王小明")

        updated = customer_service.update("0912345678", CustomerUpdate(name=" 王大明 "))

        assert updated.name == "王大明"

    @pytest.mark.parametrize("name", ["   ", "\t\n"])
    def test_blank_name_rejected(self, datastore, make_customer, name):
        """A whitespace-only name never reaches the store."""
        make_customer("0912345678", "王小明")

        with pytest.raises(PydanticValidationError, match="blank"):
            CustomerUpdate(name=name)

        assert datastore.customers.get("0912345678").name == "王小明"

    def test_phone_not_updatable(self):
        """Phone is the identity and cannot be changed."""
        with pytest.raises(PydanticValidationError):
            CustomerUpdate(phone="0912345679")

    def test_missing_not_found(self, customer_service):
        """Unknown phone raises NotFoundError."""
        with pytest.raises(NotFoundError):
            customer_service.update("0900000000", CustomerUpdate(name="X"))


class TestCustomerDelete:
    """Tests for CustomerService.delete."""

    def test_deletes_customer(self, datastore, customer_service, make_customer):
        """Customer without history is removed."""
        make_customer("0912345678", "王小明")

        customer_service.delete("0912345678")

        assert datastore.customers.get("0912345678") is None
        assert datastore.audit.list_all(limit=1, offset=0)[0].action == "delete_customer"

    def test_with_history_rejected(self, datastore, customer_service, make_customer):
        """Customers with orders must be merged, not deleted."""
        make_customer("0912345678", "王小明")
        seed_order(datastore, "0912345678")

        with pytest.raises(ValidationError, match="Cannot delete"):
            customer_service.delete("0912345678")

        assert datastore.customers.get("0912345678") is not None

    def test_missing_not_found(self, customer_service):
        """Unknown phone raises NotFoundError."""
        with pytest.raises(NotFoundError):
            customer_service.delete("0900000000")


class TestCustomerList:
    """Tests for CustomerService.list_all."""

    @pytest.fixture
    def customers(self, make_customer):
        return [
            make_customer("0912345678", "王小明", age=timedelta(days=3), email="wang@example.com"),
            make_customer("0922222222", "陳大文", age=timedelta(days=2),
                          source=CustomerSource.WEBSITE),
            make_customer("0933333333", "Alice Chen", age=timedelta(days=1)),
        ]

    def test_most_recently_updated_first(self, customer_service, customers):
        """Default ordering is updated_at descending."""
        page = customer_service.list_all()

        assert [c.phone for c in page.data] == ["0933333333", "0922222222", "0912345678"]
        assert page.pagination.total == 3

    def test_search_name_phone_email(self, customer_service, customers):
        """Search matches name, phone or email, case-insensitively."""
        assert [c.phone for c in customer_service.list_all(search="alice").data] == ["0933333333"]
        assert [c.phone for c in customer_service.list_all(search="0922").data] == ["0922222222"]
        assert [c.phone for c in customer_service.list_all(search="WANG@").data] == ["0912345678"]

    def test_source_filter(self, customer_service, customers):
        """source narrows to one acquisition channel."""
        page = customer_service.list_all(source="WEBSITE")

        assert [c.phone for c in page.data] == ["0922222222"]

    def test_pagination(self, customer_service, customers):
        """limit/offset page through results."""
        page = customer_service.list_all(limit=2, offset=2)

        assert [c.phone for c in page.data] == ["0912345678"]
        assert page.pagination.page == 2
        assert page.pagination.total_pages == 2
        assert page.pagination.has_prev is True
        assert page.pagination.has_next is False


class TestCustomerStats:
    """Tests for CustomerService.stats."""

    def test_counts_by_source(self, customer_service, make_customer):
        """Totals overall and per source."""
        make_customer("0912345678", "A", source=CustomerSource.REFERRAL)
        make_customer("0912345679", "B", source=CustomerSource.REFERRAL)
        make_customer("0912345670", "C")

        stats = customer_service.stats()

        assert stats == {"total": 3, "by_source": {"REFERRAL": 2, "OTHER": 1}}
