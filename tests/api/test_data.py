"""Tests for GET /api/data unified read endpoint and GET /api/stats."""

import pytest
from datetime import timedelta
from uuid import uuid4

from fakes import seed_interaction, seed_order, seed_task
from core.models import OrderStatus, TaskPriority, TaskStatus
from utils.timezone import now_utc


# =============================================================================
# TEST DATA FIXTURES
# =============================================================================


@pytest.fixture
def sample_customers(make_customer):
    return [
        make_customer("0912345678", "王小明", age=timedelta(days=2), email="wang@example.com"),
        make_customer("0922222222", "陳大文", age=timedelta(days=1)),
    ]


@pytest.fixture
def history(datastore, sample_customers):
    return {
        "order": seed_order(datastore, "0912345678", amount="300"),
        "interaction": seed_interaction(datastore, "0912345678"),
        "task": seed_task(datastore, "0912345678", priority=TaskPriority.HIGH),
    }


# =============================================================================
# VALIDATION
# =============================================================================


class TestDataValidation:

    def test_missing_type_returns_400(self, client):
        response = client.get("/api/data")

        assert response.status_code == 400
        assert "'type'" in response.json()["error"]["message"]

    def test_unknown_type_returns_400(self, client):
        response = client.get("/api/data", params={"type": "tickets"})

        assert response.status_code == 400
        assert "Unknown type" in response.json()["error"]["message"]

    def test_limit_over_max_returns_422(self, client):
        response = client.get("/api/data", params={"type": "customers", "limit": 501})

        assert response.status_code == 422

    def test_bad_uuid_returns_400(self, client):
        response = client.get("/api/data", params={"type": "orders", "id": "not-a-uuid"})

        assert response.status_code == 400


# =============================================================================
# CUSTOMERS
# =============================================================================


class TestCustomersData:

    def test_list_paginated(self, client, sample_customers):
        response = client.get("/api/data", params={"type": "customers", "limit": 1})

        assert response.status_code == 200
        data = response.json()["data"]
        assert [c["phone"] for c in data["data"]] == ["0922222222"]
        assert data["pagination"]["total"] == 2
        assert data["pagination"]["has_next"] is True

    def test_search(self, client, sample_customers):
        response = client.get("/api/data", params={"type": "customers", "search": "wang"})

        assert [c["phone"] for c in response.json()["data"]["data"]] == ["0912345678"]

    def test_detail_by_phone(self, client, history):
        response = client.get("/api/data", params={"type": "customers", "id": "0912345678"})

        detail = response.json()["data"]
        assert detail["name"] == "王小明"
        assert detail["orders"][0]["id"] == str(history["order"].id)
        assert detail["counts"] == {"orders": 1, "interactions": 1, "tasks": 1}

    def test_detail_missing_returns_404(self, client):
        response = client.get("/api/data", params={"type": "customers", "id": "0900000000"})

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"


# =============================================================================
# ORDERS / INTERACTIONS / TASKS
# =============================================================================


class TestOrdersData:

    def test_by_id(self, client, history):
        response = client.get("/api/data", params={"type": "orders", "id": str(history["order"].id)})

        assert response.json()["data"]["amount"] == "300"

    def test_missing_returns_404(self, client):
        response = client.get("/api/data", params={"type": "orders", "id": str(uuid4())})

        assert response.status_code == 404

    def test_filter_by_status(self, client, datastore, history):
        seed_order(datastore, "0922222222", status=OrderStatus.DELIVERED)

        response = client.get("/api/data", params={"type": "orders", "status": "DELIVERED"})

        orders = response.json()["data"]["data"]
        assert [o["customer_phone"] for o in orders] == ["0922222222"]


class TestInteractionsData:

    def test_requires_customer_or_id(self, client):
        response = client.get("/api/data", params={"type": "interactions"})

        assert response.status_code == 400

    def test_for_customer(self, client, history):
        response = client.get("/api/data", params={"type": "interactions", "customer_phone": "0912345678"})

        assert [i["id"] for i in response.json()["data"]] == [str(history["interaction"].id)]


class TestTasksData:

    def test_filters(self, client, datastore, history):
        seed_task(datastore, "0922222222", status=TaskStatus.OVERDUE)

        high = client.get("/api/data", params={"type": "tasks", "priority": "HIGH"}).json()["data"]
        overdue = client.get("/api/data", params={"type": "tasks", "status": "OVERDUE"}).json()["data"]

        assert [t["id"] for t in high["data"]] == [str(history["task"].id)]
        assert [t["customer_phone"] for t in overdue["data"]] == ["0922222222"]

    def test_by_id(self, client, history):
        response = client.get("/api/data", params={"type": "tasks", "id": str(history["task"].id)})

        assert response.json()["data"]["priority"] == "HIGH"


# =============================================================================
# AUDIT
# =============================================================================


class TestAuditData:

    def test_entity_history_after_actions(self, client, sample_customers):
        client.post("/api/actions", json={
            "domain": "customer", "action": "update",
            "data": {"phone": "0912345678", "region": "高雄"},
        })

        response = client.get("/api/data", params={
            "type": "audit", "entity": "Customer", "id": "0912345678",
        })

        entries = response.json()["data"]
        assert [e["action"] for e in entries] == ["update_customer"]
        assert entries[0]["changes"]["region"] == {"old": None, "new": "高雄"}

    def test_user_activity(self, client, anonymous_client, sample_customers, test_user_id):
        client.post("/api/actions", json={
            "domain": "customer", "action": "update",
            "data": {"phone": "0912345678", "region": "高雄"},
        })
        anonymous_client.post("/api/actions", json={
            "domain": "customer", "action": "delete", "data": {"phone": "0922222222"},
        })

        response = client.get("/api/data", params={"type": "audit", "user_id": str(test_user_id)})

        entries = response.json()["data"]
        assert [e["action"] for e in entries] == ["update_customer"]
        assert entries[0]["user_id"] == str(test_user_id)

    def test_bad_user_id_returns_400(self, client):
        response = client.get("/api/data", params={"type": "audit", "user_id": "nobody"})

        assert response.status_code == 400

    def test_id_without_entity_returns_400(self, client):
        response = client.get("/api/data", params={"type": "audit", "id": "0912345678"})

        assert response.status_code == 400

    def test_filter_by_action(self, client, sample_customers):
        client.post("/api/actions", json={
            "domain": "customer", "action": "delete", "data": {"phone": "0922222222"},
        })

        response = client.get("/api/data", params={"type": "audit", "action": "delete"})

        assert [e["entity_id"] for e in response.json()["data"]] == ["0922222222"]


# =============================================================================
# STATS
# =============================================================================


class TestStats:

    def test_dashboard_counters(self, client, datastore, history):
        seed_task(datastore, "0922222222", due_at=now_utc() - timedelta(hours=2))

        response = client.get("/api/stats")

        assert response.status_code == 200
        stats = response.json()["data"]
        assert stats["customers"]["total"] == 2
        assert stats["orders"]["total"] == 1
        assert stats["orders"]["total_amount"] == "300"
        assert stats["tasks"]["total"] == 2
        assert stats["tasks"]["overdue"] == 1


class TestHealth:

    def test_health(self, anonymous_client):
        response = anonymous_client.get("/health")

        assert response.json() == {"status": "ok"}
