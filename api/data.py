"""GET /api/data: unified read endpoint."""

from uuid import UUID

from fastapi import APIRouter, Query, Request

from api.base import success_response
from core.exceptions import NotFoundError


VALID_TYPES = {"customers", "orders", "interactions", "tasks", "audit"}


def create_data_router(services: dict) -> APIRouter:
    router = APIRouter()

    customer_svc = services["customer"]
    order_svc = services["order"]
    interaction_svc = services["interaction"]
    task_svc = services["task"]
    audit = services["audit"]

    @router.get("/data")
    def get_data(
        request: Request,
        type: str | None = Query(None),
        id: str | None = Query(None),
        search: str | None = Query(None),
        customer_phone: str | None = Query(None),
        status: str | None = Query(None),
        priority: str | None = Query(None),
        source: str | None = Query(None),
        entity: str | None = Query(None),
        action: str | None = Query(None),
        user_id: str | None = Query(None),
        limit: int = Query(20, ge=1, le=500),
        offset: int = Query(0, ge=0),
    ):
        if type is None:
            raise ValueError("'type' query parameter is required")

        if type not in VALID_TYPES:
            raise ValueError(f"Unknown type '{type}'. Valid types: {', '.join(sorted(VALID_TYPES))}")

        if type == "customers":
            return _handle_customers(customer_svc, id, search, source, limit, offset)

        if type == "orders":
            return _handle_orders(order_svc, id, customer_phone, status, limit, offset)

        if type == "interactions":
            return _handle_interactions(interaction_svc, id, customer_phone, limit)

        if type == "tasks":
            return _handle_tasks(task_svc, id, customer_phone, status, priority, limit, offset)

        if type == "audit":
            return _handle_audit(audit, id, entity, action, user_id, limit, offset)

    return router


def _handle_customers(customer_svc, id, search, source, limit, offset):
    # Customers are addressed by phone
    if id:
        return success_response(customer_svc.get_detail(id)).model_dump(mode="json")

    page = customer_svc.list_all(limit, offset, search=search, source=source)
    return success_response(page.model_dump(mode="json")).model_dump(mode="json")


def _handle_orders(order_svc, id, customer_phone, status, limit, offset):
    if id:
        order = order_svc.get_by_id(UUID(id))
        if order is None:
            raise NotFoundError(f"Order {id} not found")
        return success_response(order.model_dump(mode="json")).model_dump(mode="json")

    page = order_svc.list_all(limit, offset, customer_phone=customer_phone, status=status)
    return success_response(page.model_dump(mode="json")).model_dump(mode="json")


def _handle_interactions(interaction_svc, id, customer_phone, limit):
    if id:
        interaction = interaction_svc.get_by_id(UUID(id))
        if interaction is None:
            raise NotFoundError(f"Interaction {id} not found")
        return success_response(interaction.model_dump(mode="json")).model_dump(mode="json")

    if customer_phone:
        interactions = interaction_svc.list_for_customer(customer_phone, limit)
        return success_response(
            [i.model_dump(mode="json") for i in interactions]
        ).model_dump(mode="json")

    raise ValueError("'interactions' type requires 'id' or 'customer_phone' parameter")


def _handle_tasks(task_svc, id, customer_phone, status, priority, limit, offset):
    if id:
        task = task_svc.get_by_id(UUID(id))
        if task is None:
            raise NotFoundError(f"Task {id} not found")
        return success_response(task.model_dump(mode="json")).model_dump(mode="json")

    page = task_svc.list_all(
        limit, offset, customer_phone=customer_phone, status=status, priority=priority
    )
    return success_response(page.model_dump(mode="json")).model_dump(mode="json")


def _handle_audit(audit, id, entity, action, user_id, limit, offset):
    if id:
        if not entity:
            raise ValueError("'audit' lookups by 'id' also require 'entity'")
        entries = audit.get_entity_history(entity, id, limit)
    elif user_id:
        entries = audit.get_user_activity(UUID(user_id), limit)
    else:
        entries = audit.list_all(limit, offset, entity=entity, action=action)

    return success_response(
        [e.model_dump(mode="json") for e in entries]
    ).model_dump(mode="json")
