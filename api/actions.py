"""POST /api/actions: unified mutation endpoint."""

from uuid import UUID

from fastapi import APIRouter, Request
from pydantic import BaseModel

from api.base import success_response
from core.models import (
    CustomerCreate, CustomerUpdate,
    DuplicateCheckRequest, MergeRequest,
    OrderCreate, OrderUpdate,
    InteractionCreate, InteractionUpdate,
    TaskCreate, TaskUpdate, TaskDelay,
)


class ActionRequest(BaseModel):
    domain: str
    action: str
    data: dict


def create_actions_router(services: dict) -> APIRouter:
    router = APIRouter()

    handlers = {
        "customer": CustomerHandler(services["customer"]),
        "order": OrderHandler(services["order"]),
        "interaction": InteractionHandler(services["interaction"]),
        "task": TaskHandler(services["task"]),
    }

    @router.post("/actions")
    def perform_action(request: Request, body: ActionRequest):
        handler = handlers.get(body.domain)
        if handler is None:
            raise ValueError(
                f"Unknown domain '{body.domain}'. "
                f"Valid domains: {', '.join(sorted(handlers.keys()))}"
            )

        if body.action not in handler.ALLOWED_ACTIONS:
            raise ValueError(
                f"Action '{body.action}' not allowed on '{body.domain}'. "
                f"Allowed: {', '.join(sorted(handler.ALLOWED_ACTIONS))}"
            )

        method = getattr(handler, f"_handle_{body.action}")
        result = method(dict(body.data))
        return success_response(result).model_dump(mode="json")

    return router


def _require(data: dict, key: str):
    if key not in data:
        raise ValueError(f"'{key}' is required")
    return data.pop(key)


# =============================================================================
# HANDLER CLASSES
# =============================================================================


class CustomerHandler:
    ALLOWED_ACTIONS = {"create", "update", "delete", "check_duplicates", "merge"}

    def __init__(self, service):
        self.service = service

    def _handle_create(self, data: dict):
        customer = self.service.create(CustomerCreate(**data))
        return customer.model_dump(mode="json")

    def _handle_update(self, data: dict):
        phone = _require(data, "phone")
        customer = self.service.update(phone, CustomerUpdate(**data))
        return customer.model_dump(mode="json")

    def _handle_delete(self, data: dict):
        self.service.delete(_require(data, "phone"))
        return {"deleted": True}

    def _handle_check_duplicates(self, data: dict):
        result = self.service.check_duplicates(DuplicateCheckRequest(**data))
        return {
            "name_duplicates": [c.model_dump(mode="json") for c in result["name_duplicates"]],
        }

    def _handle_merge(self, data: dict):
        customer = self.service.merge(MergeRequest(**data))
        return customer.model_dump(mode="json")


class OrderHandler:
    ALLOWED_ACTIONS = {"create", "update", "delete"}

    def __init__(self, service):
        self.service = service

    def _handle_create(self, data: dict):
        order = self.service.create(OrderCreate(**data))
        return order.model_dump(mode="json")

    def _handle_update(self, data: dict):
        order_id = UUID(_require(data, "id"))
        order = self.service.update(order_id, OrderUpdate(**data))
        return order.model_dump(mode="json")

    def _handle_delete(self, data: dict):
        self.service.delete(UUID(_require(data, "id")))
        return {"deleted": True}


class InteractionHandler:
    ALLOWED_ACTIONS = {"create", "update", "delete"}

    def __init__(self, service):
        self.service = service

    def _handle_create(self, data: dict):
        interaction = self.service.create(InteractionCreate(**data))
        return interaction.model_dump(mode="json")

    def _handle_update(self, data: dict):
        interaction_id = UUID(_require(data, "id"))
        interaction = self.service.update(interaction_id, InteractionUpdate(**data))
        return interaction.model_dump(mode="json")

    def _handle_delete(self, data: dict):
        self.service.delete(UUID(_require(data, "id")))
        return {"deleted": True}


class TaskHandler:
    ALLOWED_ACTIONS = {"create", "update", "delete", "start", "complete", "cancel", "delay"}

    def __init__(self, service):
        self.service = service

    def _handle_create(self, data: dict):
        task = self.service.create(TaskCreate(**data))
        return task.model_dump(mode="json")

    def _handle_update(self, data: dict):
        task_id = UUID(_require(data, "id"))
        task = self.service.update(task_id, TaskUpdate(**data))
        return task.model_dump(mode="json")

    def _handle_delete(self, data: dict):
        self.service.delete(UUID(_require(data, "id")))
        return {"deleted": True}

    def _handle_start(self, data: dict):
        task = self.service.start(UUID(_require(data, "id")))
        return task.model_dump(mode="json")

    def _handle_complete(self, data: dict):
        task = self.service.complete(UUID(_require(data, "id")), data.get("notes"))
        return task.model_dump(mode="json")

    def _handle_cancel(self, data: dict):
        task = self.service.cancel(UUID(_require(data, "id")))
        return task.model_dump(mode="json")

    def _handle_delay(self, data: dict):
        task_id = UUID(_require(data, "id"))
        task = self.service.delay(task_id, TaskDelay(**data))
        return task.model_dump(mode="json")
