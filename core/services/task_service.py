"""
Task service for follow-up lifecycle.

Handles create/update/delete and the status lifecycle: start, complete,
cancel, delay. COMPLETED and CANCELLED are terminal.
"""

import logging
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

from core.audit import AuditLogger, AuditAction, compute_changes
from core.exceptions import InvalidStatusTransitionError, NotFoundError, ValidationError
from core.models import Page, Pagination, Task, TaskCreate, TaskDelay, TaskStatus, TaskUpdate
from core.stores.base import Datastore
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

DUE_SOON_WINDOW = timedelta(hours=24)

# Statuses each lifecycle action may start from
_ALLOWED_FROM = {
    "start": {TaskStatus.PENDING, TaskStatus.OVERDUE},
    "complete": {TaskStatus.PENDING, TaskStatus.IN_PROGRESS, TaskStatus.OVERDUE},
    "cancel": {TaskStatus.PENDING, TaskStatus.IN_PROGRESS, TaskStatus.OVERDUE},
    "delay": {TaskStatus.PENDING, TaskStatus.IN_PROGRESS, TaskStatus.OVERDUE},
}


class TaskService:
    """Service for task operations."""

    def __init__(self, datastore: Datastore, audit: AuditLogger):
        self.datastore = datastore
        self.audit = audit

    def create(self, data: TaskCreate) -> Task:
        """
        Create a new task in PENDING status.

        Raises:
            ValidationError: If the customer does not exist, or the order does
                not exist or belongs to another customer
        """
        if self.datastore.customers.get(data.customer_phone) is None:
            raise ValidationError(f"Customer {data.customer_phone} does not exist")

        if data.order_id is not None:
            order = self.datastore.orders.get(data.order_id)
            if order is None or order.customer_phone != data.customer_phone:
                raise ValidationError(
                    f"Order {data.order_id} does not belong to customer {data.customer_phone}"
                )

        now = now_utc()
        task = self.datastore.tasks.insert(
            Task(
                id=uuid4(),
                **data.model_dump(),
                status=TaskStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
        )

        self.audit.log(
            AuditAction.CREATE_TASK,
            entity="Task",
            entity_id=task.id,
            changes={"created": task.model_dump(mode="json")},
        )

        return task

    def get_by_id(self, task_id: UUID) -> Task | None:
        """Get task by ID."""
        return self.datastore.tasks.get(task_id)

    def update(self, task_id: UUID, data: TaskUpdate) -> Task:
        """
        Update editable task fields. Only non-None fields are changed.

        Raises:
            NotFoundError: If task not found
        """
        current = self._require(task_id)

        updates = data.model_dump(exclude_none=True)
        if not updates:
            return current

        return self._apply(current, updates, AuditAction.UPDATE_TASK)

    def delete(self, task_id: UUID) -> None:
        """
        Delete a task.

        Raises:
            NotFoundError: If task not found
        """
        current = self._require(task_id)
        if not self.datastore.tasks.delete(task_id):
            raise NotFoundError(f"Task {task_id} not found")

        self.audit.log(
            AuditAction.DELETE_TASK,
            entity="Task",
            entity_id=task_id,
            changes={"deleted": current.model_dump(mode="json")},
        )

    def list_all(
        self,
        limit: int = 20,
        offset: int = 0,
        customer_phone: str | None = None,
        status: str | None = None,
        priority: str | None = None,
        assignee_user_id: UUID | None = None,
    ) -> Page[Task]:
        """List tasks, earliest due first."""
        filters = {
            "customer_phone": customer_phone,
            "status": status,
            "priority": priority,
            "assignee_user_id": assignee_user_id,
        }
        tasks = self.datastore.tasks.list_all(limit, offset, **filters)
        total = self.datastore.tasks.count(**filters)
        return Page[Task](data=tasks, pagination=Pagination.build(limit, offset, total))

    def start(self, task_id: UUID) -> Task:
        """
        Start working on a task.

        Raises:
            NotFoundError: If task not found
            InvalidStatusTransitionError: Unless PENDING or OVERDUE
        """
        current = self._transition(task_id, "start")
        return self._apply(
            current, {"status": TaskStatus.IN_PROGRESS}, AuditAction.START_TASK
        )

    def complete(self, task_id: UUID, notes: str | None = None) -> Task:
        """
        Mark a task done, recording when and optional completion notes.

        Raises:
            NotFoundError: If task not found
            InvalidStatusTransitionError: If already COMPLETED or CANCELLED
        """
        current = self._transition(task_id, "complete")
        fields: dict[str, Any] = {
            "status": TaskStatus.COMPLETED,
            "completed_at": now_utc(),
        }
        if notes:
            fields["completion_notes"] = notes
        return self._apply(current, fields, AuditAction.COMPLETE_TASK)

    def cancel(self, task_id: UUID) -> Task:
        """
        Cancel a task.

        Raises:
            NotFoundError: If task not found
            InvalidStatusTransitionError: If already COMPLETED or CANCELLED
        """
        current = self._transition(task_id, "cancel")
        return self._apply(
            current, {"status": TaskStatus.CANCELLED}, AuditAction.CANCEL_TASK
        )

    def delay(self, task_id: UUID, data: TaskDelay) -> Task:
        """
        Reschedule a task. The task goes back to PENDING with the new due date.

        Raises:
            NotFoundError: If task not found
            InvalidStatusTransitionError: If already COMPLETED or CANCELLED
            ValidationError: If new_due_at is not in the future
        """
        current = self._transition(task_id, "delay")

        if data.new_due_at.tzinfo is None:
            raise ValidationError("new_due_at must include a timezone")
        if data.new_due_at <= now_utc():
            raise ValidationError("new_due_at must be in the future")

        fields: dict[str, Any] = {
            "status": TaskStatus.PENDING,
            "due_at": data.new_due_at,
        }
        if data.reason:
            fields["delay_reason"] = data.reason
        return self._apply(current, fields, AuditAction.DELAY_TASK)

    def stats(self, now: datetime | None = None) -> dict[str, Any]:
        """
        Task counts by status, priority and type.

        overdue counts OVERDUE tasks plus open tasks already past due that the
        sweep has not reached yet; due_soon counts open tasks due in the next
        24 hours.
        """
        now = now or now_utc()
        tasks = self.datastore.tasks
        by_status = tasks.count_grouped("status")
        return {
            "total": tasks.count(),
            "by_status": by_status,
            "by_priority": tasks.count_grouped("priority"),
            "by_type": tasks.count_grouped("type"),
            "overdue": by_status.get(TaskStatus.OVERDUE.value, 0)
            + tasks.count_open_due_between(None, now),
            "due_soon": tasks.count_open_due_between(now, now + DUE_SOON_WINDOW),
        }

    def _require(self, task_id: UUID) -> Task:
        current = self.get_by_id(task_id)
        if current is None:
            raise NotFoundError(f"Task {task_id} not found")
        return current

    def _transition(self, task_id: UUID, action: str) -> Task:
        current = self._require(task_id)
        if current.status not in _ALLOWED_FROM[action]:
            raise InvalidStatusTransitionError("Task", task_id, current.status.value, action)
        return current

    def _apply(self, current: Task, fields: dict[str, Any], action: AuditAction) -> Task:
        updated = self.datastore.tasks.update(current.id, fields, now_utc())
        if updated is None:
            raise NotFoundError(f"Task {current.id} not found")

        changes = compute_changes(
            current.model_dump(mode="json"),
            updated.model_dump(mode="json")
        )
        if changes:
            self.audit.log(action, entity="Task", entity_id=current.id, changes=changes)

        return updated
