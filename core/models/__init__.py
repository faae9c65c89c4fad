"""Core domain models."""

from core.models.customer import (
    Customer, CustomerCreate, CustomerUpdate, CustomerSummary, CustomerSource, PHONE_PATTERN,
)
from core.models.merge import DuplicateCheckRequest, MergeFields, MergeRequest
from core.models.order import Order, OrderCreate, OrderUpdate, OrderItem, OrderStatus
from core.models.interaction import (
    Interaction, InteractionCreate, InteractionUpdate, InteractionChannel,
)
from core.models.task import (
    Task, TaskCreate, TaskUpdate, TaskDelay, TaskType, TaskPriority, TaskStatus, OPEN_STATUSES,
)
from core.models.audit import AuditEntry, AuditStatus
from core.models.page import Page, Pagination

__all__ = [
    # Customer
    "Customer", "CustomerCreate", "CustomerUpdate", "CustomerSummary", "CustomerSource",
    "PHONE_PATTERN",
    # Merge
    "DuplicateCheckRequest", "MergeFields", "MergeRequest",
    # Order
    "Order", "OrderCreate", "OrderUpdate", "OrderItem", "OrderStatus",
    # Interaction
    "Interaction", "InteractionCreate", "InteractionUpdate", "InteractionChannel",
    # Task
    "Task", "TaskCreate", "TaskUpdate", "TaskDelay", "TaskType", "TaskPriority", "TaskStatus",
    "OPEN_STATUSES",
    # Audit
    "AuditEntry", "AuditStatus",
    # Pagination
    "Page", "Pagination",
]
