"""
PostgreSQL-backed stores.

Each store wraps an executor: the PostgresClient itself (every call commits on
its own) or a Transaction from PostgresClient.transaction() (nothing commits
until the block exits). Table layout lives in schema.sql.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterator
from uuid import UUID

from psycopg2.extras import Json

from clients.postgres_client import PostgresClient, Transaction
from core.models import (
    OPEN_STATUSES, AuditEntry, Customer, Interaction, Order, OrderStatus, Task, TaskStatus, TaskType,
)

logger = logging.getLogger(__name__)

Executor = PostgresClient | Transaction

_OPEN = (TaskStatus.PENDING.value, TaskStatus.IN_PROGRESS.value)
_UNFINISHED = tuple(s.value for s in OPEN_STATUSES)


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so the value is matched literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _update_row(
    executor: Executor,
    table: str,
    key_column: str,
    key: Any,
    fields: dict[str, Any],
    allowed: set[str],
    updated_at: datetime,
    json_columns: frozenset[str] = frozenset(),
) -> dict[str, Any] | None:
    """UPDATE the allowed subset of fields plus updated_at; returns the new row or None."""
    for field in fields:
        if field not in allowed:
            logger.warning(f"Attempted to update unknown field '{field}' on {table} {key}")

    set_parts = []
    params: list[Any] = []
    for field, value in fields.items():
        if field not in allowed:
            continue
        set_parts.append(f"{field} = %s")
        params.append(Json(value) if field in json_columns else value)

    set_parts.append("updated_at = %s")
    params.append(updated_at)
    params.append(key)

    return executor.execute_single(
        f"""
        UPDATE {table}
        SET {', '.join(set_parts)}
        WHERE {key_column} = %s
        RETURNING *
        """,
        tuple(params),
    )


class PostgresCustomerStore:
    """Customers keyed by phone."""

    UPDATABLE_COLUMNS = {
        "name", "email", "line_id", "facebook_url", "source",
        "tags", "region", "marketing_consent", "notes",
    }

    def __init__(self, executor: Executor):
        self.executor = executor

    def get(self, phone: str, for_update: bool = False) -> Customer | None:
        lock = " FOR UPDATE" if for_update else ""
        row = self.executor.execute_single(
            f"SELECT * FROM customers WHERE phone = %s{lock}",
            (phone,),
        )
        return Customer.model_validate(row) if row else None

    def get_many(self, phones: list[str], for_update: bool = False) -> list[Customer]:
        if not phones:
            return []
        # Lock in a stable order so two merges over overlapping phones cannot deadlock
        lock = " FOR UPDATE" if for_update else ""
        rows = self.executor.execute(
            f"SELECT * FROM customers WHERE phone = ANY(%s) ORDER BY phone{lock}",
            (list(phones),),
        )
        return [Customer.model_validate(row) for row in rows]

    def find_by_name(self, name: str, exclude_phone: str | None = None) -> list[Customer]:
        pattern = f"%{escape_like(name)}%"
        if exclude_phone:
            rows = self.executor.execute(
                """
                SELECT * FROM customers
                WHERE name LIKE %s AND phone <> %s
                ORDER BY created_at
                """,
                (pattern, exclude_phone),
            )
        else:
            rows = self.executor.execute(
                "SELECT * FROM customers WHERE name LIKE %s ORDER BY created_at",
                (pattern,),
            )
        return [Customer.model_validate(row) for row in rows]

    def insert(self, customer: Customer) -> Customer:
        row = self.executor.execute_returning(
            """
            INSERT INTO customers (
                phone, name, email, line_id, facebook_url, source,
                tags, region, marketing_consent, notes,
                created_at, updated_at
            ) VALUES (
                %s, %s, %s, %s, %s, %s,
                %s, %s, %s, %s,
                %s, %s
            )
            RETURNING *
            """,
            (
                customer.phone, customer.name, customer.email, customer.line_id,
                customer.facebook_url, customer.source, customer.tags, customer.region,
                customer.marketing_consent, customer.notes,
                customer.created_at, customer.updated_at,
            ),
        )[0]
        return Customer.model_validate(row)

    def update(self, phone: str, fields: dict[str, Any], updated_at: datetime) -> Customer | None:
        row = _update_row(
            self.executor, "customers", "phone", phone, fields,
            self.UPDATABLE_COLUMNS, updated_at,
        )
        return Customer.model_validate(row) if row else None

    def delete(self, phone: str) -> bool:
        return self.executor.execute_rowcount(
            "DELETE FROM customers WHERE phone = %s", (phone,)
        ) > 0

    def _search_clause(self, search: str | None, source: str | None) -> tuple[str, list[Any]]:
        clauses = []
        params: list[Any] = []
        if search:
            pattern = f"%{escape_like(search)}%"
            clauses.append("(name ILIKE %s OR phone ILIKE %s OR email ILIKE %s)")
            params.extend([pattern, pattern, pattern])
        if source:
            clauses.append("source = %s")
            params.append(source)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, params

    def list_all(
        self,
        limit: int,
        offset: int,
        search: str | None = None,
        source: str | None = None,
    ) -> list[Customer]:
        where, params = self._search_clause(search, source)
        rows = self.executor.execute(
            f"""
            SELECT * FROM customers
            {where}
            ORDER BY updated_at DESC
            LIMIT %s OFFSET %s
            """,
            tuple(params + [limit, offset]),
        )
        return [Customer.model_validate(row) for row in rows]

    def count(self, search: str | None = None, source: str | None = None) -> int:
        where, params = self._search_clause(search, source)
        return self.executor.execute_scalar(
            f"SELECT COUNT(*) FROM customers {where}", tuple(params)
        ) or 0

    def count_by_source(self) -> dict[str, int]:
        rows = self.executor.execute(
            "SELECT source, COUNT(*) AS n FROM customers GROUP BY source"
        )
        return {row["source"]: row["n"] for row in rows}

    def list_uncontacted(self, created_before: datetime) -> list[Customer]:
        rows = self.executor.execute(
            """
            SELECT c.* FROM customers c
            WHERE c.created_at <= %s
              AND NOT EXISTS (
                  SELECT 1 FROM interactions i WHERE i.customer_phone = c.phone
              )
              AND NOT EXISTS (
                  SELECT 1 FROM tasks t
                  WHERE t.customer_phone = c.phone
                    AND t.type = 'FOLLOW_UP'
                    AND t.status IN (%s, %s)
              )
            ORDER BY c.created_at
            """,
            (created_before, *_OPEN),
        )
        return [Customer.model_validate(row) for row in rows]


class _ChildStore:
    """Common count / reassign for tables keyed to a customer phone."""

    table = ""

    def __init__(self, executor: Executor):
        self.executor = executor

    def _where(self, filters: tuple[tuple[str, Any], ...]) -> tuple[str, list[Any]]:
        clauses = []
        params: list[Any] = []
        for column, value in filters:
            if value is not None:
                clauses.append(f"{column} = %s")
                params.append(value)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, params

    def _count(self, filters: tuple[tuple[str, Any], ...]) -> int:
        where, params = self._where(filters)
        return self.executor.execute_scalar(
            f"SELECT COUNT(*) FROM {self.table} {where}", tuple(params)
        ) or 0

    def count(self, customer_phone: str | None = None) -> int:
        return self._count((("customer_phone", customer_phone),))

    def reassign_customer(self, from_phone: str, to_phone: str) -> int:
        return self.executor.execute_rowcount(
            f"""
            UPDATE {self.table}
            SET customer_phone = %s
            WHERE customer_phone = %s
            """,
            (to_phone, from_phone),
        )

    def _delete(self, row_id: UUID) -> bool:
        return self.executor.execute_rowcount(
            f"DELETE FROM {self.table} WHERE id = %s", (row_id,)
        ) > 0


class PostgresOrderStore(_ChildStore):
    table = "orders"

    UPDATABLE_COLUMNS = {
        "status", "amount", "description", "notes",
        "expected_delivery_date", "items",
    }

    def get(self, order_id: UUID) -> Order | None:
        row = self.executor.execute_single("SELECT * FROM orders WHERE id = %s", (order_id,))
        return Order.model_validate(row) if row else None

    def insert(self, order: Order) -> Order:
        row = self.executor.execute_returning(
            """
            INSERT INTO orders (
                id, order_number, customer_phone, amount, status,
                description, notes, expected_delivery_date, items,
                created_at, updated_at
            ) VALUES (
                %s, %s, %s, %s, %s,
                %s, %s, %s, %s,
                %s, %s
            )
            RETURNING *
            """,
            (
                order.id, order.order_number, order.customer_phone, order.amount, order.status,
                order.description, order.notes, order.expected_delivery_date,
                Json([item.model_dump(mode="json") for item in order.items]),
                order.created_at, order.updated_at,
            ),
        )[0]
        return Order.model_validate(row)

    def update(self, order_id: UUID, fields: dict[str, Any], updated_at: datetime) -> Order | None:
        row = _update_row(
            self.executor, "orders", "id", order_id, fields,
            self.UPDATABLE_COLUMNS, updated_at, json_columns=frozenset({"items"}),
        )
        return Order.model_validate(row) if row else None

    def delete(self, order_id: UUID) -> bool:
        return self._delete(order_id)

    def count(self, customer_phone: str | None = None, status: str | None = None) -> int:
        return self._count((("customer_phone", customer_phone), ("status", status)))

    def list_all(
        self,
        limit: int,
        offset: int,
        customer_phone: str | None = None,
        status: str | None = None,
    ) -> list[Order]:
        where, params = self._where((("customer_phone", customer_phone), ("status", status)))
        rows = self.executor.execute(
            f"""
            SELECT * FROM orders
            {where}
            ORDER BY created_at DESC
            LIMIT %s OFFSET %s
            """,
            tuple(params + [limit, offset]),
        )
        return [Order.model_validate(row) for row in rows]

    def count_by_status(self) -> dict[str, int]:
        rows = self.executor.execute("SELECT status, COUNT(*) AS n FROM orders GROUP BY status")
        return {row["status"]: row["n"] for row in rows}

    def total_amount(self) -> Decimal:
        value = self.executor.execute_scalar("SELECT COALESCE(SUM(amount), 0) FROM orders")
        return Decimal(value or 0)

    def list_delivered_between(
        self, start: datetime, end: datetime, without_task_type: str
    ) -> list[Order]:
        rows = self.executor.execute(
            """
            SELECT o.* FROM orders o
            WHERE o.status = %s
              AND o.updated_at >= %s AND o.updated_at < %s
              AND NOT EXISTS (
                  SELECT 1 FROM tasks t WHERE t.order_id = o.id AND t.type = %s
              )
            ORDER BY o.updated_at
            """,
            (OrderStatus.DELIVERED.value, start, end, without_task_type),
        )
        return [Order.model_validate(row) for row in rows]

    def list_awaiting_payment_or_refund(self, pending_since: datetime) -> list[Order]:
        rows = self.executor.execute(
            """
            SELECT o.* FROM orders o
            WHERE (
                o.status = %s
                AND o.created_at <= %s
                AND NOT EXISTS (
                    SELECT 1 FROM tasks t
                    WHERE t.order_id = o.id
                      AND t.type = %s
                      AND (t.status IN (%s, %s, %s) OR t.created_at > %s)
                )
            ) OR (
                o.status IN (%s, %s)
                AND NOT EXISTS (
                    SELECT 1 FROM tasks t WHERE t.order_id = o.id AND t.type = %s
                )
            )
            ORDER BY o.created_at
            """,
            (
                OrderStatus.PENDING.value, pending_since,
                TaskType.PAYMENT_REMINDER.value, *_UNFINISHED, pending_since,
                OrderStatus.CANCELLED.value, OrderStatus.REFUNDED.value,
                TaskType.REFUND_PROCESS.value,
            ),
        )
        return [Order.model_validate(row) for row in rows]


class PostgresInteractionStore(_ChildStore):
    table = "interactions"

    UPDATABLE_COLUMNS = {"channel", "summary", "notes", "attachments"}

    def get(self, interaction_id: UUID) -> Interaction | None:
        row = self.executor.execute_single(
            "SELECT * FROM interactions WHERE id = %s", (interaction_id,)
        )
        return Interaction.model_validate(row) if row else None

    def insert(self, interaction: Interaction) -> Interaction:
        row = self.executor.execute_returning(
            """
            INSERT INTO interactions (
                id, customer_phone, user_id, channel, summary,
                notes, attachments, created_at, updated_at
            ) VALUES (
                %s, %s, %s, %s, %s,
                %s, %s, %s, %s
            )
            RETURNING *
            """,
            (
                interaction.id, interaction.customer_phone, interaction.user_id,
                interaction.channel, interaction.summary, interaction.notes,
                interaction.attachments, interaction.created_at, interaction.updated_at,
            ),
        )[0]
        return Interaction.model_validate(row)

    def update(
        self, interaction_id: UUID, fields: dict[str, Any], updated_at: datetime
    ) -> Interaction | None:
        row = _update_row(
            self.executor, "interactions", "id", interaction_id, fields,
            self.UPDATABLE_COLUMNS, updated_at,
        )
        return Interaction.model_validate(row) if row else None

    def delete(self, interaction_id: UUID) -> bool:
        return self._delete(interaction_id)

    def list_for_customer(self, customer_phone: str, limit: int) -> list[Interaction]:
        rows = self.executor.execute(
            """
            SELECT * FROM interactions
            WHERE customer_phone = %s
            ORDER BY created_at DESC
            LIMIT %s
            """,
            (customer_phone, limit),
        )
        return [Interaction.model_validate(row) for row in rows]


class PostgresTaskStore(_ChildStore):
    table = "tasks"

    UPDATABLE_COLUMNS = {
        "title", "description", "type", "priority", "assignee_user_id",
        "status", "due_at", "completed_at", "completion_notes", "delay_reason",
    }

    GROUPABLE_COLUMNS = {"status", "priority", "type"}

    def get(self, task_id: UUID) -> Task | None:
        row = self.executor.execute_single("SELECT * FROM tasks WHERE id = %s", (task_id,))
        return Task.model_validate(row) if row else None

    def insert(self, task: Task) -> Task:
        row = self.executor.execute_returning(
            """
            INSERT INTO tasks (
                id, customer_phone, order_id, title, description,
                type, priority, status, due_at, assignee_user_id,
                created_at, updated_at
            ) VALUES (
                %s, %s, %s, %s, %s,
                %s, %s, %s, %s, %s,
                %s, %s
            )
            RETURNING *
            """,
            (
                task.id, task.customer_phone, task.order_id, task.title, task.description,
                task.type, task.priority, task.status, task.due_at, task.assignee_user_id,
                task.created_at, task.updated_at,
            ),
        )[0]
        return Task.model_validate(row)

    def update(self, task_id: UUID, fields: dict[str, Any], updated_at: datetime) -> Task | None:
        row = _update_row(
            self.executor, "tasks", "id", task_id, fields,
            self.UPDATABLE_COLUMNS, updated_at,
        )
        return Task.model_validate(row) if row else None

    def delete(self, task_id: UUID) -> bool:
        return self._delete(task_id)

    def count(
        self,
        customer_phone: str | None = None,
        status: str | None = None,
        priority: str | None = None,
        assignee_user_id: UUID | None = None,
    ) -> int:
        return self._count(self._filters(customer_phone, status, priority, assignee_user_id))

    @staticmethod
    def _filters(customer_phone, status, priority, assignee_user_id) -> tuple[tuple[str, Any], ...]:
        return (
            ("customer_phone", customer_phone),
            ("status", status),
            ("priority", priority),
            ("assignee_user_id", assignee_user_id),
        )

    def list_all(
        self,
        limit: int,
        offset: int,
        customer_phone: str | None = None,
        status: str | None = None,
        priority: str | None = None,
        assignee_user_id: UUID | None = None,
    ) -> list[Task]:
        where, params = self._where(
            self._filters(customer_phone, status, priority, assignee_user_id)
        )
        rows = self.executor.execute(
            f"""
            SELECT * FROM tasks
            {where}
            ORDER BY due_at ASC
            LIMIT %s OFFSET %s
            """,
            tuple(params + [limit, offset]),
        )
        return [Task.model_validate(row) for row in rows]

    def list_open_for_customer(self, customer_phone: str) -> list[Task]:
        rows = self.executor.execute(
            """
            SELECT * FROM tasks
            WHERE customer_phone = %s AND status IN (%s, %s)
            ORDER BY due_at ASC
            """,
            (customer_phone, *_OPEN),
        )
        return [Task.model_validate(row) for row in rows]

    def count_grouped(self, column: str) -> dict[str, int]:
        if column not in self.GROUPABLE_COLUMNS:
            raise ValueError(f"Cannot group tasks by '{column}'")
        rows = self.executor.execute(
            f"SELECT {column} AS key, COUNT(*) AS n FROM tasks GROUP BY {column}"
        )
        return {row["key"]: row["n"] for row in rows}

    def count_open_due_between(self, start: datetime | None, end: datetime) -> int:
        if start is None:
            return self.executor.execute_scalar(
                "SELECT COUNT(*) FROM tasks WHERE status IN (%s, %s) AND due_at < %s",
                (*_OPEN, end),
            ) or 0
        return self.executor.execute_scalar(
            """
            SELECT COUNT(*) FROM tasks
            WHERE status IN (%s, %s) AND due_at >= %s AND due_at < %s
            """,
            (*_OPEN, start, end),
        ) or 0

    def mark_overdue(self, now: datetime) -> int:
        return self.executor.execute_rowcount(
            """
            UPDATE tasks
            SET status = %s, updated_at = %s
            WHERE status IN (%s, %s) AND due_at < %s
            """,
            (TaskStatus.OVERDUE.value, now, *_OPEN, now),
        )


class PostgresAuditStore:
    """Append-only audit_log table."""

    def __init__(self, executor: Executor):
        self.executor = executor

    def insert(self, entry: AuditEntry) -> AuditEntry:
        self.executor.execute(
            """
            INSERT INTO audit_log (
                id, request_id, user_id, user_ip, action, entity, entity_id,
                changes, status, latency_ms, created_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                entry.id, entry.request_id, entry.user_id, entry.user_ip,
                entry.action, entry.entity, entry.entity_id,
                Json(entry.changes), entry.status, entry.latency_ms, entry.created_at,
            ),
        )
        return entry

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
    ) -> list[AuditEntry]:
        clauses = []
        params: list[Any] = []
        if entity:
            clauses.append("entity = %s")
            params.append(entity)
        if entity_id:
            clauses.append("entity_id = %s")
            params.append(entity_id)
        if action:
            clauses.append("action LIKE %s")
            params.append(f"%{escape_like(action)}%")
        if user_id:
            clauses.append("user_id = %s")
            params.append(user_id)
        if start:
            clauses.append("created_at >= %s")
            params.append(start)
        if end:
            clauses.append("created_at <= %s")
            params.append(end)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self.executor.execute(
            f"""
            SELECT * FROM audit_log
            {where}
            ORDER BY created_at DESC
            LIMIT %s OFFSET %s
            """,
            tuple(params + [limit, offset]),
        )
        return [AuditEntry.model_validate(row) for row in rows]


class PostgresSession:
    """All stores bound to one executor."""

    def __init__(self, executor: Executor):
        self.customers = PostgresCustomerStore(executor)
        self.orders = PostgresOrderStore(executor)
        self.interactions = PostgresInteractionStore(executor)
        self.tasks = PostgresTaskStore(executor)
        self.audit = PostgresAuditStore(executor)


class PostgresDatastore(PostgresSession):
    """
    Datastore over a PostgresClient.

    Attribute stores autocommit each call; transaction() yields a
    PostgresSession running inside one database transaction.
    """

    def __init__(self, postgres: PostgresClient):
        super().__init__(postgres)
        self.postgres = postgres

    @contextmanager
    def transaction(self) -> Iterator[PostgresSession]:
        with self.postgres.transaction() as tx:
            yield PostgresSession(tx)
