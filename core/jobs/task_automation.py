"""
Task automation - periodic rules that keep the task list honest.

Two jobs:
- overdue sweep: open tasks past their due date become OVERDUE
- rules: create the tasks staff would otherwise have to remember
  - new customers nobody has contacted yet get a HIGH-priority FOLLOW_UP
  - orders delivered three business days ago get a CARE_CALL
  - orders delivered thirty business days ago get a REPURCHASE
  - PENDING orders older than a week get a PAYMENT_REMINDER, and
    CANCELLED/REFUNDED orders get a REFUND_PROCESS

Both run as the system actor and can also be called directly (e.g. from a
cron script or tests) with an explicit `now`.
"""

import logging
from datetime import datetime, timedelta

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from core.audit import AuditAction, AuditLogger
from core.models import Order, OrderStatus, Task, TaskCreate, TaskPriority, TaskType
from core.services.task_service import TaskService
from core.stores.base import Datastore
from utils.config import AppConfig
from utils.timezone import business_day_bounds, now_utc

logger = logging.getLogger(__name__)

FOLLOW_UP_DUE_IN = timedelta(hours=2)

CARE_CALL_AFTER = timedelta(days=3)
CARE_CALL_DUE_IN = timedelta(hours=2)

REPURCHASE_AFTER = timedelta(days=30)
REPURCHASE_DUE_IN = timedelta(hours=4)

PAYMENT_OVERDUE_AFTER = timedelta(days=7)
PAYMENT_TASK_DUE_IN = timedelta(hours=1)

REFUND_STATUSES = (OrderStatus.CANCELLED, OrderStatus.REFUNDED)


class TaskAutomation:
    """The automation rules, independent of any scheduler."""

    def __init__(self, datastore: Datastore, audit: AuditLogger, follow_up_after_hours: int = 24):
        self.datastore = datastore
        self.audit = audit
        self.tasks = TaskService(datastore, audit)
        self.follow_up_after = timedelta(hours=follow_up_after_hours)

    def mark_overdue_tasks(self, now: datetime | None = None) -> int:
        """Move PENDING/IN_PROGRESS tasks with due_at < now to OVERDUE. Returns count."""
        now = now or now_utc()
        count = self.datastore.tasks.mark_overdue(now)

        if count:
            self.audit.log_safely(
                AuditAction.MARK_TASKS_OVERDUE,
                entity="Task",
                entity_id="*",
                changes={"count": count, "as_of": now.isoformat()},
            )
        logger.info(f"Overdue sweep marked {count} task(s)")
        return count

    def create_new_customer_follow_ups(self, now: datetime | None = None) -> list[Task]:
        """
        Create a follow-up task for every customer created more than
        follow_up_after ago with no interactions and no open FOLLOW_UP task.
        """
        now = now or now_utc()
        customers = self.datastore.customers.list_uncontacted(now - self.follow_up_after)

        created = []
        for customer in customers:
            created.append(
                self.tasks.create(
                    TaskCreate(
                        customer_phone=customer.phone,
                        title=f"Follow up with new customer {customer.name}"[:255],
                        description="New customer has not been contacted yet.",
                        type=TaskType.FOLLOW_UP,
                        priority=TaskPriority.HIGH,
                        due_at=now + FOLLOW_UP_DUE_IN,
                    )
                )
            )

        logger.info(f"Created {len(created)} new-customer follow-up task(s)")
        return created

    def create_post_purchase_care_tasks(self, now: datetime | None = None) -> list[Task]:
        """CARE_CALL for each order delivered on the business day three days ago."""
        now = now or now_utc()
        start, end = business_day_bounds(now - CARE_CALL_AFTER)
        orders = self.datastore.orders.list_delivered_between(start, end, TaskType.CARE_CALL.value)

        created = [
            self._create_for_order(
                order,
                title="Post-purchase care call",
                description=f"Order {order.order_number} was delivered 3 days ago. Check in with the customer.",
                task_type=TaskType.CARE_CALL,
                priority=TaskPriority.MEDIUM,
                due_at=now + CARE_CALL_DUE_IN,
            )
            for order in orders
        ]

        logger.info(f"Created {len(created)} post-purchase care task(s)")
        return created

    def create_repurchase_tasks(self, now: datetime | None = None) -> list[Task]:
        """REPURCHASE for each order delivered on the business day thirty days ago."""
        now = now or now_utc()
        start, end = business_day_bounds(now - REPURCHASE_AFTER)
        orders = self.datastore.orders.list_delivered_between(start, end, TaskType.REPURCHASE.value)

        created = [
            self._create_for_order(
                order,
                title="Repurchase recommendation",
                description=f"Order {order.order_number} was delivered 30 days ago. Suggest new products.",
                task_type=TaskType.REPURCHASE,
                priority=TaskPriority.MEDIUM,
                due_at=now + REPURCHASE_DUE_IN,
            )
            for order in orders
        ]

        logger.info(f"Created {len(created)} repurchase task(s)")
        return created

    def create_payment_reminders(self, now: datetime | None = None) -> list[Task]:
        """
        PAYMENT_REMINDER for PENDING orders unpaid for a week, REFUND_PROCESS
        for CANCELLED and REFUNDED orders.

        A pending order gets at most one reminder per week while it stays
        unpaid. A refund task is created once per order.
        """
        now = now or now_utc()
        orders = self.datastore.orders.list_awaiting_payment_or_refund(now - PAYMENT_OVERDUE_AFTER)

        created = []
        for order in orders:
            if order.status in REFUND_STATUSES:
                created.append(self._create_for_order(
                    order,
                    title="Process refund",
                    description=f"Order {order.order_number} is {order.status.value.lower()}. Handle the refund.",
                    task_type=TaskType.REFUND_PROCESS,
                    priority=TaskPriority.HIGH,
                    due_at=now + PAYMENT_TASK_DUE_IN,
                ))
            else:
                created.append(self._create_for_order(
                    order,
                    title="Payment reminder",
                    description=f"Order {order.order_number} has been awaiting payment for over 7 days.",
                    task_type=TaskType.PAYMENT_REMINDER,
                    priority=TaskPriority.HIGH,
                    due_at=now + PAYMENT_TASK_DUE_IN,
                ))

        logger.info(f"Created {len(created)} payment/refund task(s)")
        return created

    def run_rules(self, now: datetime | None = None) -> dict[str, int]:
        """
        Run every task-creating rule once.

        A failing rule is logged and the remaining rules still run. Returns the
        number of tasks each successful rule created.
        """
        now = now or now_utc()
        created = {}
        for rule in (
            self.create_new_customer_follow_ups,
            self.create_post_purchase_care_tasks,
            self.create_repurchase_tasks,
            self.create_payment_reminders,
        ):
            try:
                created[rule.__name__] = len(rule(now))
            except Exception:
                logger.exception(f"Automation rule {rule.__name__} failed")
        return created

    def _create_for_order(
        self,
        order: Order,
        title: str,
        description: str,
        task_type: TaskType,
        priority: TaskPriority,
        due_at: datetime,
    ) -> Task:
        customer = self.datastore.customers.get(order.customer_phone)
        if customer is not None:
            title = f"{title} - {customer.name}"
        return self.tasks.create(
            TaskCreate(
                customer_phone=order.customer_phone,
                order_id=order.id,
                title=title[:255],
                description=description,
                type=task_type,
                priority=priority,
                due_at=due_at,
            )
        )


class TaskAutomationScheduler:
    """
    Runs TaskAutomation on fixed intervals in a background thread.
    """

    def __init__(self, automation: TaskAutomation, config: AppConfig):
        self.automation = automation
        self.config = config
        self.scheduler = BackgroundScheduler(timezone="UTC")
        self.is_running = False

    def start(self) -> None:
        """Register the jobs and start the scheduler."""
        if self.is_running:
            return

        self.scheduler.add_job(
            func=self._run,
            trigger=IntervalTrigger(minutes=self.config.overdue_sweep_minutes),
            args=[self.automation.mark_overdue_tasks],
            id="mark_overdue_tasks",
            name="Mark overdue tasks",
            replace_existing=True,
            max_instances=1,
        )
        self.scheduler.add_job(
            func=self._run,
            trigger=IntervalTrigger(minutes=self.config.automation_rules_minutes),
            args=[self.automation.run_rules],
            id="automation_rules",
            name="Task automation rules",
            replace_existing=True,
            max_instances=1,
        )

        self.scheduler.start()
        self.is_running = True
        logger.info("Task automation scheduler started")

    def shutdown(self) -> None:
        """Stop the scheduler without waiting for running jobs."""
        if self.is_running:
            self.scheduler.shutdown(wait=False)
            self.is_running = False
            logger.info("Task automation scheduler stopped")

    @staticmethod
    def _run(job) -> None:
        # Next interval retries
        try:
            job()
        except Exception:
            logger.exception(f"Automation job {job.__name__} failed")
