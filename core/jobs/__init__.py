"""Background jobs."""
from core.jobs.task_automation import TaskAutomation, TaskAutomationScheduler

__all__ = ["TaskAutomation", "TaskAutomationScheduler"]
