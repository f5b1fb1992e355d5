"""
Registry of recurring price check jobs.

Holds at most one schedule handle per product. Registering a product again
cancels its previous job before the new one is added.
"""

import threading
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

logger = structlog.get_logger(__name__)


def job_id_for(product_id: int) -> str:
    return f"price_check_{product_id}"


class ScheduleHandle:
    """Cancellable reference to one product's recurring job."""

    def __init__(self, product_id: int, cron_expression: str, scheduler: AsyncIOScheduler, job_id: str):
        self.product_id = product_id
        self.cron_expression = cron_expression
        self.job_id = job_id
        self._scheduler = scheduler
        self.cancelled = False

    def cancel(self) -> None:
        """Remove the job from the scheduler. Safe to call more than once."""
        if self.cancelled:
            return
        try:
            self._scheduler.remove_job(self.job_id)
        except JobLookupError:
            logger.debug("Job already removed", job_id=self.job_id)
        self.cancelled = True

    def __repr__(self) -> str:
        return (
            f"ScheduleHandle(product_id={self.product_id}, "
            f"cron_expression={self.cron_expression!r}, cancelled={self.cancelled})"
        )


class JobRegistry:
    """
    Maps product ids to their single active ScheduleHandle.

    All reads and writes of the map happen under one lock, so no caller ever
    sees two handles for a product or a handle whose job was already removed.
    """

    def __init__(self, scheduler: AsyncIOScheduler):
        """
        Initialize the registry.

        Args:
            scheduler: APScheduler instance that runs the jobs
        """
        self.scheduler = scheduler
        self._handles: Dict[int, ScheduleHandle] = {}
        self._lock = threading.RLock()

    def register(
        self,
        product_id: int,
        cron_expression: str,
        func: Callable[..., Awaitable[Any]],
        name: Optional[str] = None
    ) -> ScheduleHandle:
        """
        Schedule ``func(product_id)`` on ``cron_expression``, replacing any existing job.

        Args:
            product_id: Product identifier
            cron_expression: Crontab expression (5 fields)
            func: Coroutine function run on every firing
            name: Human-readable job name

        Returns:
            The new ScheduleHandle

        Raises:
            ValueError: If the cron expression is invalid
        """
        # Validate before touching the existing handle
        trigger = CronTrigger.from_crontab(cron_expression, timezone=self.scheduler.timezone)
        job_id = job_id_for(product_id)

        with self._lock:
            previous = self._handles.pop(product_id, None)
            if previous is not None:
                previous.cancel()
                logger.debug("Replaced existing schedule", product_id=product_id)

            self.scheduler.add_job(
                func=func,
                trigger=trigger,
                args=[product_id],
                id=job_id,
                name=name or f"Price check {product_id}",
                max_instances=1,
                coalesce=True,
                replace_existing=True
            )
            handle = ScheduleHandle(product_id, cron_expression, self.scheduler, job_id)
            self._handles[product_id] = handle

        return handle

    def cancel(self, product_id: int) -> bool:
        """
        Cancel and discard the handle for a product.

        Returns:
            bool: True if a handle existed
        """
        with self._lock:
            handle = self._handles.pop(product_id, None)
            if handle is None:
                return False
            handle.cancel()
            return True

    def cancel_all(self) -> int:
        """Cancel every handle and clear the registry. Returns how many were cancelled."""
        with self._lock:
            handles = list(self._handles.values())
            self._handles.clear()
            for handle in handles:
                handle.cancel()
            return len(handles)

    def get(self, product_id: int) -> Optional[ScheduleHandle]:
        with self._lock:
            return self._handles.get(product_id)

    def product_ids(self) -> List[int]:
        with self._lock:
            return sorted(self._handles)

    def __contains__(self, product_id: int) -> bool:
        with self._lock:
            return product_id in self._handles

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)
