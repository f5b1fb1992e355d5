"""
Price check scheduler.

This module provides:
- One recurring cron job per tracked product (APScheduler)
- The extraction cycle: extract a price, record it, log failures
- Immediate checks for one or all products
- Global stop of every scheduled check
"""

import asyncio
from datetime import datetime
from typing import Dict, List, Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MAX_INSTANCES
from asyncio_throttle import Throttler

from extractor.database import PriceStore
from extractor.models import FailureKind, Product
from extractor.value_extractor import ValueExtractor
from scheduler.job_registry import JobRegistry, ScheduleHandle
from scheduler.models import CheckResult, SchedulerConfig
from utilities.logger import CheckLogger

logger = structlog.get_logger(__name__)


class PriceCheckScheduler:
    """Schedules and runs price checks for every tracked product."""

    def __init__(
        self,
        config: SchedulerConfig,
        store: PriceStore,
        registry: Optional[JobRegistry] = None,
        extractor: Optional[ValueExtractor] = None
    ):
        """
        Initialize the scheduler.

        Args:
            config: Scheduler configuration
            store: Product and price storage
            registry: Job registry; one is created around a new AsyncIOScheduler if omitted
            extractor: Value extractor used by every check
        """
        self.config = config
        self.store = store
        self.registry = registry or JobRegistry(AsyncIOScheduler(timezone=config.timezone))
        self.scheduler = self.registry.scheduler
        self.extractor = extractor or ValueExtractor()
        self.throttler = Throttler(rate_limit=config.rate_limit_per_second)
        self.logger = logger.bind(component="price_check_scheduler")

        # One lock per product keeps its extraction cycles from overlapping
        self._product_locks: Dict[int, asyncio.Lock] = {}

        self._setup_scheduler_listeners()

    def _setup_scheduler_listeners(self) -> None:
        """Setup scheduler event listeners."""
        def job_error_listener(event):
            self.logger.error(
                "Job execution failed",
                job_id=event.job_id,
                error=str(event.exception)
            )

        def job_max_instances_listener(event):
            self.logger.warning(
                "Skipped firing, previous check still running",
                job_id=event.job_id
            )

        self.scheduler.add_listener(job_error_listener, EVENT_JOB_ERROR)
        self.scheduler.add_listener(job_max_instances_listener, EVENT_JOB_MAX_INSTANCES)

    async def start(self) -> int:
        """
        Schedule every stored product and start the scheduler loop.

        Returns:
            Number of products scheduled
        """
        count = await self.schedule_all()
        if not self.scheduler.running:
            self.scheduler.start()
        self.logger.info(
            "Price check scheduler started",
            timezone=self.config.timezone,
            cron_expression=self.config.cron_expression,
            products=count
        )
        return count

    def shutdown(self) -> None:
        """Cancel every scheduled check and stop the scheduler loop."""
        self.stop_all()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        self.logger.info("Price check scheduler stopped")

    async def schedule_all(self, cron_expression: Optional[str] = None) -> int:
        """
        Schedule price checks for all products.

        Args:
            cron_expression: Cadence for every product (defaults to config)

        Returns:
            Number of products scheduled
        """
        try:
            products = await self.store.list_products()
        except Exception as e:
            self.logger.error("Error scheduling products", error=str(e))
            raise

        for product in products:
            self.schedule_one(product, cron_expression)

        self.logger.info("Scheduled price checks", products=len(products))
        return len(products)

    def schedule_one(self, product: Product, cron_expression: Optional[str] = None) -> ScheduleHandle:
        """
        Schedule price checks for a single product, replacing any existing schedule.

        Args:
            product: Product to schedule
            cron_expression: Cadence (defaults to config)

        Returns:
            The product's new ScheduleHandle
        """
        expression = cron_expression or self.config.cron_expression
        handle = self.registry.register(
            product.id,
            expression,
            self._scheduled_check,
            name=f"Price check: {product.name}"
        )
        self.logger.info(
            "Scheduled price check",
            product_id=product.id,
            name=product.name,
            cron_expression=expression
        )
        return handle

    def cancel_one(self, product_id: int) -> bool:
        """Cancel the scheduled checks of one product."""
        cancelled = self.registry.cancel(product_id)
        self._discard_lock(product_id)
        if cancelled:
            self.logger.info("Cancelled price check", product_id=product_id)
        return cancelled

    def stop_all(self) -> None:
        """Stop all scheduled jobs."""
        count = self.registry.cancel_all()
        for product_id in list(self._product_locks):
            self._discard_lock(product_id)
        self.logger.info("Stopped all scheduled price checks", cancelled=count)

    async def trigger_all_now(self) -> List[CheckResult]:
        """
        Run an immediate price check for every product.

        Checks run concurrently, throttled to the configured rate. Schedules
        are left untouched.

        Returns:
            One CheckResult per product, in store order
        """
        products = await self.store.list_products()

        async def throttled_check(product: Product) -> CheckResult:
            async with self.throttler:
                return await self.run_check(product, trigger="manual")

        results = await asyncio.gather(*(throttled_check(p) for p in products))

        self.logger.info(
            "Checked all products",
            total=len(results),
            succeeded=sum(1 for r in results if r.success)
        )
        return list(results)

    async def trigger_one_now(self, product_id: int) -> CheckResult:
        """
        Run an immediate price check for a single product.

        Args:
            product_id: Product identifier

        Returns:
            CheckResult; failure is NOT_FOUND if the product does not exist
        """
        try:
            product = await self.store.get_product(product_id)
        except Exception as e:
            self.logger.error("Error checking product", product_id=product_id, error=str(e))
            return CheckResult(product_id=product_id, success=False, error=str(e))

        if product is None:
            return CheckResult(
                product_id=product_id,
                success=False,
                failure=FailureKind.NOT_FOUND,
                error=f"Product with ID {product_id} not found"
            )

        return await self.run_check(product, trigger="manual")

    async def run_check(self, product: Product, trigger: str = "schedule") -> CheckResult:
        """
        Run one extraction cycle. Never raises.

        Waits for any cycle already running for the same product.

        Args:
            product: Product to check
            trigger: What started the cycle (schedule or manual)

        Returns:
            CheckResult for the product
        """
        async with self._lock_for(product.id):
            return await self._run_cycle(product, trigger)

    async def _run_cycle(self, product: Product, trigger: str) -> CheckResult:
        check_logger = CheckLogger("price_check").bind_context(product_id=product.id, name=product.name)
        check_logger.log_check_start(product.url, trigger)

        try:
            outcome = await self.extractor.extract(product.url, product.selector)

            if not outcome.success:
                check_logger.log_check_failure(
                    outcome.failure.value if outcome.failure else None,
                    outcome.message or "Unknown error"
                )
                return CheckResult(
                    product_id=product.id,
                    name=product.name,
                    success=False,
                    failure=outcome.failure,
                    error=outcome.message
                )

            await self.store.record_price(product.id, outcome.price)
            check_logger.log_check_success(outcome.price, outcome.strategy.value)

            return CheckResult(
                product_id=product.id,
                name=product.name,
                success=True,
                price=outcome.price
            )

        except Exception as e:
            check_logger.log_check_failure(None, str(e))
            return CheckResult(
                product_id=product.id,
                name=product.name,
                success=False,
                error=str(e)
            )

    async def _scheduled_check(self, product_id: int) -> Optional[CheckResult]:
        """Job function run by APScheduler on every firing."""
        if self._lock_for(product_id).locked():
            self.logger.warning("Skipped firing, previous check still running", product_id=product_id)
            return None

        try:
            product = await self.store.get_product(product_id)
        except Exception as e:
            self.logger.error("Failed to load product for scheduled check", product_id=product_id, error=str(e))
            return None

        if product is None:
            self.logger.warning("Product no longer exists, cancelling its schedule", product_id=product_id)
            self.cancel_one(product_id)
            return None

        # A manual check may have started while the product was loading.
        # No await between this test and acquiring the lock.
        lock = self._lock_for(product_id)
        if lock.locked():
            self.logger.warning("Skipped firing, previous check still running", product_id=product_id)
            return None

        async with lock:
            return await self._run_cycle(product, "schedule")

    def _lock_for(self, product_id: int) -> asyncio.Lock:
        lock = self._product_locks.get(product_id)
        if lock is None:
            lock = asyncio.Lock()
            self._product_locks[product_id] = lock
        return lock

    def _discard_lock(self, product_id: int) -> None:
        # A held lock stays so a running cycle keeps excluding new ones
        lock = self._product_locks.get(product_id)
        if lock is not None and not lock.locked():
            del self._product_locks[product_id]

    def get_scheduler_status(self) -> Dict:
        """Get current scheduler status."""
        jobs = []
        for job in self.scheduler.get_jobs():
            next_run_time = getattr(job, 'next_run_time', None)
            jobs.append({
                'id': job.id,
                'name': job.name,
                'next_run_time': next_run_time.isoformat() if next_run_time else None,
                'trigger': str(job.trigger)
            })

        return {
            'running': self.scheduler.running,
            'timezone': self.config.timezone,
            'cron_expression': self.config.cron_expression,
            'scheduled_products': self.registry.product_ids(),
            'jobs': jobs,
            'job_count': len(jobs),
            'checked_at': datetime.utcnow().isoformat()
        }
