"""
Product service layer for the FastAPI application.

Registration, removal and querying of tracked products. Registration
validates the selector before anything is stored.
"""

from typing import List, Optional

import structlog

from api.models import PriceHistoryResponse, PriceSampleResponse, ProductResponse, ProductSummaryResponse
from extractor.database import PriceStore
from extractor.models import LocatorTestResult
from extractor.value_extractor import ValueExtractor
from scheduler.models import CheckResult
from scheduler.scheduler_service import PriceCheckScheduler

logger = structlog.get_logger(__name__)


class LocatorValidationError(Exception):
    """Raised when a selector does not yield a price on its page."""

    def __init__(self, result: LocatorTestResult):
        self.result = result
        super().__init__(f"Selector test failed: {result.message}")


class DuplicateProductError(Exception):
    """Raised when a product with the same URL is already tracked."""

    def __init__(self, url: str):
        self.url = url
        super().__init__(f"A product with URL '{url}' is already tracked")


class ProductService:
    """Operations the API exposes on tracked products."""

    def __init__(self, store: PriceStore, extractor: ValueExtractor, scheduler: PriceCheckScheduler):
        self.store = store
        self.extractor = extractor
        self.scheduler = scheduler

    async def register_product(self, name: str, url: str, selector: str) -> ProductSummaryResponse:
        """
        Validate a selector, store the product with its first price and schedule it.

        Args:
            name: Display name
            url: Product page URL
            selector: CSS selector for the price element

        Returns:
            The registered product with its initial price

        Raises:
            LocatorValidationError: If no price could be extracted
            DuplicateProductError: If the URL is already tracked
        """
        test = await self.extractor.test_locator(url, selector)
        if not test.success:
            logger.warning("Rejected product registration", url=url, selector=selector, reason=test.message)
            raise LocatorValidationError(test)

        product = await self.store.create_product(name, url, selector)
        if product is None:
            raise DuplicateProductError(url)

        try:
            sample = await self.store.record_price(product.id, test.price)
            self.scheduler.schedule_one(product)
        except Exception as e:
            logger.error("Registration failed, removing product", product_id=product.id, error=str(e))
            await self.store.delete_product(product.id)
            self.scheduler.cancel_one(product.id)
            raise

        logger.info("Registered product", product_id=product.id, name=name, price=sample.price)
        return ProductSummaryResponse(
            **product.dict(),
            latest_price=sample.price,
            latest_check=sample.timestamp
        )

    async def remove_product(self, product_id: int) -> bool:
        """
        Delete a product with its history and cancel its schedule.

        Returns:
            bool: True if the product existed
        """
        deleted = await self.store.delete_product(product_id)
        # Cancel even when the product is already gone so no orphan job survives
        self.scheduler.cancel_one(product_id)
        return deleted

    async def list_products(self) -> List[ProductSummaryResponse]:
        """List every product with its latest price."""
        summaries = []
        for product in await self.store.list_products():
            latest = await self.store.get_latest_price(product.id)
            summaries.append(ProductSummaryResponse(
                **product.dict(),
                latest_price=latest.price if latest else None,
                latest_check=latest.timestamp if latest else None
            ))
        return summaries

    async def get_product(self, product_id: int) -> Optional[ProductResponse]:
        product = await self.store.get_product(product_id)
        return ProductResponse(**product.dict()) if product else None

    async def get_price_history(self, product_id: int) -> PriceHistoryResponse:
        """Price history of a product, most recent first. Empty for unknown products."""
        samples = await self.store.get_price_history(product_id)
        return PriceHistoryResponse(
            product_id=product_id,
            prices=[PriceSampleResponse(**sample.dict()) for sample in samples],
            total=len(samples)
        )

    async def check_product_now(self, product_id: int) -> CheckResult:
        return await self.scheduler.trigger_one_now(product_id)

    async def check_all_now(self) -> List[CheckResult]:
        return await self.scheduler.trigger_all_now()

    async def test_locator(self, url: str, selector: str) -> LocatorTestResult:
        return await self.extractor.test_locator(url, selector)

    async def health_check(self) -> dict:
        """Check database connectivity."""
        try:
            stats = await self.store.get_database_stats()
            return {"status": "healthy", **stats}
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {"status": "unhealthy", "error": str(e)}

    def scheduler_status(self) -> dict:
        return self.scheduler.get_scheduler_status()
