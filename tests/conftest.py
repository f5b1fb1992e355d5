"""
Pytest configuration and shared fixtures.
"""

import itertools
from datetime import datetime, timedelta
from typing import Dict, List, Optional
from unittest.mock import AsyncMock

import httpx
import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from extractor.browser_renderer import BrowserRenderer
from extractor.database import PriceStore
from extractor.models import PriceSample, Product
from extractor.value_extractor import ValueExtractor
from scheduler.job_registry import JobRegistry
from scheduler.models import SchedulerConfig
from scheduler.scheduler_service import PriceCheckScheduler


class InMemoryPriceStore:
    """Dict-backed store with the PriceStore interface, for cycle tests."""

    def __init__(self):
        self.products: Dict[int, Product] = {}
        self.samples: List[PriceSample] = []
        self._product_ids = itertools.count(1)
        self._sample_ids = itertools.count(1)
        # Strictly increasing timestamps keep ordering deterministic
        self._clock = datetime(2024, 1, 1)

    def _now(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    async def create_product(self, name: str, url: str, selector: str) -> Optional[Product]:
        if any(p.url == url for p in self.products.values()):
            return None
        product = Product(id=next(self._product_ids), name=name, url=url, selector=selector, created_at=self._now())
        self.products[product.id] = product
        return product

    async def list_products(self) -> List[Product]:
        return [self.products[key] for key in sorted(self.products)]

    async def get_product(self, product_id: int) -> Optional[Product]:
        return self.products.get(product_id)

    async def record_price(self, product_id: int, price: float) -> PriceSample:
        sample = PriceSample(id=next(self._sample_ids), product_id=product_id, price=price, timestamp=self._now())
        self.samples.append(sample)
        return sample

    async def get_price_history(self, product_id: int) -> List[PriceSample]:
        history = [s for s in self.samples if s.product_id == product_id]
        return sorted(history, key=lambda s: (s.timestamp, s.id), reverse=True)

    async def get_latest_price(self, product_id: int) -> Optional[PriceSample]:
        history = await self.get_price_history(product_id)
        return history[0] if history else None

    async def delete_product(self, product_id: int) -> bool:
        self.samples = [s for s in self.samples if s.product_id != product_id]
        return self.products.pop(product_id, None) is not None

    async def get_database_stats(self) -> dict:
        return {"total_products": len(self.products), "total_samples": len(self.samples)}


class FakeSite:
    """Serves configurable pages through an httpx MockTransport."""

    def __init__(self):
        self.pages: Dict[str, tuple] = {}
        self.requests: List[httpx.Request] = []

    def set_page(self, url: str, html: str, status_code: int = 200) -> None:
        self.pages[url] = (status_code, html)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status_code, html = self.pages.get(str(request.url), (404, "<html><body>Not found</body></html>"))
        return httpx.Response(status_code, text=html)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def price_page(text: str, selector_id: str = "price") -> str:
    return f"""
    <html>
        <head><title>Widget</title></head>
        <body>
            <h1>Widget</h1>
            <span id="{selector_id}">{text}</span>
        </body>
    </html>
    """


@pytest.fixture
def make_price_page():
    """Builds a product page with one price element."""
    return price_page


@pytest.fixture
def memory_store():
    """In-memory store implementing the PriceStore interface."""
    return InMemoryPriceStore()


@pytest.fixture
def mock_store():
    """Mock PriceStore for testing."""
    store = AsyncMock(spec=PriceStore)
    store.list_products.return_value = []
    store.get_product.return_value = None
    return store


@pytest.fixture
def fake_site():
    return FakeSite()


@pytest.fixture
def mock_renderer():
    """Mock browser renderer; fails the test if escalation is not expected."""
    return AsyncMock(spec=BrowserRenderer)


@pytest.fixture
def extractor(fake_site, mock_renderer):
    """Value extractor wired to the fake site and a mock renderer."""
    return ValueExtractor(renderer=mock_renderer, transport=fake_site.transport)


@pytest.fixture
def scheduler_config():
    """Create scheduler configuration for testing."""
    return SchedulerConfig(
        cron_expression="0 0 * * *",
        timezone="UTC",
        rate_limit_per_second=50
    )


@pytest.fixture
def job_registry(scheduler_config):
    """Job registry around a scheduler that is never started."""
    return JobRegistry(AsyncIOScheduler(timezone=scheduler_config.timezone))


@pytest.fixture
def price_scheduler(scheduler_config, memory_store, job_registry, extractor):
    """Price check scheduler over the in-memory store and fake site."""
    return PriceCheckScheduler(scheduler_config, memory_store, registry=job_registry, extractor=extractor)


@pytest.fixture
def sample_product():
    """Create a sample product for testing."""
    return Product(
        id=1,
        name="Widget",
        url="http://x/widget",
        selector="#price",
        created_at=datetime(2024, 1, 15, 10, 30)
    )
