"""
Price extraction from product pages.

A lightweight HTTP fetch is tried first. Sites that answer 403 get exactly one
second attempt through a headless browser.
"""

from typing import Optional

import httpx
import structlog
from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError
from soupsieve import SelectorSyntaxError

from .browser_renderer import BrowserRenderer
from .models import ExtractionOutcome, ExtractionStrategy, FailureKind, LocatorTestResult
from .normalizer import PriceParseError, parse_price
from utilities.config import config
from utilities.logger import CheckLogger

logger = structlog.get_logger(__name__)

FETCH_TIMEOUT_SECONDS = 10.0
MAX_REDIRECTS = 5


class ValueExtractor:
    """
    Extracts one price from a page given its URL and a CSS selector.
    """

    def __init__(
        self,
        renderer: Optional[BrowserRenderer] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize the extractor.

        Args:
            renderer: Browser fallback used for pages that deny plain HTTP access
            transport: Optional httpx transport (used by tests)
        """
        self.renderer = renderer or BrowserRenderer()
        self.check_logger = CheckLogger("value_extractor")

        # HTTP client configuration
        self.client_config = {
            "timeout": FETCH_TIMEOUT_SECONDS,
            "headers": config.get_headers(),
            "follow_redirects": True,
            "max_redirects": MAX_REDIRECTS,
        }
        if transport is not None:
            self.client_config["transport"] = transport

    async def extract(self, url: str, selector: str) -> ExtractionOutcome:
        """
        Extract a price from ``url`` using ``selector``.

        Args:
            url: Product page URL
            selector: CSS selector for the price element

        Returns:
            ExtractionOutcome with either a price or a typed failure
        """
        outcome = await self._fetch(url, selector)

        if outcome.should_escalate:
            self.check_logger.log_escalation(url, outcome.status_code)
            outcome = await self._render(url, selector)

        return outcome

    async def test_locator(self, url: str, selector: str) -> LocatorTestResult:
        """
        Check that ``selector`` yields a price on ``url``. Never raises.

        Args:
            url: Product page URL
            selector: CSS selector for the price element

        Returns:
            LocatorTestResult describing the attempt
        """
        try:
            outcome = await self.extract(url, selector)
        except Exception as e:
            logger.error("Locator test failed unexpectedly", url=url, selector=selector, error=str(e))
            return LocatorTestResult(
                success=False,
                message=f"Failed to extract price: {e}"
            )

        if outcome.success:
            return LocatorTestResult(
                success=True,
                price=outcome.price,
                message=f"Successfully extracted price: {outcome.price}"
            )

        return LocatorTestResult(
            success=False,
            failure=outcome.failure,
            message=f"Failed to extract price: {outcome.message}"
        )

    async def _fetch(self, url: str, selector: str) -> ExtractionOutcome:
        """Fetch the page over HTTP and parse the price from its markup."""
        strategy = ExtractionStrategy.FETCH

        try:
            async with httpx.AsyncClient(**self.client_config) as client:
                response = await client.get(url)
        except httpx.TooManyRedirects:
            return ExtractionOutcome.failed(
                FailureKind.UNREACHABLE,
                f"Too many redirects (more than {MAX_REDIRECTS})",
                strategy
            )
        except httpx.TimeoutException:
            return ExtractionOutcome.failed(
                FailureKind.UNREACHABLE,
                f"No response received within {FETCH_TIMEOUT_SECONDS:g}s. The site might be down or blocking requests.",
                strategy
            )
        except (httpx.RequestError, httpx.InvalidURL) as e:
            return ExtractionOutcome.failed(
                FailureKind.UNREACHABLE,
                f"No response received from website: {e}",
                strategy
            )

        status_code = response.status_code
        if status_code == 403:
            return ExtractionOutcome.failed(
                FailureKind.ACCESS_DENIED,
                "Website is blocking access (403 Forbidden)",
                strategy,
                status_code=status_code
            )
        if status_code == 404:
            return ExtractionOutcome.failed(
                FailureKind.NOT_FOUND,
                "Product page not found (404). The URL might be incorrect or the product was removed.",
                strategy,
                status_code=status_code
            )
        if not response.is_success:
            return ExtractionOutcome.failed(
                FailureKind.SERVER_ERROR,
                f"Server responded with status code {status_code}",
                strategy,
                status_code=status_code
            )

        try:
            text = self._extract_text(BeautifulSoup(response.text, 'html.parser'), selector)
        except SelectorSyntaxError as e:
            return ExtractionOutcome.failed(
                FailureKind.PARSE_FAILURE,
                f"Invalid selector '{selector}': {e}",
                strategy,
                status_code=status_code
            )

        return self._outcome_from_text(text, strategy, status_code)

    async def _render(self, url: str, selector: str) -> ExtractionOutcome:
        """Run the browser fallback, converting browser errors into an outcome."""
        try:
            return await self.renderer.extract(url, selector)
        except PlaywrightError as e:
            logger.error("Browser rendering crashed", url=url, error=e.message)
            return ExtractionOutcome.failed(
                FailureKind.UNREACHABLE,
                f"Browser rendering failed: {e.message}",
                ExtractionStrategy.RENDER
            )

    def _extract_text(self, soup: BeautifulSoup, selector: str) -> str:
        """Extract text from the first element matching the CSS selector."""
        element = soup.select_one(selector)
        return element.get_text().strip() if element else ""

    def _outcome_from_text(
        self,
        text: str,
        strategy: ExtractionStrategy,
        status_code: Optional[int] = None
    ) -> ExtractionOutcome:
        try:
            price = parse_price(text)
        except PriceParseError as e:
            return ExtractionOutcome.failed(
                FailureKind.PARSE_FAILURE,
                str(e),
                strategy,
                status_code=status_code,
                raw_text=text
            )
        return ExtractionOutcome.succeeded(price, strategy, raw_text=text)
