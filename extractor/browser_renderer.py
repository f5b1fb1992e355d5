"""
Headless browser fallback for pages that block plain HTTP clients.

Each call launches its own Chromium instance through Playwright and always
closes it before returning.
"""

from typing import Optional

import structlog
from playwright.async_api import (
    Error as PlaywrightError,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from .models import ExtractionOutcome, ExtractionStrategy, FailureKind
from .normalizer import PriceParseError, parse_price
from utilities.config import config

logger = structlog.get_logger(__name__)

NAVIGATION_TIMEOUT_MS = 30_000
SELECTOR_TIMEOUT_MS = 5_000


class BrowserRenderer:
    """
    Extracts a price by rendering the page in headless Chromium.
    """

    def __init__(self, user_agent: Optional[str] = None, sandbox: Optional[bool] = None):
        """
        Initialize the renderer.

        Args:
            user_agent: User agent for the browser context
            sandbox: Whether to run Chromium with its sandbox enabled
        """
        self.user_agent = user_agent or config.get_user_agent()
        self.sandbox = config.browser_sandbox if sandbox is None else sandbox

    async def extract(self, url: str, selector: str) -> ExtractionOutcome:
        """
        Render ``url`` and read the price from the first element matching ``selector``.

        Args:
            url: Product page URL
            selector: CSS selector for the price element

        Returns:
            ExtractionOutcome tagged with the render strategy
        """
        logger.info("Using browser rendering", url=url)

        async with async_playwright() as playwright:
            browser = await playwright.chromium.launch(
                headless=True,
                chromium_sandbox=self.sandbox
            )
            try:
                return await self._extract_from_browser(browser, url, selector)
            finally:
                await browser.close()
                logger.debug("Browser closed", url=url)

    async def _extract_from_browser(self, browser, url: str, selector: str) -> ExtractionOutcome:
        context = await browser.new_context(user_agent=self.user_agent)
        page = await context.new_page()

        try:
            await page.goto(url, wait_until="networkidle", timeout=NAVIGATION_TIMEOUT_MS)
        except PlaywrightTimeoutError:
            return self._failed(
                FailureKind.UNREACHABLE,
                f"Page did not finish loading within {NAVIGATION_TIMEOUT_MS // 1000}s"
            )
        except PlaywrightError as e:
            return self._failed(FailureKind.UNREACHABLE, f"Browser navigation failed: {e.message}")

        try:
            # First match in document order, hidden or not, same as the fetch path
            element = await page.wait_for_selector(selector, state="attached", timeout=SELECTOR_TIMEOUT_MS)
        except PlaywrightTimeoutError:
            return self._failed(
                FailureKind.SELECTOR_TIMEOUT,
                f"Selector '{selector}' did not appear within {SELECTOR_TIMEOUT_MS // 1000}s"
            )
        except PlaywrightError as e:
            return self._failed(FailureKind.PARSE_FAILURE, f"Invalid selector '{selector}': {e.message}")

        text = ((await element.text_content()) if element else "") or ""
        text = text.strip()

        try:
            price = parse_price(text)
        except PriceParseError as e:
            return self._failed(FailureKind.PARSE_FAILURE, str(e), raw_text=text)

        return ExtractionOutcome.succeeded(price, ExtractionStrategy.RENDER, raw_text=text)

    def _failed(self, failure: FailureKind, message: str, raw_text: Optional[str] = None) -> ExtractionOutcome:
        logger.warning("Browser rendering failed", failure=failure.value, error=message)
        return ExtractionOutcome.failed(
            failure,
            message,
            ExtractionStrategy.RENDER,
            raw_text=raw_text
        )
