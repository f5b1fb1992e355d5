"""
Unit tests for the value extractor.
Tests the fetch strategy, escalation to browser rendering and error mapping.
"""

import httpx
import pytest
from playwright.async_api import Error as PlaywrightError

from extractor.models import ExtractionOutcome, ExtractionStrategy, FailureKind
from extractor.value_extractor import MAX_REDIRECTS, ValueExtractor

URL = "http://shop.test/widget"


class TestFetchStrategy:
    """Test cases for the HTTP fetch strategy."""

    @pytest.mark.asyncio
    async def test_extracts_price(self, extractor, fake_site, make_price_page, mock_renderer):
        fake_site.set_page(URL, make_price_page("$1,234.56"))

        outcome = await extractor.extract(URL, "#price")

        assert outcome.success
        assert outcome.price == pytest.approx(1234.56)
        assert outcome.strategy == ExtractionStrategy.FETCH
        assert outcome.raw_text == "$1,234.56"
        mock_renderer.extract.assert_not_called()

    @pytest.mark.asyncio
    async def test_uses_first_matching_element(self, extractor, fake_site):
        fake_site.set_page(URL, """
            <html><body>
                <span class="price">19,99 €</span>
                <span class="price">29,99 €</span>
            </body></html>
        """)

        outcome = await extractor.extract(URL, ".price")

        assert outcome.price == pytest.approx(19.99)

    @pytest.mark.asyncio
    async def test_sends_browser_headers(self, extractor, fake_site, make_price_page):
        fake_site.set_page(URL, make_price_page("$1"))

        await extractor.extract(URL, "#price")

        headers = fake_site.requests[0].headers
        assert headers["user-agent"].startswith("Mozilla/5.0")
        assert "text/html" in headers["accept"]
        assert headers["upgrade-insecure-requests"] == "1"

    @pytest.mark.asyncio
    async def test_missing_element_is_parse_failure(self, extractor, fake_site, make_price_page, mock_renderer):
        fake_site.set_page(URL, make_price_page("$42.00"))

        outcome = await extractor.extract(URL, "#does-not-exist")

        assert not outcome.success
        assert outcome.failure == FailureKind.PARSE_FAILURE
        assert outcome.raw_text == ""
        mock_renderer.extract.assert_not_called()

    @pytest.mark.asyncio
    async def test_non_numeric_text_is_parse_failure(self, extractor, fake_site, make_price_page):
        fake_site.set_page(URL, make_price_page("Out of stock"))

        outcome = await extractor.extract(URL, "#price")

        assert outcome.failure == FailureKind.PARSE_FAILURE
        assert outcome.raw_text == "Out of stock"
        assert "Out of stock" in outcome.message

    @pytest.mark.asyncio
    async def test_invalid_selector_is_parse_failure(self, extractor, fake_site, make_price_page):
        fake_site.set_page(URL, make_price_page("$42.00"))

        outcome = await extractor.extract(URL, "#price[")

        assert outcome.failure == FailureKind.PARSE_FAILURE
        assert "Invalid selector" in outcome.message


class TestEscalation:
    """Test cases for status handling and escalation to browser rendering."""

    @pytest.mark.asyncio
    async def test_403_escalates_exactly_once(self, extractor, fake_site, mock_renderer):
        fake_site.set_page(URL, "Forbidden", status_code=403)
        mock_renderer.extract.return_value = ExtractionOutcome.succeeded(
            42.0, ExtractionStrategy.RENDER, raw_text="$42.00"
        )

        outcome = await extractor.extract(URL, "#price")

        assert outcome.success
        assert outcome.price == 42.0
        assert outcome.strategy == ExtractionStrategy.RENDER
        mock_renderer.extract.assert_awaited_once_with(URL, "#price")
        assert len(fake_site.requests) == 1

    @pytest.mark.asyncio
    async def test_403_with_failing_render_is_not_retried(self, extractor, fake_site, mock_renderer):
        fake_site.set_page(URL, "Forbidden", status_code=403)
        mock_renderer.extract.return_value = ExtractionOutcome.failed(
            FailureKind.SELECTOR_TIMEOUT,
            "Selector '#price' did not appear within 5s",
            ExtractionStrategy.RENDER
        )

        outcome = await extractor.extract(URL, "#price")

        assert outcome.failure == FailureKind.SELECTOR_TIMEOUT
        assert outcome.strategy == ExtractionStrategy.RENDER
        assert mock_renderer.extract.await_count == 1

    @pytest.mark.asyncio
    async def test_render_crash_becomes_unreachable(self, extractor, fake_site, mock_renderer):
        fake_site.set_page(URL, "Forbidden", status_code=403)
        mock_renderer.extract.side_effect = PlaywrightError("Executable doesn't exist")

        outcome = await extractor.extract(URL, "#price")

        assert outcome.failure == FailureKind.UNREACHABLE
        assert outcome.strategy == ExtractionStrategy.RENDER
        assert "Executable doesn't exist" in outcome.message

    @pytest.mark.asyncio
    async def test_404_is_not_found_without_render(self, extractor, fake_site, mock_renderer):
        fake_site.set_page(URL, "Not found", status_code=404)

        outcome = await extractor.extract(URL, "#price")

        assert outcome.failure == FailureKind.NOT_FOUND
        assert outcome.status_code == 404
        mock_renderer.extract.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [401, 429, 500, 502, 503])
    async def test_other_errors_are_server_errors(self, extractor, fake_site, mock_renderer, status_code):
        fake_site.set_page(URL, "Error", status_code=status_code)

        outcome = await extractor.extract(URL, "#price")

        assert outcome.failure == FailureKind.SERVER_ERROR
        assert outcome.status_code == status_code
        assert str(status_code) in outcome.message
        mock_renderer.extract.assert_not_called()

    @pytest.mark.asyncio
    async def test_connection_error_is_unreachable(self, mock_renderer):
        def handler(request):
            raise httpx.ConnectError("Connection refused", request=request)

        extractor = ValueExtractor(renderer=mock_renderer, transport=httpx.MockTransport(handler))

        outcome = await extractor.extract(URL, "#price")

        assert outcome.failure == FailureKind.UNREACHABLE
        assert outcome.status_code is None
        mock_renderer.extract.assert_not_called()

    @pytest.mark.asyncio
    async def test_timeout_is_unreachable(self, mock_renderer):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        extractor = ValueExtractor(renderer=mock_renderer, transport=httpx.MockTransport(handler))

        outcome = await extractor.extract(URL, "#price")

        assert outcome.failure == FailureKind.UNREACHABLE
        assert "10s" in outcome.message

    @pytest.mark.asyncio
    async def test_redirect_loop_is_unreachable(self, mock_renderer):
        def handler(request):
            return httpx.Response(302, headers={"Location": str(request.url)})

        extractor = ValueExtractor(renderer=mock_renderer, transport=httpx.MockTransport(handler))

        outcome = await extractor.extract(URL, "#price")

        assert outcome.failure == FailureKind.UNREACHABLE
        assert str(MAX_REDIRECTS) in outcome.message

    @pytest.mark.asyncio
    async def test_follows_redirects(self, mock_renderer, make_price_page):
        def handler(request):
            if request.url.path == "/old":
                return httpx.Response(301, headers={"Location": "http://shop.test/new"})
            return httpx.Response(200, text=make_price_page("$9.99"))

        extractor = ValueExtractor(renderer=mock_renderer, transport=httpx.MockTransport(handler))

        outcome = await extractor.extract("http://shop.test/old", "#price")

        assert outcome.price == pytest.approx(9.99)


class TestLocatorTest:
    """Test cases for test_locator."""

    @pytest.mark.asyncio
    async def test_success(self, extractor, fake_site, make_price_page):
        fake_site.set_page(URL, make_price_page("$42.00"))

        result = await extractor.test_locator(URL, "#price")

        assert result.success is True
        assert result.price == 42.0
        assert result.message == "Successfully extracted price: 42.0"

    @pytest.mark.asyncio
    async def test_failure_is_described(self, extractor, fake_site):
        fake_site.set_page(URL, "Not found", status_code=404)

        result = await extractor.test_locator(URL, "#price")

        assert result.success is False
        assert result.price is None
        assert result.failure == FailureKind.NOT_FOUND
        assert result.message.startswith("Failed to extract price:")

    @pytest.mark.asyncio
    async def test_never_raises(self, extractor):
        async def broken_extract(url, selector):
            raise RuntimeError("boom")

        extractor.extract = broken_extract

        result = await extractor.test_locator(URL, "#price")

        assert result.success is False
        assert "boom" in result.message
