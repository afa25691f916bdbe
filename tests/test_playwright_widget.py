"""Tests for the Playwright-hosted card widget (no real browser)."""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from checkout_payment.config import Settings
from checkout_payment.models.schema import ProcessorConfig
from checkout_payment.tokenization.playwright_widget import (
    DISPATCH_BINDING,
    PlaywrightCardWidget,
    render_host_page,
)

SETTINGS = Settings(headless=True, widget_brands=["visa", "amex"])


def _playwright_mocks():
    page = AsyncMock()
    context = MagicMock()
    context.new_page = AsyncMock(return_value=page)
    context.close = AsyncMock()
    browser = MagicMock()
    browser.new_context = AsyncMock(return_value=context)
    browser.close = AsyncMock()
    playwright = MagicMock()
    playwright.chromium.launch = AsyncMock(return_value=browser)
    playwright.stop = AsyncMock()
    starter = MagicMock()
    starter.start = AsyncMock(return_value=playwright)
    return starter, playwright, browser, page


class TestHostPage:
    def test_embeds_widget_config(self, card_methods):
        html = render_host_page(card_methods, ProcessorConfig(client_key="test_KEY"), SETTINGS)
        assert "checkoutshopper-test.cdn.adyen.com" in html
        assert f"window.{DISPATCH_BINDING}(" in html
        assert '"clientKey": "test_KEY"' in html
        assert '"brands": ["visa", "amex"]' in html
        assert '"paymentMethods"' in html

    def test_live_environment(self, card_methods):
        html = render_host_page(card_methods, ProcessorConfig(client_key="live_KEY", environment="live"), SETTINGS)
        assert "checkoutshopper-live.cdn.adyen.com" in html

    def test_script_close_tag_escaped(self, card_methods):
        methods = card_methods.model_copy(update={"raw": {"paymentMethods": [{"name": "</script><b>"}]}})
        html = render_host_page(methods, ProcessorConfig(), SETTINGS)
        assert "</script><b>" not in html


class TestWidget:
    @pytest.mark.asyncio
    async def test_mount_forwards_page_events(self, card_methods):
        starter, playwright, _, page = _playwright_mocks()
        dispatch = MagicMock()
        widget = PlaywrightCardWidget(SETTINGS)

        with patch("checkout_payment.tokenization.playwright_widget.async_playwright", return_value=starter):
            await widget.mount(card_methods, ProcessorConfig(client_key="test_KEY"), dispatch)

        playwright.chromium.launch.assert_awaited_once()
        assert playwright.chromium.launch.call_args.kwargs["headless"] is True
        name, forward = page.expose_function.call_args.args
        assert name == DISPATCH_BINDING
        page.set_content.assert_awaited_once()

        forward("fieldValid", '{"endDigits": "1111"}')
        dispatch.assert_called_once_with("fieldValid", '{"endDigits": "1111"}')
        assert widget.mounted

    @pytest.mark.asyncio
    async def test_submit_refuses_invalid_card(self, card_methods):
        starter, _, _, page = _playwright_mocks()
        page.evaluate = AsyncMock(return_value=False)
        widget = PlaywrightCardWidget(SETTINGS)
        with patch("checkout_payment.tokenization.playwright_widget.async_playwright", return_value=starter):
            await widget.mount(card_methods, ProcessorConfig(), MagicMock())

        with pytest.raises(RuntimeError, match="incomplete or invalid"):
            await widget.submit()

    @pytest.mark.asyncio
    async def test_submit_before_mount(self):
        with pytest.raises(RuntimeError, match="not mounted"):
            await PlaywrightCardWidget(SETTINGS).submit()

    @pytest.mark.asyncio
    async def test_unmount_closes_everything(self, card_methods):
        starter, playwright, browser, page = _playwright_mocks()
        widget = PlaywrightCardWidget(SETTINGS)
        with patch("checkout_payment.tokenization.playwright_widget.async_playwright", return_value=starter):
            await widget.mount(card_methods, ProcessorConfig(), MagicMock())

        await widget.unmount()
        page.close.assert_awaited_once()
        browser.close.assert_awaited_once()
        playwright.stop.assert_awaited_once()
        assert not widget.mounted
