"""
Playwright-hosted card widget.

Renders the processor's card component in a browser page the shopper types
into, and forwards its callbacks to the bridge through an exposed page
function. One browser per widget instance; unmount closes all of it.
"""
import json
import logging
from typing import Any, Optional

from playwright.async_api import async_playwright, Browser, BrowserContext, Page, Playwright

from ..config import Settings, get_settings
from ..models.schema import MethodList, ProcessorConfig
from .widget import TokenizationWidget, WidgetDispatch

logger = logging.getLogger(__name__)

SDK_VERSION = "6.6.0"
DISPATCH_BINDING = "checkoutBridgeDispatch"

_HOST_PAGE = """<!doctype html>
<html>
<head>
  <meta charset="utf-8">
  <link rel="stylesheet" href="{sdk_base}/adyen.css">
  <script src="{sdk_base}/adyen.js"></script>
</head>
<body>
  <div id="component-container"></div>
  <script>
    const send = (name, payload) => window.{binding}(name, JSON.stringify(payload || {{}}));
    (async () => {{
      const config = {config};
      const {{ AdyenCheckout, Card }} = window.AdyenWeb;
      const checkout = await AdyenCheckout({{
        clientKey: config.clientKey,
        environment: config.environment,
        locale: config.locale,
        countryCode: config.countryCode,
        paymentMethodsResponse: config.paymentMethodsResponse,
        showPayButton: false,
      }});
      window.__card = new Card(checkout, {{
        brands: config.brands,
        onSubmit(state) {{ send("submit", {{ data: state.data, isValid: state.isValid }}); }},
        onChange(state) {{ send("change", {{ data: state.data, isValid: state.isValid }}); }},
        onFieldValid(data) {{ send("fieldValid", {{ endDigits: data.endDigits }}); }},
        onError(error) {{ send("error", {{ message: String(error && error.message || error) }}); }},
      }}).mount("#component-container");
      send("ready", {{}});
    }})().catch((error) => send("error", {{ message: String(error) }}));
  </script>
</body>
</html>
"""


def render_host_page(methods: MethodList, processor: ProcessorConfig, settings: Settings) -> str:
    cdn = "test" if processor.environment == "test" else "live"
    config = {
        "clientKey": processor.client_key,
        "environment": processor.environment,
        "locale": settings.widget_locale,
        "countryCode": settings.default_country,
        "paymentMethodsResponse": methods.raw,
        "brands": settings.widget_brands,
    }
    return _HOST_PAGE.format(
        sdk_base=f"https://checkoutshopper-{cdn}.cdn.adyen.com/checkoutshopper/sdk/{SDK_VERSION}",
        binding=DISPATCH_BINDING,
        # </ cannot appear inside an inline script
        config=json.dumps(config).replace("</", "<\\/"),
    )


class PlaywrightCardWidget(TokenizationWidget):
    """Card component in a visible browser window."""

    def __init__(self, settings: Optional[Settings] = None):
        self._settings = settings or get_settings()
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    @property
    def mounted(self) -> bool:
        return self._page is not None

    async def mount(self, methods: MethodList, processor: ProcessorConfig, dispatch: WidgetDispatch) -> None:
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self._settings.headless,
            args=["--disable-dev-shm-usage"],
        )
        self._context = await self._browser.new_context(viewport={"width": 720, "height": 640})
        page = await self._context.new_page()

        def _forward(name: Any, payload: Any) -> None:
            dispatch(str(name), payload)

        await page.expose_function(DISPATCH_BINDING, _forward)
        await page.set_content(
            render_host_page(methods, processor, self._settings),
            wait_until="domcontentloaded",
            timeout=30000,
        )
        self._page = page
        logger.info("Card widget page loaded (headless=%s)", self._settings.headless)

    async def submit(self) -> None:
        if self._page is None:
            raise RuntimeError("Card widget is not mounted")
        # An invalid card never fires onSubmit, so refuse instead of waiting
        submitted = await self._page.evaluate('''
            () => {
                const card = window.__card;
                if (!card) return false;
                if (!card.isValid) {
                    card.showValidation();
                    return false;
                }
                card.submit();
                return true;
            }
        ''')
        if not submitted:
            raise RuntimeError("Card details are incomplete or invalid")

    async def unmount(self) -> None:
        for name in ("_page", "_context", "_browser"):
            resource = getattr(self, name)
            if resource is None:
                continue
            try:
                await resource.close()
            except Exception as e:
                logger.debug("Closing %s failed: %s", name.strip("_"), e)
            setattr(self, name, None)

        if self._playwright:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.debug("Stopping Playwright failed: %s", e)
            self._playwright = None

        logger.info("Card widget closed")
