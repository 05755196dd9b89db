# render_audit_bridge/backends.py
"""
Render backends.

A backend hands out one exclusively-owned session per call. Sessions are
async context managers: whatever happens inside the `async with` block,
the page and browser are closed on exit.

- PlaywrightBackend: headless Chromium, launched locally or reached over CDP
  when a remote browser endpoint is configured.
- StaticBackend: a plain httpx GET with no JavaScript execution; metadata is
  parsed with BeautifulSoup.

The backend is chosen once at startup (see `backend_from_config`).
"""
from __future__ import annotations

import abc
import logging
from dataclasses import dataclass
from typing import Any

import httpx
from playwright.async_api import Browser, BrowserContext, Page, Playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from render_audit_bridge.config import BridgeConfig, make_transport
from render_audit_bridge.extract import EXTRACT_SCRIPT, extract_from_html
from render_audit_bridge.models import ExtractedMeta, Viewport

log = logging.getLogger(__name__)

DESKTOP_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
MOBILE_UA = (
    "Mozilla/5.0 (Linux; Android 12; Mobile) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Mobile Safari/537.36"
)


@dataclass(frozen=True)
class DeviceProfile:
    viewport: Viewport
    user_agent: str
    width: int
    height: int

    @property
    def is_mobile(self) -> bool:
        return self.viewport == "mobile"


DEVICES: dict[str, DeviceProfile] = {
    "desktop": DeviceProfile("desktop", DESKTOP_UA, 1366, 768),
    "mobile": DeviceProfile("mobile", MOBILE_UA, 390, 844),
}


class RenderFailed(Exception):
    """Navigation or capture failed; carries the best-known final URL."""

    def __init__(self, message: str, final_url: str | None = None):
        super().__init__(message)
        self.final_url = final_url


class RenderSession(abc.ABC):
    """One browsing session. Use as `async with backend.session(device) as s:`."""

    @abc.abstractmethod
    async def __aenter__(self) -> "RenderSession": ...

    @abc.abstractmethod
    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None: ...

    @abc.abstractmethod
    async def navigate(self, url: str, timeout_ms: int) -> bool:
        """Load `url` up to DOM-ready. Returns True if navigation produced a response."""

    @abc.abstractmethod
    async def wait_for_quiet(self, timeout_ms: int) -> None:
        """Best-effort wait for network quiescence. Never raises on timeout."""

    @property
    @abc.abstractmethod
    def current_url(self) -> str: ...

    @abc.abstractmethod
    async def content(self) -> str: ...

    @abc.abstractmethod
    async def extract(self) -> ExtractedMeta: ...


class RenderBackend(abc.ABC):
    name: str = "abstract"

    @abc.abstractmethod
    def session(self, device: DeviceProfile) -> RenderSession: ...


# --- Playwright --------------------------------------------------------------


class PlaywrightSession(RenderSession):
    def __init__(self, device: DeviceProfile, *, headless: bool, ws_endpoint: str | None):
        self.device = device
        self.headless = headless
        self.ws_endpoint = ws_endpoint
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None
        self._url = ""

    async def __aenter__(self) -> "PlaywrightSession":
        log.info("Starting headless browser session (%s)...", self.device.viewport)
        try:
            self._playwright = await async_playwright().start()
            if self.ws_endpoint:
                self._browser = await self._playwright.chromium.connect_over_cdp(
                    self.ws_endpoint
                )
            else:
                self._browser = await self._playwright.chromium.launch(
                    headless=self.headless
                )
            self._context = await self._browser.new_context(
                user_agent=self.device.user_agent,
                viewport={"width": self.device.width, "height": self.device.height},
                is_mobile=self.device.is_mobile,
            )
            self._page = await self._context.new_page()
        except PlaywrightError as e:
            await self._close()
            raise RenderFailed(f"Browser launch failed: {e}") from e
        except BaseException:
            await self._close()
            raise
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self._close()

    async def _close(self) -> None:
        """Tears down page, context, browser and driver, each at most once."""
        for label, closer in (
            ("page", self._page.close if self._page else None),
            ("context", self._context.close if self._context else None),
            ("browser", self._browser.close if self._browser else None),
            ("playwright", self._playwright.stop if self._playwright else None),
        ):
            if closer is None:
                continue
            try:
                await closer()
            except Exception as e:
                log.warning("Error while closing %s: %s", label, e)
        self._page = self._context = self._browser = self._playwright = None
        log.info("Browser session closed.")

    def _require_page(self) -> Page:
        if self._page is None:
            raise RenderFailed("Browser session is not open", self._url or None)
        return self._page

    async def navigate(self, url: str, timeout_ms: int) -> bool:
        page = self._require_page()
        self._url = url
        log.debug("Navigating to %s (timeout=%sms)...", url, timeout_ms)
        try:
            response = await page.goto(
                url, wait_until="domcontentloaded", timeout=timeout_ms
            )
        except PlaywrightError as e:
            raise RenderFailed(str(e), page.url or url) from e
        self._url = page.url or url
        if self._url != url:
            log.info("Navigation redirected: %s -> %s", url, self._url)
        return response is not None

    async def wait_for_quiet(self, timeout_ms: int) -> None:
        page = self._require_page()
        try:
            await page.wait_for_load_state("networkidle", timeout=timeout_ms)
        except PlaywrightError:
            log.debug("Network did not go idle within %sms; continuing.", timeout_ms)
        self._url = page.url or self._url

    @property
    def current_url(self) -> str:
        return self._url

    async def content(self) -> str:
        page = self._require_page()
        try:
            return await page.content()
        except PlaywrightError as e:
            raise RenderFailed(f"Capture failed: {e}", self._url) from e

    async def extract(self) -> ExtractedMeta:
        page = self._require_page()
        try:
            raw: Any = await page.evaluate(EXTRACT_SCRIPT)
        except PlaywrightError as e:
            raise RenderFailed(f"Extraction failed: {e}", self._url) from e
        return ExtractedMeta.from_dict(raw if isinstance(raw, dict) else {})


class PlaywrightBackend(RenderBackend):
    name = "playwright"

    def __init__(self, *, headless: bool = True, ws_endpoint: str | None = None):
        self.headless = headless
        self.ws_endpoint = ws_endpoint

    def session(self, device: DeviceProfile) -> PlaywrightSession:
        return PlaywrightSession(
            device, headless=self.headless, ws_endpoint=self.ws_endpoint
        )


# --- Static (httpx) ------------------------------------------------------------


class StaticSession(RenderSession):
    def __init__(
        self,
        device: DeviceProfile,
        transport: httpx.AsyncBaseTransport | None = None,
        force_ipv4: bool = False,
    ):
        self.device = device
        self._transport = transport
        self._force_ipv4 = force_ipv4
        self._client: httpx.AsyncClient | None = None
        self._url = ""
        self._html = ""

    async def __aenter__(self) -> "StaticSession":
        self._client = httpx.AsyncClient(
            follow_redirects=True,
            headers={"User-Agent": self.device.user_agent},
            transport=self._transport or make_transport(self._force_ipv4),
        )
        log.info("httpx session initialized (%s).", self.device.viewport)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        log.info("httpx session closed.")

    async def navigate(self, url: str, timeout_ms: int) -> bool:
        if self._client is None:
            raise RenderFailed("HTTP session is not open", url)
        self._url = url
        try:
            resp = await self._client.get(url, timeout=timeout_ms / 1000)
        except httpx.HTTPError as e:
            raise RenderFailed(f"Network error fetching {url}: {e}", url) from e
        self._url = str(resp.url)
        if resp.status_code != 200:
            log.warning("Non-200 response for %s: %d", url, resp.status_code)
        self._html = resp.text
        return True

    async def wait_for_quiet(self, timeout_ms: int) -> None:
        return None

    @property
    def current_url(self) -> str:
        return self._url

    async def content(self) -> str:
        return self._html

    async def extract(self) -> ExtractedMeta:
        return extract_from_html(self._html, self._url)


class StaticBackend(RenderBackend):
    name = "static"

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport | None = None,
        force_ipv4: bool = False,
    ):
        self.transport = transport
        self.force_ipv4 = force_ipv4

    def session(self, device: DeviceProfile) -> StaticSession:
        return StaticSession(
            device, transport=self.transport, force_ipv4=self.force_ipv4
        )


def backend_from_config(config: BridgeConfig) -> RenderBackend:
    if config.renderer == "static":
        return StaticBackend(force_ipv4=config.force_ipv4)
    return PlaywrightBackend(
        headless=config.headless, ws_endpoint=config.browser_ws_endpoint
    )
