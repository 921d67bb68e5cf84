# backend/safe_report/renderer.py
from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from playwright.async_api import Browser, async_playwright

from .charts import attach_charts
from .config import Settings, settings as default_settings
from .errors import RenderFailure
from .log import get_logger
from .merger import GeneratedDocument, merge_pdfs
from .models import ReportPayload
from .report_view import build_report_view

LOG = get_logger("renderer")

PAGE_WIDTH = 1920
PAGE_HEIGHT = 1080

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--allow-file-access-from-files",
]

# Runs inside each template page after navigation
SYNC_SCRIPT = """
(data) => {
  window.reportData = data.report;
  window.reportView = data.view;
  if (typeof window.syncReport !== "function") {
    throw new Error("syncReport() is not defined on this page");
  }
  window.syncReport();
  return document.title;
}
"""


class RenderSurface:
    """
    Process-wide headless Chromium.

    Launched on first use, shared by every request and every page, and
    relaunched on the next acquire() after an unexpected disconnect.
    """

    def __init__(self, executable_path: Optional[str] = None, playwright_factory: Callable = async_playwright):
        self.executable_path = executable_path
        self._factory = playwright_factory
        self._playwright = None
        self._browser: Optional[Browser] = None
        self._lock = asyncio.Lock()
        self._closing = False
        self.launch_count = 0

    @property
    def connected(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    async def acquire(self) -> Browser:
        if self.connected:
            return self._browser
        async with self._lock:
            if self.connected:
                return self._browser
            await self._shutdown()
            started = time.monotonic()
            try:
                self._playwright = await self._factory().start()
                launch_kwargs: Dict[str, Any] = {"headless": True, "args": LAUNCH_ARGS}
                if self.executable_path:
                    launch_kwargs["executable_path"] = self.executable_path
                self._browser = await self._playwright.chromium.launch(**launch_kwargs)
            except Exception as e:
                LOG.error(f"[Render] Browser launch failed: {e}")
                await self._shutdown()
                raise RenderFailure("Could not launch browser.") from e
            self._browser.on("disconnected", self._on_disconnected)
            self.launch_count += 1
            LOG.info(f"[Render] Browser launched in {time.monotonic() - started:.2f}s (launch #{self.launch_count})")
            return self._browser

    def _on_disconnected(self, browser: Browser) -> None:
        if browser is not self._browser or self._closing:
            return
        LOG.warning("[Render] Browser disconnected unexpectedly; it will be relaunched on next use")
        self._browser = None

    async def _shutdown(self) -> None:
        browser, pw = self._browser, self._playwright
        self._browser, self._playwright = None, None
        if browser is not None:
            try:
                await browser.close()
            except Exception as e:
                LOG.warning(f"[Render] Ignoring error while closing browser: {e}")
        if pw is not None:
            try:
                await pw.stop()
            except Exception as e:
                LOG.warning(f"[Render] Ignoring error while stopping playwright: {e}")

    async def close(self) -> None:
        self._closing = True
        try:
            async with self._lock:
                await self._shutdown()
        finally:
            self._closing = False
        LOG.info("[Render] Browser closed")


class ReportRenderer:
    """Fills the three report templates with a payload and prints them to one PDF."""

    def __init__(self, settings: Optional[Settings] = None, surface: Optional[RenderSurface] = None):
        self.settings = settings or default_settings
        self.surface = surface or RenderSurface(self.settings.browser_executable_path)

    @property
    def templates(self) -> List[Path]:
        return self.settings.template_paths

    def _page_data(self, payload: ReportPayload) -> Dict[str, Any]:
        view = attach_charts(build_report_view(payload))
        return {"report": payload.model_dump(by_alias=True, mode="json"), "view": view}

    async def render_pages(self, payload: ReportPayload) -> List[bytes]:
        missing = [p.name for p in self.templates if not p.exists()]
        if missing:
            raise RenderFailure(f"Missing report templates: {', '.join(missing)}")

        data = await asyncio.to_thread(self._page_data, payload)
        browser = await self.surface.acquire()

        if not self.settings.render_concurrent:
            return [await self._render_page(browser, path, data) for path in self.templates]

        tasks = [asyncio.create_task(self._render_page(browser, path, data)) for path in self.templates]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for t in tasks:
                t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _render_page(self, browser: Browser, path: Path, data: Dict[str, Any]) -> bytes:
        started = time.monotonic()
        context = None
        try:
            context = await browser.new_context(viewport={"width": PAGE_WIDTH, "height": PAGE_HEIGHT})
            page = await context.new_page()
            page.set_default_navigation_timeout(self.settings.render_nav_timeout_ms)

            LOG.info(f"[Render] Loading {path.name}...")
            await page.goto(path.resolve().as_uri(), wait_until="load")
            await page.evaluate(SYNC_SCRIPT, data)
            # fixed settle delay for images and layout
            await page.wait_for_timeout(self.settings.render_settle_ms)

            pdf = await page.pdf(
                width=f"{PAGE_WIDTH}px",
                height=f"{PAGE_HEIGHT}px",
                print_background=True,
            )
        except Exception as e:
            LOG.error(f"[Render] {path.name} failed: {e}")
            raise RenderFailure(f"Failed to render {path.name}: {e}") from e
        finally:
            if context is not None:
                try:
                    await context.close()
                except Exception as e:
                    LOG.warning(f"[Render] Ignoring error while closing page for {path.name}: {e}")

        LOG.info(f"[Render] Finished {path.name}: {len(pdf)} bytes in {time.monotonic() - started:.2f}s")
        return pdf

    async def render(self, payload: ReportPayload) -> GeneratedDocument:
        pages = await self.render_pages(payload)
        return merge_pdfs(pages, sections=[p.name for p in self.templates])

    async def close(self) -> None:
        await self.surface.close()
