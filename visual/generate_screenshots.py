"""
Screenshot Generator Module
Captures screenshots of live pages using Playwright.
"""

import logging
from pathlib import Path
from typing import Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright

from core.config import ScreenshotSettings
from core.errors import RenderError
from utils.file_utils import ensure_directory
from utils.retry import call_with_retry

logger = logging.getLogger(__name__)


class ScreenshotGenerator:
    def __init__(self, settings: Optional[ScreenshotSettings] = None):
        self.settings = settings or ScreenshotSettings()

    def _capture_once(self, url: str, output_path: Path) -> Path:
        settings = self.settings
        try:
            with sync_playwright() as p:
                browser = p.chromium.launch(headless=True)
                try:
                    page = browser.new_page(viewport={
                        'width': settings.viewport_width,
                        'height': settings.viewport_height,
                    })
                    logger.info("Navigating to %s", url)
                    response = page.goto(url, wait_until='domcontentloaded',
                                         timeout=settings.navigation_timeout_ms)
                    if response is None or not response.ok:
                        status = response.status if response is not None else 'no response'
                        raise RenderError(f"Failed to load page: {status}", url=url)
                    if settings.wait_ms > 0:
                        page.wait_for_timeout(settings.wait_ms)
                    page.screenshot(path=str(output_path), full_page=settings.full_page, type='png')
                finally:
                    browser.close()
        except PlaywrightError as e:
            raise RenderError(f"Failed to take screenshot of {url}: {e}", url=url) from e

        if not output_path.exists() or output_path.stat().st_size == 0:
            raise RenderError("Screenshot file is empty", url=url)
        logger.info("Screenshot saved to %s (%d bytes)", output_path, output_path.stat().st_size)
        return output_path

    def capture_screenshot(self, url: str, output_path: Path) -> Path:
        """Render `url` and save a PNG screenshot, retrying per the configured policy."""
        if not url or not url.startswith(('http://', 'https://')):
            raise RenderError(f"Invalid page URL: {url!r}", url=url)
        output_path = Path(output_path)
        ensure_directory(output_path.parent)
        return call_with_retry(
            lambda: self._capture_once(url, output_path),
            self.settings.retry,
            retry_on=(RenderError,),
            description=f"Screenshot of {url}",
        )
