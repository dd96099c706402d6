"""Page content extraction: URL in, raw job posting text out."""

import logging
from typing import Any, Protocol, runtime_checkable

from patchright.async_api import Error as PlaywrightError

from job_extraction.browser.actions import random_sleep, scroll_until_stable
from job_extraction.core.errors import ExtractionFailed, NavigationFailed
from job_extraction.core.schemas import ExtractedContent

logger = logging.getLogger(__name__)

# Tried together; any match means the posting header has rendered.
TITLE_SELECTORS = "h1, .job-title, .title, [data-testid*='title'], [class*='title']"
TITLE_WAIT_MS = 10000


@runtime_checkable
class ContentSource(Protocol):
    """Anything that can turn a job URL into its raw text."""

    async def extract_text(
        self, url: str, *, timeout_ms: int = 60000, max_retries: int = 3,
    ) -> ExtractedContent: ...


class PageContentExtractor:
    """Reads job posting text from a live browser page.

    The page belongs to a BrowserSession owned by the caller; this class never
    opens or closes it.
    """

    def __init__(
        self,
        page: Any,
        *,
        retry_delay_s: float = 2.0,
        settle_delay_s: float = 5.0,
    ) -> None:
        self._page = page
        self._retry_delay_s = retry_delay_s
        self._settle_delay_s = settle_delay_s

    async def extract_text(
        self, url: str, *, timeout_ms: int = 60000, max_retries: int = 3,
    ) -> ExtractedContent:
        """Navigate to ``url`` and return the page's visible text.

        Raises:
            NavigationFailed: every navigation attempt failed.
            ExtractionFailed: the page loaded but had no text.
        """
        await self._navigate(url, timeout_ms=timeout_ms, max_retries=max_retries)
        await random_sleep(self._settle_delay_s, self._settle_delay_s * 1.2)

        try:
            await self._page.wait_for_selector(TITLE_SELECTORS, timeout=TITLE_WAIT_MS)
        except PlaywrightError as e:
            logger.debug("No title element on %s, proceeding anyway: %s", url, e)

        await scroll_until_stable(self._page)

        raw_text = (await self._page.inner_text("body")).strip()
        page_title = (await self._page.title()) or ""
        if not raw_text:
            msg = f"Page at {url} returned no text"
            raise ExtractionFailed(msg)

        logger.info("Extracted %d characters from %s", len(raw_text), url)
        return ExtractedContent(url=url, raw_text=raw_text, page_title=page_title.strip())

    async def _navigate(self, url: str, *, timeout_ms: int, max_retries: int) -> None:
        for attempt in range(1, max_retries + 1):
            try:
                await self._page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
                logger.debug("Navigation to %s succeeded on attempt %d", url, attempt)
                return
            except PlaywrightError as e:
                logger.warning(
                    "Navigation attempt %d/%d to %s failed: %s", attempt, max_retries, url, e,
                )
                if attempt >= max_retries:
                    msg = f"Failed to navigate to {url} after {max_retries} attempts: {e}"
                    raise NavigationFailed(msg) from e
                await random_sleep(self._retry_delay_s, self._retry_delay_s * 1.5)
