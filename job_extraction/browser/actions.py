"""Reusable browser actions: jittered sleep and scroll-until-stable.

Job pages often lazy-load the description below the fold, so the extractor
scrolls until the visible text length stops growing before reading it.
"""

import asyncio
import logging
import random
from typing import Any

logger = logging.getLogger(__name__)

MAX_SCROLL_ATTEMPTS = 5

# Floor value - code enforces it regardless of caller args.
SCROLL_DELAY_FLOOR = 0.5

_TEXT_LENGTH_JS = "document.body ? document.body.innerText.length : 0"


async def random_sleep(min_s: float, max_s: float) -> float:
    """Sleep for a random duration between min_s and max_s seconds.

    Floor enforcement: min_s is always respected as the absolute minimum.
    If max_s < min_s, max_s is raised to min_s.

    Returns the actual sleep duration (useful for testing).
    """
    floor = max(min_s, 0.0)
    ceiling = max(max_s, floor)
    duration = random.uniform(floor, ceiling)
    await asyncio.sleep(duration)
    return duration


async def scroll_until_stable(
    page: Any,
    *,
    max_attempts: int = MAX_SCROLL_ATTEMPTS,
    scroll_delay_min: float = 0.5,
    scroll_delay_max: float = 1.5,
) -> int:
    """Scroll to the bottom repeatedly until the page text stops growing.

    Args:
        page: Browser page object (patchright Page or mock).
        max_attempts: Max scroll iterations before giving up.
        scroll_delay_min: Minimum delay between scrolls (floor: 0.5s).
        scroll_delay_max: Maximum delay between scrolls.

    Returns:
        Final length of the page's visible text.
    """
    scroll_delay_min = max(scroll_delay_min, SCROLL_DELAY_FLOOR)
    scroll_delay_max = max(scroll_delay_max, scroll_delay_min)

    previous_length = 0

    for attempt in range(max_attempts):
        current_length = int(await page.evaluate(_TEXT_LENGTH_JS) or 0)
        logger.debug(
            "Scroll attempt %d/%d: %d chars (prev: %d)",
            attempt + 1, max_attempts, current_length, previous_length,
        )

        if current_length == previous_length and attempt > 0:
            logger.debug("Text length stable at %d - stopping scroll", current_length)
            break

        previous_length = current_length
        await page.evaluate("window.scrollTo(0, document.body.scrollHeight)")
        await random_sleep(scroll_delay_min, scroll_delay_max)

    return previous_length
