"""Tests for browser actions: random_sleep and scroll_until_stable."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from job_extraction.browser.actions import (
    SCROLL_DELAY_FLOOR,
    random_sleep,
    scroll_until_stable,
)

# ---------------------------------------------------------------------------
# TestRandomSleep
# ---------------------------------------------------------------------------


class TestRandomSleep:
    """random_sleep: floor enforcement, range, actual sleeping."""

    async def test_returns_duration_in_range(self) -> None:
        with patch.object(asyncio, "sleep", new_callable=AsyncMock):
            duration = await random_sleep(0.0, 0.01)
        assert 0.0 <= duration <= 0.01

    async def test_floor_enforcement(self) -> None:
        with patch.object(asyncio, "sleep", new_callable=AsyncMock):
            for _ in range(20):
                assert await random_sleep(1.0, 2.0) >= 1.0

    async def test_max_below_min_is_clamped(self) -> None:
        with patch.object(asyncio, "sleep", new_callable=AsyncMock):
            duration = await random_sleep(5.0, 2.0)
        assert duration == 5.0

    async def test_actually_calls_asyncio_sleep(self) -> None:
        with patch.object(asyncio, "sleep", new_callable=AsyncMock) as mock_sleep:
            await random_sleep(0.1, 0.2)
        mock_sleep.assert_called_once()
        assert 0.1 <= mock_sleep.call_args[0][0] <= 0.2

    async def test_negative_min_clamped_to_zero(self) -> None:
        with patch.object(asyncio, "sleep", new_callable=AsyncMock):
            duration = await random_sleep(-1.0, 0.5)
        assert duration >= 0.0


# ---------------------------------------------------------------------------
# TestScrollUntilStable
# ---------------------------------------------------------------------------


def _make_page_mock(text_lengths: list[int]) -> AsyncMock:
    """Mock page whose text-length read returns the given lengths in turn.

    Scroll evaluate calls return None.
    """
    page = AsyncMock()
    reads = 0

    async def _evaluate(script: str) -> int | None:
        nonlocal reads
        if "innerText" not in script:
            return None
        length = text_lengths[min(reads, len(text_lengths) - 1)] if text_lengths else 0
        reads += 1
        return length

    page.evaluate = AsyncMock(side_effect=_evaluate)
    return page


def _length_reads(page: AsyncMock) -> int:
    return sum(1 for c in page.evaluate.call_args_list if "innerText" in c[0][0])


class TestScrollUntilStable:
    """scroll_until_stable: termination, text growth, max attempts."""

    @pytest.fixture(autouse=True)
    def _patch_sleep(self) -> "pytest.Generator[None]":  # type: ignore[type-arg]
        with patch.object(asyncio, "sleep", new_callable=AsyncMock):
            yield

    async def test_stable_after_initial_length(self) -> None:
        page = _make_page_mock([1200, 1200])
        assert await scroll_until_stable(page, max_attempts=5) == 1200
        assert _length_reads(page) == 2

    async def test_text_grows_then_stabilizes(self) -> None:
        page = _make_page_mock([800, 2400, 2400])
        assert await scroll_until_stable(page, max_attempts=5) == 2400
        assert _length_reads(page) == 3

    async def test_empty_page_stops(self) -> None:
        page = _make_page_mock([0, 0])
        assert await scroll_until_stable(page, max_attempts=5) == 0

    async def test_max_attempts_respected(self) -> None:
        page = _make_page_mock([100, 200, 300, 400, 500])
        assert await scroll_until_stable(page, max_attempts=3) == 300
        assert _length_reads(page) == 3

    async def test_none_length_treated_as_zero(self) -> None:
        page = AsyncMock()
        page.evaluate = AsyncMock(return_value=None)
        assert await scroll_until_stable(page, max_attempts=3) == 0

    async def test_scroll_delay_floor_enforced(self) -> None:
        page = _make_page_mock([10, 20, 20])

        with patch("job_extraction.browser.actions.random_sleep", new_callable=AsyncMock) as mock_rs:
            mock_rs.return_value = SCROLL_DELAY_FLOOR
            await scroll_until_stable(page, max_attempts=5, scroll_delay_min=0.1, scroll_delay_max=0.2)

        assert mock_rs.call_args_list
        for call in mock_rs.call_args_list:
            assert call[0][0] >= SCROLL_DELAY_FLOOR
