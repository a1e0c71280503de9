"""
Tests for the background challenge refresh poller
"""
import asyncio
from unittest.mock import MagicMock

import pytest

from meta_progression.services.refresh_poller import ChallengeRefreshPoller


@pytest.mark.asyncio
async def test_poll_without_refresh():
    poller = ChallengeRefreshPoller(lambda: False)

    assert await poller.poll_once() is False

    assert poller.get_stats()["polls"] == 1
    assert poller.get_stats()["refreshes"] == 0


@pytest.mark.asyncio
async def test_poll_counts_refreshes():
    refresh = MagicMock(side_effect=[True, False, True])
    poller = ChallengeRefreshPoller(refresh)

    results = [await poller.poll_once() for _ in range(3)]

    assert results == [True, False, True]
    assert poller.get_stats()["polls"] == 3
    assert poller.get_stats()["refreshes"] == 2


@pytest.mark.asyncio
async def test_refresh_error_is_contained():
    def broken():
        raise RuntimeError("store down")

    poller = ChallengeRefreshPoller(broken)

    assert await poller.poll_once() is False
    assert poller.get_stats()["polls"] == 1


@pytest.mark.asyncio
async def test_start_and_stop():
    refresh = MagicMock(return_value=False)
    poller = ChallengeRefreshPoller(refresh, interval=0.01)

    await poller.start()
    await poller.start()  # already running
    assert poller.running
    await asyncio.sleep(0.05)
    await poller.stop()

    assert not poller.running
    assert refresh.call_count >= 1
    assert poller.get_stats()["running"] is False
