"""
Tests for the background task tracker.
"""

import asyncio
import logging

import pytest
from movie_catalog.background import BackgroundTaskTracker


@pytest.mark.asyncio
async def test_submitted_task_runs():
    """Test that submitted coroutines run to completion."""
    tracker = BackgroundTaskTracker()
    results = []

    async def work(value):
        results.append(value)

    tracker.submit(work, "done")
    assert await tracker.drain(timeout=1.0) is True
    assert results == ["done"]
    assert tracker.active == 0


@pytest.mark.asyncio
async def test_task_failure_is_logged_not_raised(caplog):
    """Test that a failing task never propagates to the submitter or to drain."""
    tracker = BackgroundTaskTracker()

    async def explode():
        raise RuntimeError("smtp relay unavailable")

    with caplog.at_level(logging.ERROR, logger="movie_catalog"):
        task = tracker.submit(explode)
        assert await tracker.drain(timeout=1.0) is True

    assert task.exception() is None
    assert "background task failed" in caplog.text
    assert "smtp relay unavailable" in caplog.text


@pytest.mark.asyncio
async def test_drain_times_out_on_slow_tasks():
    """Test that drain reports unfinished tasks once the timeout expires."""
    tracker = BackgroundTaskTracker()
    release = asyncio.Event()

    tracker.submit(release.wait)
    assert await tracker.drain(timeout=0.05) is False
    assert tracker.active == 1

    release.set()
    assert await tracker.drain(timeout=1.0) is True


@pytest.mark.asyncio
async def test_drain_with_nothing_outstanding():
    """Test that drain returns immediately when idle."""
    assert await BackgroundTaskTracker().drain(timeout=0) is True
