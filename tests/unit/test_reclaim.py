"""
Unit tests for villager_voice/ops/reclaim.py
"""
import asyncio
from unittest.mock import patch

import pytest

from villager_voice.ops import Reclaimer


def test_run_once_sweeps_stale(store, age_file):
    keep = store.put(b"keep")
    stale = store.put(b"stale")
    age_file(store.path(stale), 7200)
    
    report = Reclaimer(store, max_age_s=3600).run_once()
    
    assert report.removed == [stale]
    assert store.list() == [keep]


def test_run_once_never_raises(store):
    reclaimer = Reclaimer(store)
    
    with patch.object(store, "sweep", side_effect=OSError("disk gone")):
        report = reclaimer.run_once()
    
    assert report.scanned == 0
    assert reclaimer.last_report is report
    assert reclaimer.last_run is not None


def test_maybe_run_rate_limited(store):
    reclaimer = Reclaimer(store, interval_s=300)
    
    assert reclaimer.is_due()
    assert reclaimer.maybe_run() is not None
    assert not reclaimer.is_due()
    assert reclaimer.maybe_run() is None


def test_maybe_run_after_interval(store):
    reclaimer = Reclaimer(store, interval_s=0)
    assert reclaimer.maybe_run() is not None
    assert reclaimer.maybe_run() is not None


@pytest.mark.asyncio
async def test_start_and_stop(store, age_file):
    stale = store.put(b"stale")
    age_file(store.path(stale), 7200)
    reclaimer = Reclaimer(store, max_age_s=3600, interval_s=3600)
    
    await reclaimer.start()
    assert reclaimer.running
    
    for _ in range(100):
        if reclaimer.last_report is not None:
            break
        await asyncio.sleep(0.01)
    
    await reclaimer.stop()
    
    assert not reclaimer.running
    assert not store.exists(stale)


@pytest.mark.asyncio
async def test_stop_without_start(store):
    reclaimer = Reclaimer(store)
    await reclaimer.stop()
    assert not reclaimer.running
