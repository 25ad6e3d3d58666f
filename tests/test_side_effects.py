"""
Tests for the best-effort side effect runner.
"""

import logging
import threading

import pytest

from matterdesk.services.side_effects import BestEffortRunner


@pytest.fixture
def runner():
    runner = BestEffortRunner(timeout_seconds=0.2, max_workers=2)
    yield runner
    runner.shutdown()


def test_successful_run(runner):
    calls = []
    assert runner.run("record", calls.append, "x") is True
    assert calls == ["x"]


def test_failure_is_logged_not_raised(runner, caplog):
    caplog.set_level(logging.ERROR)

    def explode():
        raise RuntimeError("boom")

    assert runner.run("explode", explode) is False
    runner.wait_idle(timeout=1)

    failures = [r for r in caplog.records if getattr(r, "event", None) == "side_effect_failed"]
    assert failures and failures[0].side_effect == "explode"


def test_timeout_returns_false(runner, caplog):
    caplog.set_level(logging.WARNING)
    release = threading.Event()

    assert runner.run("slow", release.wait, 2) is False
    release.set()

    assert any(getattr(r, "event", None) == "side_effect_timeout" for r in caplog.records)


def test_submit_does_not_wait(runner):
    release = threading.Event()
    done = []

    def slow():
        release.wait(2)
        done.append(True)

    runner.submit("slow", slow)
    assert done == []
    release.set()
    assert runner.wait_idle(timeout=2)
    assert done == [True]
