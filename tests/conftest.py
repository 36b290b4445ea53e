"""Shared test fixtures."""

import time

import pytest


@pytest.fixture
def local_timezone(monkeypatch):
    """Switch the process-local timezone for one test."""

    def use(tz: str) -> None:
        monkeypatch.setenv("TZ", tz)
        time.tzset()

    yield use

    monkeypatch.undo()
    time.tzset()
