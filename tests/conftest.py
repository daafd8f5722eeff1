"""
Shared pytest fixtures for the ramp load tester.

Unit tests never touch the network: workers get a ``FakeSession`` whose
responses are scripted, and the orchestrator gets a fake clock and a fake
thread class so a five minute ramp runs instantly.
"""

from __future__ import annotations

import threading

import pytest
import requests

from rampload.config import LoadConfig
from rampload.metrics import MetricsRegistry
from tests.fakes import FakeClock, FakeThread


@pytest.fixture
def registry():
    return MetricsRegistry()


@pytest.fixture
def stop_event():
    return threading.Event()


@pytest.fixture
def config():
    return LoadConfig(target_url="http://target.test/search?text=gisors")


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def fake_thread():
    FakeThread.started = []
    yield FakeThread
    FakeThread.started = []


@pytest.fixture
def timeout_error():
    return requests.exceptions.ReadTimeout("read timed out")
