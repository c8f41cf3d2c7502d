"""
Pytest configuration for nrepl-client integration tests.
"""

import os

import pytest


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )


@pytest.fixture(scope="session")
def nrepl_address():
    """Address of a live nREPL server, from NREPL_TEST_HOST / NREPL_TEST_PORT."""
    port = os.environ.get("NREPL_TEST_PORT")
    if not port:
        pytest.skip(
            "no live nREPL server configured. Start one with: "
            "lein repl :headless :host 127.0.0.1 :port 7888 "
            "and set NREPL_TEST_PORT=7888"
        )
    return os.environ.get("NREPL_TEST_HOST", "127.0.0.1"), int(port)


@pytest.fixture
def live_client(nrepl_address):
    """Client connected to the live server, disconnected after the test."""
    from nrepl_client import NreplClient

    host, port = nrepl_address
    with NreplClient.connect(host, port, read_timeout=10.0, write_timeout=5.0) as client:
        yield client
