"""Shared fixtures for nodewatch tests."""

import socket

import pytest

from nodewatch.config import AlertThresholds, NodeConfig


@pytest.fixture
def node():
    return NodeConfig(
        name="web-1",
        url="http://127.0.0.1:9876",
        group="production",
        alerts=AlertThresholds(cpu_pct=90.0, mem_pct=85.0),
    )


@pytest.fixture
def listening_port():
    """A loopback port that accepts TCP connections."""
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(64)
    yield server.getsockname()[1]
    server.close()


@pytest.fixture
def closed_port():
    """A loopback port with nothing listening on it."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port
