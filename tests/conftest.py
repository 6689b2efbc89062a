"""Shared fixtures."""

import queue

import pytest

from twsapi import Client, ClientConfig
from twsapi.testing import FakeGateway


@pytest.fixture
def gateway():
    server = FakeGateway().start()
    yield server
    server.stop()


@pytest.fixture
def events() -> queue.Queue:
    return queue.Queue()


@pytest.fixture
def connect(gateway, events):
    """Factory for clients connected to the fake gateway, closed on teardown."""
    clients = []

    def _connect(**overrides) -> Client:
        config = ClientConfig(port=gateway.port, handshake_timeout=2.0, **overrides)
        client = Client(config, on_event=events.put)
        clients.append(client)
        return client

    yield _connect
    for client in clients:
        client.close()

