"""
Shared fixtures: a store backed by an in-memory fakeredis server, and a
notifier that records what it was asked to deliver.
"""

import fakeredis
import pytest
import redis
from loguru import logger

from peerbook import KVStore, PeerDirectory, TokenService, VerificationService


FIXED_NOW = 1_700_000_000


class RecordingNotifier:
    """PresenceNotifier that keeps every call for inspection."""

    def __init__(self):
        self.sent = []
        self.broadcasts = []

    def notify_session(self, fp, message):
        self.sent.append((fp, message))

    def broadcast_presence(self, user, fp, verified, online):
        self.broadcasts.append((user, fp, verified, online))


@pytest.fixture
def fake_server():
    return fakeredis.FakeServer()


@pytest.fixture
def pool_factory(fake_server):
    def factory(url, max_connections):
        return redis.ConnectionPool(
            connection_class=fakeredis.FakeConnection,
            server=fake_server,
            max_connections=max_connections,
            decode_responses=True,
        )
    return factory


@pytest.fixture
def store(pool_factory):
    kv = KVStore("redis://fake:6379/0", pool_factory=pool_factory)
    kv.connect()
    yield kv
    kv.close()


@pytest.fixture
def directory(store):
    return PeerDirectory(store)


@pytest.fixture
def tokens(store):
    return TokenService(store)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def verification(directory, notifier):
    return VerificationService(directory, notifier, clock=lambda: FIXED_NOW)


@pytest.fixture
def logged_warnings():
    """Messages logged at WARNING or above while the test runs."""
    messages = []
    handler_id = logger.add(lambda m: messages.append(m.record["message"]), level="WARNING")
    yield messages
    logger.remove(handler_id)
