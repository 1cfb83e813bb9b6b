"""Shared pytest configuration and fixtures."""

import os

# Cookies must be sent over plain http by the test client
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import fakeredis
import httpx
import pytest
from fastapi.testclient import TestClient

from app import create_app
from dependencies import build_services
from gatekeeper import derive_gatekeeper_proof_hex, derive_room_key_hex, normalize_answer

SALT_HEX = "00112233445566778899aabbccddeeff"
ITERATIONS = 100_000


def proof_for(answer: str, salt_hex: str = SALT_HEX, iterations: int = ITERATIONS) -> str:
    """Client-side proof derivation, as a browser would do it."""
    return derive_gatekeeper_proof_hex(derive_room_key_hex(normalize_answer(answer), salt_hex, iterations))


@pytest.fixture
def redis_server():
    return fakeredis.FakeServer()


@pytest.fixture
def redis_client(redis_server):
    return fakeredis.FakeAsyncRedis(server=redis_server, decode_responses=True)


@pytest.fixture
def services(redis_client):
    return build_services(redis_client)


class Browser:
    """One participant's HTTP client with its own cookie jar and Redis connection."""

    def __init__(self, redis_server):
        self.redis = fakeredis.FakeAsyncRedis(server=redis_server, decode_responses=True)
        self._context = TestClient(create_app(self.redis), follow_redirects=False)
        self.client = self._context.__enter__()

    def run(self, func, *args):
        """Run an async Redis call on this client's event loop."""
        return self.client.portal.call(func, *args)

    def close(self):
        self._context.__exit__(None, None, None)

    @property
    def cookies(self) -> httpx.Cookies:
        return self.client.cookies

    def get(self, url, **kwargs):
        return self.client.get(url, **kwargs)

    def post(self, url, **kwargs):
        return self.client.post(url, **kwargs)

    def delete(self, url, **kwargs):
        return self.client.delete(url, **kwargs)


@pytest.fixture
def browser_factory(redis_server):
    browsers = []

    def make() -> Browser:
        browser = Browser(redis_server)
        browsers.append(browser)
        return browser

    yield make
    for browser in browsers:
        browser.close()


@pytest.fixture
def browser(browser_factory):
    return browser_factory()


@pytest.fixture
def proof():
    return proof_for
