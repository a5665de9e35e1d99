#!/usr/bin/env python3
"""
Tests for the session manager: context options, request blocking and
cleanup. A fake browser stands in for Chromium.
"""

from types import SimpleNamespace

import pytest
from playwright.async_api import Error as PlaywrightError

import browser_session
from browser_session import BrowserSessionManager, accept_language
from scraper_errors import ContextCreationError


class FakeContext:
    def __init__(self, page_error=None, close_error=None):
        self.page_error = page_error
        self.close_error = close_error
        self.routes = []
        self.closed = False

    async def route(self, pattern, handler):
        self.routes.append((pattern, handler))

    async def new_page(self):
        if self.page_error:
            raise self.page_error
        return SimpleNamespace(context=self)

    async def close(self):
        self.closed = True
        if self.close_error:
            raise self.close_error


class FakeBrowser:
    def __init__(self, context_error=None, **context_kwargs):
        self.context_error = context_error
        self.context_kwargs = context_kwargs
        self.contexts = []
        self.options = []

    async def new_context(self, **options):
        self.options.append(options)
        if self.context_error:
            raise self.context_error
        context = FakeContext(**self.context_kwargs)
        self.contexts.append(context)
        return context


class FakeRoute:
    def __init__(self, resource_type):
        self.request = SimpleNamespace(resource_type=resource_type)
        self.outcome = None

    async def abort(self):
        self.outcome = 'abort'

    async def continue_(self):
        self.outcome = 'continue'


@pytest.fixture(autouse=True)
def no_stealth(monkeypatch):
    monkeypatch.setattr(browser_session, 'STEALTH_AVAILABLE', False)


def make_manager(config, logger, browser=None):
    manager = BrowserSessionManager(config, logger)
    manager.browser = browser if browser is not None else FakeBrowser()
    return manager


def test_accept_language():
    assert accept_language('en-US') == 'en-US,en;q=0.9'
    assert accept_language('de') == 'de'


async def test_acquire_pins_identity(config, logger):
    browser = FakeBrowser()
    session = await make_manager(config, logger, browser).acquire()

    options = browser.options[0]
    assert session.user_agent in config.user_agents
    assert options['user_agent'] == session.user_agent
    assert options['locale'] == 'en-US'
    assert options['timezone_id'] == 'America/New_York'
    assert options['geolocation'] == {'latitude': 40.7128, 'longitude': -74.0060}
    assert options['permissions'] == ['geolocation']
    assert options['viewport'] == {'width': 1920, 'height': 1080}
    assert options['extra_http_headers']['Accept-Language'] == 'en-US,en;q=0.9'
    assert options['extra_http_headers']['Accept'].startswith('text/html')
    assert session.context is browser.contexts[0]
    assert [pattern for pattern, _ in session.context.routes] == ['**/*']


async def test_each_acquire_gets_a_fresh_context(config, logger):
    manager = make_manager(config, logger)
    first = await manager.acquire()
    second = await manager.acquire()
    assert first.context is not second.context


async def test_acquire_without_browser(config, logger):
    manager = BrowserSessionManager(config, logger)
    with pytest.raises(ContextCreationError, match="Browser not initialized"):
        await manager.acquire()


async def test_context_failure_is_wrapped(config, logger):
    browser = FakeBrowser(context_error=PlaywrightError("Target closed"))
    with pytest.raises(ContextCreationError, match="Context Creation Failed: Target closed") as excinfo:
        await make_manager(config, logger, browser).acquire()
    assert not excinfo.value.retryable


async def test_half_built_context_is_closed(config, logger):
    browser = FakeBrowser(page_error=PlaywrightError("page crashed"))
    with pytest.raises(ContextCreationError, match="Context Creation Failed"):
        await make_manager(config, logger, browser).acquire()
    assert browser.contexts[0].closed


async def test_release_swallows_close_errors(config, logger):
    browser = FakeBrowser(close_error=PlaywrightError("already closed"))
    manager = make_manager(config, logger, browser)
    session = await manager.acquire()

    assert await manager.release(session) is False
    assert session.context.closed


async def test_release_reports_clean_close(config, logger):
    manager = make_manager(config, logger)
    session = await manager.acquire()
    assert await manager.release(session) is True


async def test_scoped_session_released_on_error(config, logger):
    manager = make_manager(config, logger)
    with pytest.raises(RuntimeError):
        async with manager.session() as session:
            raise RuntimeError("attempt blew up")
    assert session.context.closed


@pytest.mark.parametrize("resource_type, outcome", [
    ('image', 'abort'),
    ('font', 'abort'),
    ('stylesheet', 'abort'),
    ('document', 'continue'),
    ('script', 'continue'),
    ('xhr', 'continue'),
])
async def test_heavy_resources_are_blocked(config, logger, resource_type, outcome):
    session = await make_manager(config, logger).acquire()
    _, handler = session.context.routes[0]

    route = FakeRoute(resource_type)
    await handler(route)
    assert route.outcome == outcome


async def test_stylesheets_allowed_when_configured(config, logger):
    config = config.with_overrides(block_stylesheets=False)
    manager = make_manager(config, logger)

    route = FakeRoute('stylesheet')
    await manager._block_heavy_resources(route)
    assert route.outcome == 'continue'
