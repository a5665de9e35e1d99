"""
In-memory stand-ins for Playwright pages and sessions, shared by the tests.
"""

import asyncio
from contextlib import asynccontextmanager
from types import SimpleNamespace

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from product_scraper import ScraperLogger
from scraper_config import ScraperConfig
from scraper_errors import ContextCreationError


class FakeElement:
    """One DOM element as the fake page sees it."""

    def __init__(self, text='', visible=True, attrs=None, error=None, box=None,
                 click_error=None):
        self.text = text
        self.visible = visible
        self.attrs = attrs or {}
        self.error = error
        self.box = box or {'x': 10, 'y': 20, 'width': 100, 'height': 40}
        self.click_error = click_error
        self.clicks = 0


class FakeLocator:
    def __init__(self, page, selector, elements):
        self.page = page
        self.selector = selector
        self.elements = elements

    @property
    def first(self):
        return FakeLocator(self.page, self.selector, self.elements[:1])

    def _element(self):
        if not self.elements:
            raise PlaywrightTimeoutError(f"Timeout waiting for {self.selector}")
        element = self.elements[0]
        if element.error:
            raise element.error
        return element

    async def count(self):
        return len(self.elements)

    async def is_visible(self):
        return bool(self.elements) and self.elements[0].visible

    async def inner_text(self, timeout=None):
        return self._element().text

    async def text_content(self, timeout=None):
        return self._element().text

    async def all_text_contents(self):
        return [e.text for e in self.elements]

    async def get_attribute(self, name, timeout=None):
        return self._element().attrs.get(name)

    async def wait_for(self, state='visible', timeout=None):
        if not await self.is_visible():
            raise PlaywrightTimeoutError(f"Timeout waiting for {self.selector}")

    async def click(self):
        element = self._element()
        if element.click_error:
            raise element.click_error
        element.clicks += 1
        self.page.clicked.append(self.selector)

    async def bounding_box(self):
        return self._element().box


class FakeMouse:
    def __init__(self):
        self.events = []

    async def move(self, x, y):
        self.events.append(('move', x, y))

    async def down(self):
        self.events.append(('down',))

    async def up(self):
        self.events.append(('up',))

    async def wheel(self, dx, dy):
        self.events.append(('wheel', dx, dy))


class FakePage:
    """A page with a fixed set of elements keyed by selector."""

    def __init__(self, elements=None, title='Product', status=200, body_text='',
                 goto_error=None, no_response=False):
        self.elements = dict(elements or {})
        self.elements.setdefault('body', [FakeElement(body_text)])
        self._title = title
        self.status = status
        self.goto_error = goto_error
        self.no_response = no_response
        self.visited = []
        self.clicked = []
        self.mouse = FakeMouse()
        self.frames = [self]

    def locator(self, selector):
        return FakeLocator(self, selector, self.elements.get(selector, []))

    async def goto(self, url, wait_until=None, timeout=None):
        self.visited.append(url)
        if self.goto_error:
            raise self.goto_error
        if self.no_response:
            return None
        return SimpleNamespace(status=self.status)

    async def title(self):
        return self._title

    async def wait_for_selector(self, selector, state='visible', timeout=None):
        """Resolve the list to its first match and check that one, like Playwright.

        Parts are taken in order as document order; a ':visible' suffix
        narrows a part to its visible elements.
        """
        matches = []
        for part in selector.split(', '):
            if part.endswith(':visible'):
                matches.extend(e for e in self.elements.get(part[:-len(':visible')], []) if e.visible)
            else:
                matches.extend(self.elements.get(part, []))
        if matches and matches[0].visible:
            return
        raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")

    async def wait_for_url(self, url, wait_until=None, timeout=None):
        return None

    async def wait_for_load_state(self, state=None, timeout=None):
        return None


class FakeSessionManager:
    """Hands out sessions wrapping fresh FakePages; counts acquire/release."""

    def __init__(self, page_factory=FakePage, fail=False):
        self.page_factory = page_factory
        self.fail = fail
        self.acquired = 0
        self.released = 0

    @asynccontextmanager
    async def session(self):
        if self.fail:
            raise ContextCreationError("Context Creation Failed: browser gone")
        self.acquired += 1
        try:
            yield SimpleNamespace(page=self.page_factory(), user_agent='test-agent')
        finally:
            self.released += 1


class StubProtocol:
    """Protocol stand-in: `outcome(descriptor, attempt)` returns data or an exception."""

    def __init__(self, outcome, delay=0.0):
        self.outcome = outcome
        self.delay = delay
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def run(self, page, descriptor, profile):
        self.calls.append(descriptor)
        attempt = sum(1 for d in self.calls if d == descriptor)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            result = self.outcome(descriptor, attempt)
            if isinstance(result, BaseException):
                raise result
            return result
        finally:
            self.in_flight -= 1


def product_data(descriptor, title='Widget'):
    return {
        'sku': descriptor.sku, 'source': descriptor.retailer, 'title': title,
        'description': 'A widget', 'price': '19.99', 'reviews': '12', 'rating': '4.5',
    }


@pytest.fixture
def config():
    """Default config with every pause set to zero."""
    return ScraperConfig(
        humanize_delay=(0, 0),
        retry_delay=(0, 0),
        captcha_hold=(0, 0),
        soft_block_pause=(0, 0),
        inter_batch_delay=(0, 0),
    )


@pytest.fixture
def logger(tmp_path):
    return ScraperLogger(log_dir=None, error_log_path=str(tmp_path / 'errors.log'))
