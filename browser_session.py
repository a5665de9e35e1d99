#!/usr/bin/env python3
"""
Isolated Playwright browsing sessions.

One Chromium browser is launched per run and shared read-only; every
scrape attempt gets its own BrowserContext (fresh cookies, its own
user-agent and pinned locale/timezone/geolocation) which is closed as
soon as the attempt ends.
"""

import random
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

from playwright.async_api import async_playwright, Browser, BrowserContext, Page, Route
from playwright.async_api import Error as PlaywrightError

from scraper_config import ScraperConfig
from scraper_errors import ContextCreationError

# Optional stealth mode - gracefully degrade if not available
try:
    from playwright_stealth import stealth_async
    STEALTH_AVAILABLE = True
except ImportError:
    STEALTH_AVAILABLE = False
    stealth_async = None


BLOCKED_RESOURCE_TYPES = frozenset({'image', 'font'})

ACCEPT_HEADER = 'text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8'


def accept_language(locale: str) -> str:
    """Accept-Language header value for a locale ('en-US' -> 'en-US,en;q=0.9')."""
    language = locale.split('-')[0]
    if language == locale:
        return locale
    return f"{locale},{language};q=0.9"


@dataclass
class BrowserSession:
    """A browser context plus the single page used in it."""

    context: BrowserContext
    page: Page
    user_agent: str


class BrowserSessionManager:
    """Launches the shared browser and hands out isolated sessions."""

    def __init__(self, config: ScraperConfig, logger):
        """Initialize the session manager.

        Args:
            config: Scraper configuration
            logger: Logger instance for error reporting
        """
        self.config = config
        self.logger = logger
        self.browser: Optional[Browser] = None
        self.playwright = None
        self.blocked_resource_types = set(BLOCKED_RESOURCE_TYPES)
        if config.block_stylesheets:
            self.blocked_resource_types.add('stylesheet')

    async def __aenter__(self):
        """Start Playwright and browser."""
        width, height = self.config.viewport
        self.playwright = await async_playwright().start()
        self.browser = await self.playwright.chromium.launch(
            headless=self.config.headless,
            args=[
                '--disable-blink-features=AutomationControlled',
                '--no-sandbox',
                '--disable-dev-shm-usage',
                '--disable-webrtc',
                '--disable-infobars',
                f'--window-size={width},{height}'
            ]
        )
        stealth_status = "with stealth mode" if STEALTH_AVAILABLE else "without stealth mode"
        self.logger.debug(f"Browser launched ({stealth_status})")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Close browser and Playwright."""
        if self.browser:
            await self.browser.close()
            self.browser = None
        if self.playwright:
            await self.playwright.stop()
            self.playwright = None

    async def acquire(self) -> BrowserSession:
        """Create a fresh, fully configured session.

        Returns:
            BrowserSession owned by the caller until release()

        Raises:
            ContextCreationError: If the browser cannot create the context or page
        """
        if not self.browser:
            raise ContextCreationError("Browser not initialized")

        user_agent = random.choice(self.config.user_agents)
        context = None
        try:
            context = await self.browser.new_context(
                user_agent=user_agent,
                viewport=self.config.viewport_size,
                locale=self.config.locale,
                timezone_id=self.config.timezone_id,
                geolocation=self.config.geolocation_coords,
                permissions=['geolocation'],
                device_scale_factor=1,
                extra_http_headers={
                    'Accept': ACCEPT_HEADER,
                    'Accept-Language': accept_language(self.config.locale),
                }
            )
            await context.route('**/*', self._block_heavy_resources)

            page = await context.new_page()
            if STEALTH_AVAILABLE:
                await stealth_async(page)
        except PlaywrightError as e:
            if context is not None:
                await self._close_quietly(context)
            raise ContextCreationError(f"Context Creation Failed: {e}") from e

        return BrowserSession(context=context, page=page, user_agent=user_agent)

    async def release(self, session: BrowserSession) -> bool:
        """Close a session's context. Never raises.

        Returns:
            True if the context closed cleanly
        """
        return await self._close_quietly(session.context)

    @asynccontextmanager
    async def session(self):
        """Scoped session: released on success, error and cancellation."""
        session = await self.acquire()
        try:
            yield session
        finally:
            await self.release(session)

    async def _close_quietly(self, context: BrowserContext) -> bool:
        try:
            await context.close()
            return True
        except PlaywrightError as e:
            self.logger.debug(f"Error closing browser context: {e}")
            return False

    async def _block_heavy_resources(self, route: Route):
        """Abort image/font (and optionally stylesheet) requests."""
        if route.request.resource_type in self.blocked_resource_types:
            await route.abort()
        else:
            await route.continue_()
