#!/usr/bin/env python3
"""
Product page interaction protocol.

Drives one page through navigation, soft-block dismissal, bot detection,
humanization, content wait, field extraction and validation. Any stage
failure raises a ScrapeError subclass describing the stage; the caller
(retry wrapper) decides whether to try again.
"""

import asyncio
import json
import random
import re
from typing import Awaitable, Dict, Optional, Tuple, TypeVar

from playwright.async_api import Error as PlaywrightError

from pacing import random_delay
from product_record import FIELD_NAMES, SKUDescriptor
from retailers import (
    JSON_LD_PATHS, STRATEGY_JSON_LD, STRATEGY_META, FieldSelectors,
    RetailerProfile, dom_candidates, selector_strategy
)
from scraper_config import ScraperConfig
from scraper_errors import (
    BotDetectedError, ContentTimeoutError, EmptyTitleError, HttpStatusError,
    NavigationError, PageNotFoundError, ProductUnavailableError
)

T = TypeVar('T')


# ============================================================================
# Field cleaning
# ============================================================================

_WHITESPACE = re.compile(r'\s+')
_NOT_DECIMAL = re.compile(r'[^\d.]')
_NOT_DIGIT = re.compile(r'\D')
_OUT_OF = re.compile(r'out of', re.IGNORECASE)


def clean_title(text: str) -> str:
    return (text or '').strip()


def clean_description(text: str, max_length: int = 200) -> str:
    """Truncate, collapse whitespace runs, trim."""
    return _WHITESPACE.sub(' ', (text or '')[:max_length]).strip()


def clean_price(text: str) -> str:
    """'$1,234.56' -> '1234.56'"""
    return _NOT_DECIMAL.sub('', text or '')


def clean_reviews(text: str) -> str:
    """'12,345 ratings' -> '12345'"""
    return _NOT_DIGIT.sub('', text or '')


def clean_rating(text: str) -> str:
    """'4.5 out of 5 stars' -> '4.5'"""
    text = _OUT_OF.split(text or '', 1)[0]
    return _NOT_DECIMAL.sub('', text)


def clean_field(field: str, text: str, config: ScraperConfig) -> str:
    """Apply the field's cleaning transform."""
    if field == 'description':
        return clean_description(text, config.description_max_length)
    if field == 'price':
        return clean_price(text)
    if field == 'reviews':
        return clean_reviews(text)
    if field == 'rating':
        return clean_rating(text)
    return clean_title(text)


# ============================================================================
# Best-effort helper
# ============================================================================

async def attempt_optional(operation: Awaitable[T], logger, label: str) -> Optional[T]:
    """Await a best-effort operation; a failure yields None instead of raising.

    Args:
        operation: Awaitable to run
        logger: Logger instance
        label: Stage name for the debug log

    Returns:
        The operation's result, or None if it failed
    """
    try:
        return await operation
    except Exception as e:
        logger.debug(f"{label} skipped: {e}")
        return None


# ============================================================================
# Structured data
# ============================================================================

def _iter_json_ld_nodes(data):
    """Yield candidate objects from a parsed JSON-LD block."""
    if isinstance(data, list):
        # Arrays: the product is conventionally the first element
        if data:
            yield from _iter_json_ld_nodes(data[0])
        return
    if not isinstance(data, dict):
        return
    yield data
    for node in data.get('@graph', []) or []:
        if isinstance(node, dict):
            yield node


def _lookup(node, path: Tuple[str, ...]):
    value = node
    for key in path:
        if isinstance(value, list):
            value = value[0] if value else None
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def json_ld_value(raw: str, field: str) -> str:
    """Pull a field's value out of a JSON-LD script body.

    Returns:
        The value as a string, or '' if the block has no such value
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        return ''

    for node in _iter_json_ld_nodes(data):
        for path in JSON_LD_PATHS.get(field, ()):
            value = _lookup(node, path)
            if value not in (None, '') and not isinstance(value, (dict, list)):
                return str(value)
    return ''


# ============================================================================
# Field extraction fallback chain
# ============================================================================

class FieldExtractor:
    """Reads each field by walking its ordered candidate list."""

    def __init__(self, config: ScraperConfig, logger):
        """Initialize the extractor.

        Args:
            config: Scraper configuration
            logger: Logger instance
        """
        self.config = config
        self.logger = logger

    async def read_candidate(self, page, selector: str, field: str) -> str:
        """Raw text for one candidate. May raise; callers swallow."""
        timeout = self.config.extraction_timeout_ms
        strategy = selector_strategy(selector)

        if strategy == STRATEGY_JSON_LD:
            for block in await page.locator(selector).all_text_contents():
                value = json_ld_value(block, field)
                if value:
                    return value
            return ''

        locator = page.locator(selector).first
        if strategy == STRATEGY_META:
            return await locator.get_attribute('content', timeout=timeout) or ''

        if await locator.is_visible():
            return await locator.inner_text(timeout=timeout)
        return ''

    async def extract_field(self, page, field: str, candidates: Tuple[str, ...]) -> str:
        """First non-empty cleaned value among the candidates, else ''."""
        for selector in candidates:
            try:
                raw = await self.read_candidate(page, selector, field)
            except Exception as e:
                self.logger.debug(f"Candidate {selector!r} for {field} failed: {e}")
                continue
            value = clean_field(field, raw, self.config)
            if value:
                return value
        return ''

    async def extract_all(self, page, selectors: FieldSelectors) -> Dict[str, str]:
        """Extract every catalogued field concurrently."""
        fields = [f for f in FIELD_NAMES if f in selectors]
        values = await asyncio.gather(*[
            self.extract_field(page, f, selectors[f]) for f in fields
        ])
        data = {f: '' for f in FIELD_NAMES}
        data.update(zip(fields, values))
        return data


# ============================================================================
# Page interaction protocol
# ============================================================================

class ProductPageProtocol:
    """The per-attempt state machine for one product page."""

    def __init__(self, config: ScraperConfig, logger):
        """Initialize the protocol.

        Args:
            config: Scraper configuration
            logger: Logger instance
        """
        self.config = config
        self.logger = logger
        self.extractor = FieldExtractor(config, logger)

    async def run(self, page, descriptor: SKUDescriptor,
                  profile: RetailerProfile) -> Dict[str, str]:
        """Scrape one product page.

        Args:
            page: Playwright page owned by this attempt
            descriptor: Item being scraped
            profile: Retailer variant for the descriptor

        Returns:
            Dictionary with 'sku', 'source' and the cleaned field values

        Raises:
            ScrapeError: Describing the stage that failed
        """
        url = profile.resolve_url(descriptor.sku)

        await self.navigate(page, url)

        outcome = await attempt_optional(
            profile.dismiss_soft_block(page, self.config, self.logger),
            self.logger, "Soft-block dismissal"
        )
        if outcome:
            self.logger.debug(f"Soft block for {descriptor.sku}: {outcome}")

        await self.check_for_bot_detection(page)
        await attempt_optional(self.humanize(page), self.logger, "Humanization")
        await self.wait_for_content(page, profile.selectors['title'])

        data = await self.extractor.extract_all(page, profile.selectors)
        data = profile.post_process(data)
        await self.validate(data, page)

        return {'sku': descriptor.sku, 'source': descriptor.retailer, **data}

    async def navigate(self, page, url: str):
        """Load the URL and reject missing or error responses."""
        try:
            response = await page.goto(url, wait_until='domcontentloaded',
                                       timeout=self.config.navigation_timeout_ms)
        except PlaywrightError as e:
            raise NavigationError(f"Navigation failed: {e}") from e

        if response is None:
            raise NavigationError("No response")
        if response.status == 404:
            raise PageNotFoundError("Page not found (404)")
        if response.status >= 400:
            raise HttpStatusError(response.status)

    async def check_for_bot_detection(self, page):
        """Fail the attempt if the title looks like a block or error page."""
        title = await page.title()
        lowered = title.lower()
        for keyword in self.config.block_title_keywords:
            if keyword.lower() in lowered:
                raise BotDetectedError(f"Anti-bot detected or invalid page (title: {title!r})")

    async def humanize(self, page) -> float:
        """Nudge the cursor, scroll a little and pause like a reader would."""
        await page.mouse.move(100 + random.randint(-10, 10), 100 + random.randint(-10, 10))
        await page.mouse.wheel(0, 200)
        return await random_delay(self.config.humanize_delay)

    async def wait_for_content(self, page, title_candidates: Tuple[str, ...]):
        """Wait until any title candidate is visible.

        The selector list resolves to its first match in document order, so
        every candidate is narrowed to visible elements; a hidden earlier
        match must not mask a visible later one.
        """
        candidates = dom_candidates(title_candidates) or title_candidates
        selector = ', '.join(f'{c}:visible' for c in candidates)
        try:
            await page.wait_for_selector(selector, state='visible',
                                         timeout=self.config.locator_timeout_ms)
        except PlaywrightError as e:
            raise ContentTimeoutError("Timeout: product title never appeared on screen") from e

    async def validate(self, data: Dict[str, str], page):
        """A non-empty title is sufficient; otherwise explain why it is empty."""
        if data.get('title'):
            return

        body_text = await attempt_optional(
            page.locator('body').inner_text(timeout=self.config.extraction_timeout_ms),
            self.logger, "Body text read"
        ) or ''
        if self.config.unavailable_marker.lower() in body_text.lower():
            raise ProductUnavailableError("Product Currently Unavailable")
        raise EmptyTitleError("Validation failed: title empty")
