#!/usr/bin/env python3
"""
Retailer variants and their selector catalog.

Each supported retailer supplies the same four capabilities: URL
resolution, an ordered selector set per field, soft-block handling and
post-extraction quirks. Adding a retailer means adding a profile here.

Candidate locators are plain strings. The extraction strategy is chosen
from the locator prefix:
- ``script...``  structured data (JSON-LD), read a nested value
- ``meta...``    read the ``content`` attribute
- anything else  read the element's visible inner text
"""

import asyncio
import re
from enum import Enum
from typing import Dict, Optional, Tuple

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from pacing import random_delay
from scraper_errors import UnknownRetailerError


STRATEGY_JSON_LD = 'json-ld'
STRATEGY_META = 'meta'
STRATEGY_TEXT = 'text'

JSON_LD_SELECTOR = 'script[type="application/ld+json"]'

# Nested paths tried, in order, when a JSON-LD candidate is used for a field
JSON_LD_PATHS: Dict[str, Tuple[Tuple[str, ...], ...]] = {
    'title': (('name',),),
    'description': (('description',),),
    'price': (('offers', 'price'), ('offers', 'lowPrice')),
    'reviews': (('aggregateRating', 'reviewCount'), ('aggregateRating', 'ratingCount')),
    'rating': (('aggregateRating', 'ratingValue'),),
}

FieldSelectors = Dict[str, Tuple[str, ...]]


def selector_strategy(selector: str) -> str:
    """Classify a candidate locator by its prefix."""
    head = selector.lstrip().lower()
    if head.startswith('script'):
        return STRATEGY_JSON_LD
    if head.startswith('meta'):
        return STRATEGY_META
    return STRATEGY_TEXT


def dom_candidates(candidates: Tuple[str, ...]) -> Tuple[str, ...]:
    """Only the candidates that can become visible on screen."""
    return tuple(c for c in candidates if selector_strategy(c) == STRATEGY_TEXT)


_FIRST_AMOUNT = re.compile(r'^\d+(?:\.\d{1,2})?')


def first_amount(price: str) -> str:
    """Keep only the leading amount of a cleaned price ('19.9919.99' -> '19.99')."""
    match = _FIRST_AMOUNT.match(price)
    return match.group(0) if match else price


class Retailer(str, Enum):
    AMAZON = 'Amazon'
    WALMART = 'Walmart'


class RetailerProfile:
    """Retailer-specific behaviour behind one interface."""

    retailer: Retailer
    url_template: str
    selectors: FieldSelectors

    def resolve_url(self, sku: str) -> str:
        """Product page URL for an identifier. Pure, no network."""
        return self.url_template.format(sku=sku)

    async def dismiss_soft_block(self, page, config, logger) -> Optional[str]:
        """Try to get past an interstitial.

        Returns:
            A short description of what was done, or None if no block was seen
        """
        return None

    def post_process(self, data: Dict[str, str]) -> Dict[str, str]:
        """Apply retailer quirks to cleaned field values."""
        return dict(data)


class AmazonProfile(RetailerProfile):
    """amazon.com product detail pages (/dp/<ASIN>)."""

    retailer = Retailer.AMAZON
    url_template = 'https://www.amazon.com/dp/{sku}'
    selectors = {
        'title': (
            '#productTitle',
            '#title',
            '.qa-title-text',
            'meta[name="title"]',
        ),
        'description': (
            '#productDescription',
            '#feature-bullets',
            '#bookDescription_feature_div',
            'meta[name="description"]',
        ),
        'price': (
            '#corePrice_feature_div .a-price .a-offscreen',
            '#corePriceDisplay_desktop_feature_div .a-price .a-offscreen',
            '.a-price .a-offscreen',
            '#priceblock_ourprice',
            '.a-color-price',
        ),
        'reviews': (
            '#acrCustomerReviewText',
            '#acrCustomerReviewLink',
            JSON_LD_SELECTOR,
        ),
        'rating': (
            '#acrPopover .a-icon-alt',
            'span[data-hook="rating-out-of-text"]',
            '#averageCustomerReviews .a-icon-alt',
            JSON_LD_SELECTOR,
        ),
    }

    async def dismiss_soft_block(self, page, config, logger) -> Optional[str]:
        """Click through the "Continue shopping" interstitial if it shows up."""
        button = page.locator('text="Continue shopping"').first
        try:
            await button.wait_for(state='visible', timeout=config.soft_block_timeout_ms)
        except PlaywrightTimeoutError:
            return None

        logger.info('Soft block detected. Clicking "Continue shopping"...')
        await asyncio.gather(
            page.wait_for_url('**', wait_until='domcontentloaded',
                              timeout=config.navigation_timeout_ms),
            button.click(),
        )
        await random_delay(config.soft_block_pause)
        return 'clicked "Continue shopping"'

    def post_process(self, data: Dict[str, str]) -> Dict[str, str]:
        # .a-offscreen can repeat the amount when both buy boxes render
        result = dict(data)
        if result.get('price'):
            result['price'] = first_amount(result['price'])
        return result


class WalmartProfile(RetailerProfile):
    """walmart.com item pages (/ip/<item id>)."""

    retailer = Retailer.WALMART
    url_template = 'https://www.walmart.com/ip/{sku}'
    selectors = {
        'title': (
            'h1[itemprop="name"]',
            'h1#main-title',
            'h1',
            'meta[property="og:title"]',
        ),
        'description': (
            '[data-testid="product-description-content"]',
            '.dangerous-html',
            '.product-description',
            '[data-testid="product-description"]',
            'meta[name="description"]',
        ),
        'price': (
            '[itemprop="price"]',
            '[data-seo-id="hero-price"]',
            '[data-testid="price-wrap"] span',
            '.price-display .display-price',
            JSON_LD_SELECTOR,
        ),
        'reviews': (
            JSON_LD_SELECTOR,
            '[itemprop="ratingCount"]',
            '[data-testid="item-review-section-link"]',
            '.rating-number',
        ),
        'rating': (
            JSON_LD_SELECTOR,
            '[itemprop="ratingValue"]',
            '.rating-number',
        ),
    }

    hold_selectors = (
        '#px-captcha',
        '[id*="px-captcha"]',
        'div[aria-label*="Press & Hold"]',
        'button:has-text("Press & Hold")',
        'p:has-text("Press & Hold")',
    )

    async def _find_hold_target(self, page):
        # page.frames includes the main frame; the challenge often lives in an iframe
        for frame in page.frames:
            for selector in self.hold_selectors:
                target = frame.locator(selector).first
                if await target.count() and await target.is_visible():
                    return target
        return None

    async def dismiss_soft_block(self, page, config, logger) -> Optional[str]:
        """Solve a press-and-hold challenge by holding the mouse on it."""
        target = await self._find_hold_target(page)
        if target is None:
            return None

        box = await target.bounding_box()
        if not box:
            return None

        logger.info('Press-and-hold challenge detected. Holding...')
        await page.mouse.move(box['x'] + box['width'] / 2, box['y'] + box['height'] / 2)
        await page.mouse.down()
        held = await random_delay(config.captcha_hold)
        await page.mouse.up()

        await page.wait_for_load_state('domcontentloaded', timeout=config.navigation_timeout_ms)
        await random_delay(config.soft_block_pause)
        return f"held press-and-hold challenge for {held:.1f}s"

    def post_process(self, data: Dict[str, str]) -> Dict[str, str]:
        result = dict(data)
        description = result.get('description', '')
        # The description container repeats its section heading
        if description.lower().startswith('product details'):
            result['description'] = description[len('product details'):].strip()
        if result.get('price'):
            result['price'] = first_amount(result['price'])
        return result


RETAILER_PROFILES: Dict[Retailer, RetailerProfile] = {
    Retailer.AMAZON: AmazonProfile(),
    Retailer.WALMART: WalmartProfile(),
}


def get_retailer_profile(tag: str) -> RetailerProfile:
    """Look up the profile for a retailer tag (case-insensitive).

    Raises:
        UnknownRetailerError: If no selector set is mapped for the tag
    """
    for retailer, profile in RETAILER_PROFILES.items():
        if retailer.value.lower() == (tag or '').strip().lower():
            return profile
    raise UnknownRetailerError(tag)
