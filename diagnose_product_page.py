#!/usr/bin/env python3
"""
Diagnostic tool to see which catalogued selectors match a live product page.

Usage:
  python diagnose_product_page.py Amazon B08N5WRWNW
  python diagnose_product_page.py Walmart 5036869001 --headed
"""

import argparse
import asyncio
import sys
from typing import Dict, List, Tuple

from bs4 import BeautifulSoup

from browser_session import BrowserSessionManager
from product_page import ProductPageProtocol, clean_field, json_ld_value
from product_record import SKUDescriptor
from product_scraper import ScraperLogger
from retailers import STRATEGY_JSON_LD, STRATEGY_META, FieldSelectors, get_retailer_profile, selector_strategy
from scraper_config import ScraperConfig


def candidate_report(html: str, selectors: FieldSelectors,
                     config: ScraperConfig) -> Dict[str, List[Tuple[str, int, str]]]:
    """Match every candidate against static HTML.

    Args:
        html: Rendered page HTML
        selectors: Field -> candidate locators
        config: Scraper configuration (for cleaning)

    Returns:
        Field -> list of (selector, match count, cleaned sample value)
    """
    soup = BeautifulSoup(html, 'lxml')
    report = {}

    for field, candidates in selectors.items():
        rows = []
        for selector in candidates:
            elements = soup.select(selector)
            sample = ''
            strategy = selector_strategy(selector)
            for element in elements:
                if strategy == STRATEGY_JSON_LD:
                    raw = json_ld_value(element.string or element.get_text(), field)
                elif strategy == STRATEGY_META:
                    raw = element.get('content', '')
                else:
                    raw = element.get_text(' ', strip=True)
                sample = clean_field(field, raw, config)
                if sample:
                    break
            rows.append((selector, len(elements), sample))
        report[field] = rows

    return report


async def diagnose_product(descriptor: SKUDescriptor, config: ScraperConfig):
    """Open one session and print what the catalog sees on the page."""
    logger = ScraperLogger(log_dir=None)
    profile = get_retailer_profile(descriptor.retailer)
    protocol = ProductPageProtocol(config, logger)
    url = profile.resolve_url(descriptor.sku)

    print(f"\n{'='*60}")
    print(f"Diagnosing: {url}")
    print('='*60)

    async with BrowserSessionManager(config, logger) as sessions:
        async with sessions.session() as session:
            page = session.page
            print(f"\nUser agent: {session.user_agent}")

            print("\nNavigating to page...")
            await protocol.navigate(page, url)

            outcome = await profile.dismiss_soft_block(page, config, logger)
            print(f"Soft block: {outcome or 'none detected'}")

            title = await page.title()
            print(f"\nPage title: {title}")
            blocked = [k for k in config.block_title_keywords if k.lower() in title.lower()]
            print(f"Block keywords in title: {', '.join(blocked) if blocked else 'none'}")

            content = await page.content()
            print(f"Content length: {len(content)} bytes")

            report = candidate_report(content, profile.selectors, config)
            for field, rows in report.items():
                print(f"\n{field}:")
                for selector, count, sample in rows:
                    marker = "✓" if sample else " "
                    print(f"  {marker} {count:3d}  {selector}  {sample[:60]}")

            screenshot_path = f"screenshot_{descriptor.retailer.lower()}_{descriptor.sku}.png"
            await page.screenshot(path=screenshot_path)
            print(f"\nScreenshot saved to: {screenshot_path}")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description='Show which selectors match a product page')
    parser.add_argument('retailer', help='Retailer tag, e.g. Amazon or Walmart')
    parser.add_argument('sku', help='Retailer product identifier')
    parser.add_argument('--headed', action='store_true', help='Show the browser window')
    args = parser.parse_args(argv)

    config = ScraperConfig(headless=not args.headed)
    asyncio.run(diagnose_product(SKUDescriptor(args.retailer, args.sku), config))
    return 0


if __name__ == "__main__":
    sys.exit(main())
