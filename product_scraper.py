#!/usr/bin/env python3
"""
Retail Product Scraper

Scrapes title, description, price, review count and rating for a list of
Amazon/Walmart SKUs with a headless browser and writes them to CSV.
Every input SKU produces exactly one row: either the scraped product or a
clearly flagged fallback row (description "FAILED").
"""

import argparse
import asyncio
import csv
import json
import logging
import sys
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from browser_session import BrowserSessionManager
from pacing import random_delay
from product_page import ProductPageProtocol
from product_record import CSV_HEADER, TITLE_SENTINEL, ProductRecord, SKUDescriptor
from retailers import RetailerProfile, get_retailer_profile
from scraper_config import POOL_STRATEGIES, ScraperConfig
from scraper_errors import ScrapeError, SoftFailureError, UnknownRetailerError


# ============================================================================
# Error Handling and Logging
# ============================================================================

class ErrorLog:
    """Append-only, human-readable log of terminal per-item failures."""

    def __init__(self, path: str = "errors.log"):
        self.path = Path(path)

    def append(self, retailer: str, sku: str, message: str):
        """Write one line: timestamp, retailer, SKU and failure message."""
        timestamp = datetime.now().isoformat()
        line = f"{timestamp}: Error fetching {retailer} product with SKU {sku}: {message}\n"
        with open(self.path, 'a', encoding='utf-8') as f:
            f.write(line)

    def append_critical(self, message: str):
        timestamp = datetime.now().isoformat()
        with open(self.path, 'a', encoding='utf-8') as f:
            f.write(f"{timestamp}: Critical error running scraper: {message}\n")


class ScraperLogger:
    """Centralized logging system for the scraper."""

    def __init__(self, log_dir: Optional[str] = "logs", error_log_path: str = "errors.log"):
        """Initialize logger with an activity log and the error log.

        Args:
            log_dir: Directory to store activity log files (None = console only)
            error_log_path: Path of the append-only error log
        """
        self.logger = logging.getLogger("ProductScraper")
        self.logger.setLevel(logging.DEBUG)
        self.logger.propagate = False
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()

        # Console handler for user-facing messages
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(logging.Formatter('%(message)s'))
        self.logger.addHandler(console_handler)

        # File handler for detailed logs
        self.log_dir = None
        self.log_path = None
        if log_dir:
            self.log_dir = Path(log_dir)
            self.log_dir.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self.log_path = self.log_dir / f"scraper_{timestamp}.log"
            file_handler = logging.FileHandler(self.log_path, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            ))
            self.logger.addHandler(file_handler)

        self.error_log = ErrorLog(error_log_path)

    def log_error(self, retailer: str, sku: str, message: str):
        """Log a terminal item failure to the console/file and the error log.

        Args:
            retailer: Retailer tag of the item
            sku: Item identifier
            message: Failure message
        """
        self.logger.error(f"Error fetching {retailer} product with SKU {sku}: {message}")
        try:
            self.error_log.append(retailer, sku, message)
        except OSError as e:
            self.logger.warning(f"Could not write to error log {self.error_log.path}: {e}")

    def log_critical(self, message: str):
        """Log a run-level failure (bad input file, browser launch...)."""
        self.logger.error(f"Critical error running scraper: {message}")
        try:
            self.error_log.append_critical(message)
        except OSError as e:
            self.logger.warning(f"Could not write to error log {self.error_log.path}: {e}")

    def info(self, message: str):
        """Log an info message."""
        self.logger.info(message)

    def debug(self, message: str):
        """Log a debug message."""
        self.logger.debug(message)

    def warning(self, message: str):
        """Log a warning message."""
        self.logger.warning(message)


# ============================================================================
# JSON Input Processing
# ============================================================================

class SKUListReader:
    """Reads and validates the skus.json input file."""

    def __init__(self, json_path: str, logger: ScraperLogger):
        """Initialize the reader.

        Args:
            json_path: Path to the SKU list
            logger: Logger instance for error reporting
        """
        self.json_path = Path(json_path)
        self.logger = logger

    def read_skus(self) -> List[SKUDescriptor]:
        """Read descriptors from ``{"skus": [{"Type": ..., "SKU": ...}]}``.

        Entries without a type or SKU are logged and skipped. Unknown
        retailer types are kept; they resolve to fallback rows later.

        Returns:
            List of SKUDescriptor in file order

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file is not valid JSON or has no SKU list
        """
        with open(self.json_path, 'r', encoding='utf-8') as f:
            try:
                payload = json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid JSON in {self.json_path}: {e}") from e

        entries = payload.get('skus') if isinstance(payload, dict) else payload
        if not isinstance(entries, list):
            raise ValueError(f"{self.json_path} must contain a 'skus' list")

        descriptors = []
        for index, entry in enumerate(entries):
            if not isinstance(entry, dict):
                self.logger.log_error("", "", f"Entry {index}: expected an object, got {entry!r}")
                continue

            retailer = str(entry.get('Type') or entry.get('type') or '').strip()
            sku = str(entry.get('SKU') or entry.get('sku') or '').strip()
            if not retailer or not sku:
                self.logger.log_error(retailer or "Unknown", sku or "Unknown",
                                      f"Entry {index}: missing Type or SKU")
                continue

            descriptors.append(SKUDescriptor(retailer=retailer, sku=sku))
            self.logger.debug(f"Loaded SKU: {retailer} {sku}")

        self.logger.info(f"Loaded {len(descriptors)} SKUs from {self.json_path}")
        return descriptors


# ============================================================================
# CSV Output
# ============================================================================

class ProductCSVWriter:
    """Writes finished product records as CSV rows."""

    def __init__(self, csv_path: str, logger: ScraperLogger):
        self.csv_path = Path(csv_path)
        self.logger = logger

    def write_records(self, records: Sequence[ProductRecord]) -> Path:
        """Write header plus one row per record, replacing any previous file."""
        with open(self.csv_path, 'w', newline='', encoding='utf-8') as f:
            writer = csv.writer(f)
            writer.writerow(CSV_HEADER)
            for record in records:
                writer.writerow(record.to_row())

        self.logger.info(f"Successfully wrote {len(records)} products to {self.csv_path}")
        return self.csv_path


# ============================================================================
# Retry Wrapper and Concurrency Pool
# ============================================================================

class ProductScraper:
    """Runs every SKU through the page protocol with retries and bounded concurrency."""

    def __init__(self, config: ScraperConfig, logger: ScraperLogger,
                 sessions: BrowserSessionManager,
                 protocol: Optional[ProductPageProtocol] = None):
        """Initialize the scraper.

        Args:
            config: Scraper configuration
            logger: Logger instance
            sessions: Session manager handing out isolated browser sessions
            protocol: Page protocol (defaults to ProductPageProtocol)
        """
        self.config = config
        self.logger = logger
        self.sessions = sessions
        self.protocol = protocol or ProductPageProtocol(config, logger)

    async def scrape_with_retry(self, descriptor: SKUDescriptor) -> ProductRecord:
        """Scrape one SKU, retrying soft and hard failures. Never raises.

        Args:
            descriptor: Item to scrape

        Returns:
            The scraped record, or a fallback record if every attempt failed
        """
        try:
            profile = get_retailer_profile(descriptor.retailer)
        except UnknownRetailerError as e:
            return self._fallback(descriptor, e, e.fallback_title(0))

        max_retries = self.config.max_retries
        last_error: Optional[Exception] = None

        for attempt in range(1, max_retries + 1):
            self.logger.info(f"Starting task for {descriptor.retailer} product with SKU "
                             f"{descriptor.sku} (attempt {attempt}/{max_retries})")
            try:
                data = await self._attempt(descriptor, profile)
                self._check_soft_failure(data)
                self.logger.info(f"Finished task for {descriptor.retailer} product with SKU {descriptor.sku}")
                return ProductRecord.from_fields(descriptor, data)
            except ScrapeError as e:
                if not e.retryable:
                    return self._fallback(descriptor, e, e.fallback_title(attempt))
                last_error = e
            except Exception as e:
                last_error = e

            self.logger.warning(f"Attempt {attempt}/{max_retries} failed for "
                                f"{descriptor.retailer} SKU {descriptor.sku}: {last_error}")
            if attempt < max_retries:
                await random_delay(self.config.retry_delay)

        if isinstance(last_error, ScrapeError):
            title = last_error.fallback_title(max_retries)
        else:
            title = f"Failed after {max_retries} attempts: {last_error}"
        return self._fallback(descriptor, last_error, title)

    async def _attempt(self, descriptor: SKUDescriptor, profile: RetailerProfile) -> Dict[str, str]:
        """One protocol run in a fresh session."""
        async with self.sessions.session() as session:
            return await self.protocol.run(session.page, descriptor, profile)

    def _check_soft_failure(self, data: Dict[str, str]):
        """Treat a sentinel or block-page title as a failed attempt."""
        title = data.get('title', '')
        if not title or title == TITLE_SENTINEL:
            raise SoftFailureError(f"Soft failure: title is {title or 'empty'!r}")
        for phrase in self.config.soft_failure_phrases:
            if phrase.lower() in title.lower():
                raise SoftFailureError(f"Soft failure: block page detected ({phrase})")

    def _fallback(self, descriptor: SKUDescriptor, error: Optional[Exception],
                  title: str) -> ProductRecord:
        self.logger.log_error(descriptor.retailer, descriptor.sku, str(error) if error else title)
        return ProductRecord.fallback(descriptor, title)

    async def process_all(self, descriptors: Sequence[SKUDescriptor]) -> List[ProductRecord]:
        """Scrape every descriptor, at most `concurrency_limit` at a time.

        Returns:
            Exactly one record per descriptor, in completion order
        """
        if not descriptors:
            return []
        if self.config.pool_strategy == 'batch':
            return await self._process_in_batches(descriptors)
        return await self._process_rolling(descriptors)

    async def _process_rolling(self, descriptors: Sequence[SKUDescriptor]) -> List[ProductRecord]:
        """Admit a new item as soon as one in flight finishes."""
        queue = deque(descriptors)
        active = set()
        results: List[ProductRecord] = []
        limit = self.config.concurrency_limit

        self.logger.info(f"Processing {len(queue)} SKUs (max {limit} at a time)")
        try:
            while queue or active:
                while queue and len(active) < limit:
                    active.add(asyncio.create_task(self.scrape_with_retry(queue.popleft())))

                done, active = await asyncio.wait(active, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    results.append(task.result())
                self.logger.debug(f"Progress: {len(results)}/{len(descriptors)} SKUs finished")
        finally:
            for task in active:
                task.cancel()
            if active:
                await asyncio.gather(*active, return_exceptions=True)

        return results

    async def _process_in_batches(self, descriptors: Sequence[SKUDescriptor]) -> List[ProductRecord]:
        """Fixed-size batches with a short pause between them."""
        limit = self.config.concurrency_limit
        total_batches = (len(descriptors) + limit - 1) // limit
        results: List[ProductRecord] = []

        for i in range(0, len(descriptors), limit):
            batch = descriptors[i:i + limit]
            self.logger.info(f"Processing batch {i // limit + 1} / {total_batches}...")
            results.extend(await asyncio.gather(*[self.scrape_with_retry(d) for d in batch]))
            if i + limit < len(descriptors):
                await random_delay(self.config.inter_batch_delay)

        return results


# ============================================================================
# Main Entry Point
# ============================================================================

async def run_scraper(config: ScraperConfig, input_path: str, output_path: str,
                      logger: ScraperLogger) -> List[ProductRecord]:
    """Load SKUs, scrape them all, write the CSV.

    Args:
        config: Scraper configuration
        input_path: Path to skus.json
        output_path: Path of the CSV file to write
        logger: Logger instance

    Returns:
        The records written
    """
    logger.info("=" * 60)
    logger.info("Retail Product Scraper")
    logger.info("=" * 60)

    descriptors = SKUListReader(input_path, logger).read_skus()
    if not descriptors:
        logger.info("No SKUs to process. Exiting.")
        return []

    async with BrowserSessionManager(config, logger) as sessions:
        scraper = ProductScraper(config, logger, sessions)
        records = await scraper.process_all(descriptors)

    ProductCSVWriter(output_path, logger).write_records(records)
    _print_summary(records, output_path, logger)
    return records


def _print_summary(records: Sequence[ProductRecord], output_path: str, logger: ScraperLogger):
    """Print final summary statistics."""
    fallbacks = sum(1 for r in records if r.is_fallback)
    logger.info("\n" + "=" * 60)
    logger.info("SCRAPING COMPLETE")
    logger.info("=" * 60)
    logger.info(f"Products scraped: {len(records) - fallbacks}")
    logger.info(f"Fallback rows: {fallbacks}")
    logger.info(f"\nOutput CSV: {Path(output_path).absolute()}")
    logger.info(f"Error log: {logger.error_log.path.absolute()}")
    if logger.log_dir:
        logger.info(f"Log directory: {logger.log_dir.absolute()}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Retail Product Scraper - Amazon/Walmart product data to CSV',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Examples:
  # Scrape skus.json into product_data.csv
  python product_scraper.py

  # Custom input/output paths
  python product_scraper.py --input my_skus.json --output products.csv

  # Five pages at a time, fixed batches, visible browser
  python product_scraper.py --concurrent 5 --strategy batch --headed

  # Load timeouts, delays and user agents from a JSON file
  python product_scraper.py --config scraper_config.json
        '''
    )

    parser.add_argument(
        '--input',
        type=str,
        default='skus.json',
        metavar='FILE',
        help='Path to SKU list JSON file (default: skus.json)'
    )

    parser.add_argument(
        '--output',
        type=str,
        default='product_data.csv',
        metavar='FILE',
        help='Output CSV file (default: product_data.csv)'
    )

    parser.add_argument(
        '--error-log',
        type=str,
        default='errors.log',
        metavar='FILE',
        help='Append-only error log (default: errors.log)'
    )

    parser.add_argument(
        '--log-dir',
        type=str,
        default='logs',
        metavar='DIR',
        help='Directory for detailed run logs (default: logs/)'
    )

    parser.add_argument(
        '--config',
        type=str,
        default=None,
        metavar='FILE',
        help='Path to scraper configuration JSON file (default: None - uses defaults)'
    )

    parser.add_argument(
        '--concurrent',
        type=int,
        default=None,
        metavar='N',
        help='Maximum SKUs to process concurrently (default: 3)'
    )

    parser.add_argument(
        '--max-retries',
        type=int,
        default=None,
        metavar='N',
        help='Maximum attempts per SKU (default: 3)'
    )

    parser.add_argument(
        '--strategy',
        choices=POOL_STRATEGIES,
        default=None,
        help='Admission policy: rolling (refill as items finish) or batch (default: rolling)'
    )

    parser.add_argument(
        '--headed',
        action='store_true',
        help='Show the browser window'
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point with CLI argument parsing."""
    args = build_parser().parse_args(argv)
    try:
        logger = ScraperLogger(args.log_dir, args.error_log)
    except OSError as e:
        logger = ScraperLogger(None, args.error_log)
        logger.warning(f"Could not create log directory {args.log_dir}: {e}; logging to console only")

    try:
        config = ScraperConfig.from_json(args.config) if args.config else ScraperConfig()
        config = config.with_overrides(
            concurrency_limit=args.concurrent,
            max_retries=args.max_retries,
            pool_strategy=args.strategy,
            headless=False if args.headed else None,
        )
        asyncio.run(run_scraper(config, args.input, args.output, logger))
    except Exception as e:
        logger.log_critical(str(e))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
