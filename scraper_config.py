#!/usr/bin/env python3
"""
Static scraper configuration.

A single immutable ScraperConfig is built at startup (defaults, optionally
overlaid with a JSON file and CLI flags) and handed to every component.
"""

import json
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Dict, Tuple


DEFAULT_USER_AGENTS = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36',
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.2 Safari/605.1.15',
    'Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
)

POOL_STRATEGIES = ('rolling', 'batch')


@dataclass(frozen=True)
class ScraperConfig:
    """Timeouts, pacing, identity and policy settings for one run.

    Timeouts are in milliseconds (Playwright units); delay ranges are
    (min, max) tuples in seconds.
    """

    # Per-stage timeouts
    navigation_timeout_ms: int = 30000
    locator_timeout_ms: int = 10000
    extraction_timeout_ms: int = 1000
    soft_block_timeout_ms: int = 2000

    # Pool and retry policy
    concurrency_limit: int = 3
    max_retries: int = 3
    pool_strategy: str = 'rolling'

    # Delay ranges
    humanize_delay: Tuple[float, float] = (0.5, 1.0)
    retry_delay: Tuple[float, float] = (2.0, 5.0)
    captcha_hold: Tuple[float, float] = (5.0, 10.0)
    soft_block_pause: Tuple[float, float] = (2.0, 4.0)
    inter_batch_delay: Tuple[float, float] = (1.0, 3.0)

    # Browser identity
    headless: bool = True
    viewport: Tuple[int, int] = (1920, 1080)
    user_agents: Tuple[str, ...] = DEFAULT_USER_AGENTS
    locale: str = 'en-US'
    timezone_id: str = 'America/New_York'
    geolocation: Tuple[float, float] = (40.7128, -74.0060)
    block_stylesheets: bool = True

    # Extraction and detection
    description_max_length: int = 200
    block_title_keywords: Tuple[str, ...] = ('robot', 'captcha', 'sorry', 'page not found', 'access denied')
    soft_failure_phrases: Tuple[str, ...] = ('Robot Check',)
    unavailable_marker: str = 'Currently unavailable'

    def __post_init__(self):
        if self.concurrency_limit < 1:
            raise ValueError("concurrency_limit must be at least 1")
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        if self.pool_strategy not in POOL_STRATEGIES:
            raise ValueError(f"pool_strategy must be one of {', '.join(POOL_STRATEGIES)}")
        if not self.user_agents:
            raise ValueError("user_agents must not be empty")

    @property
    def viewport_size(self) -> Dict[str, int]:
        """Viewport in the shape Playwright expects."""
        width, height = self.viewport
        return {'width': width, 'height': height}

    @property
    def geolocation_coords(self) -> Dict[str, float]:
        latitude, longitude = self.geolocation
        return {'latitude': latitude, 'longitude': longitude}

    def with_overrides(self, **overrides) -> 'ScraperConfig':
        """Return a copy with the non-None overrides applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self

    @classmethod
    def from_json(cls, config_file: str) -> 'ScraperConfig':
        """Build a config from defaults overlaid with a JSON file.

        Keys starting with '_' are treated as comments. JSON lists are
        converted to tuples so the result stays hashable and immutable.

        Args:
            config_file: Path to JSON configuration file

        Returns:
            ScraperConfig instance

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file contains unknown keys
        """
        config_path = Path(config_file)
        with open(config_path, 'r', encoding='utf-8') as f:
            raw = json.load(f)

        raw = {k: v for k, v in raw.items() if not k.startswith('_')}

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(raw) - known)
        if unknown:
            raise ValueError(f"Unknown config keys in {config_path}: {', '.join(unknown)}")

        return cls(**{k: _freeze(v) for k, v in raw.items()})


def _freeze(value):
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    return value
