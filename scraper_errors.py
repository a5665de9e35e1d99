#!/usr/bin/env python3
"""
Failure taxonomy for a single product scrape.

Every failure carries a human-readable message (used as the fallback
record's title) and a `retryable` flag consulted by the retry wrapper.
"""


class ScrapeError(Exception):
    """Base class for failures while scraping one product."""

    retryable = True

    def fallback_title(self, attempts: int) -> str:
        """Title used on the fallback record once retries are exhausted."""
        return f"Failed after {attempts} attempts: {self}"


# Navigation

class NavigationError(ScrapeError):
    """The product page could not be loaded."""


class PageNotFoundError(NavigationError):
    """The retailer answered 404 for the product URL."""


class HttpStatusError(NavigationError):
    """The retailer answered with an HTTP error status."""

    def __init__(self, status: int):
        super().__init__(f"HTTP error: {status}")
        self.status = status


# Detection

class BotDetectedError(ScrapeError):
    """The page title looks like a block, CAPTCHA or error page."""


class SoftFailureError(ScrapeError):
    """The attempt returned, but the title is a sentinel or block phrase."""


# Timeout

class ContentTimeoutError(ScrapeError):
    """Required product content never became visible."""


# Validation

class ValidationError(ScrapeError):
    """The page loaded but a required field is missing."""


class ProductUnavailableError(ValidationError):
    """The retailer states the product is currently unavailable."""

    def fallback_title(self, attempts: int) -> str:
        return str(self)


class EmptyTitleError(ValidationError):
    """The page loaded but no title could be extracted."""


# Fatal for the item (never retried)

class ContextCreationError(ScrapeError):
    """The browser could not create an isolated session."""

    retryable = False

    def fallback_title(self, attempts: int) -> str:
        return str(self)


class UnknownRetailerError(ScrapeError):
    """No selector set is mapped for the retailer tag."""

    retryable = False

    def __init__(self, retailer: str):
        super().__init__(f"Selectors not mapped for retailer '{retailer}'")
        self.retailer = retailer

    def fallback_title(self, attempts: int) -> str:
        return str(self)
