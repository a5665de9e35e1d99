#!/usr/bin/env python3
"""
Input descriptors and output records.
"""

from dataclasses import dataclass
from typing import Dict, List


FIELD_NAMES = ('title', 'description', 'price', 'reviews', 'rating')

# Column order of the CSV output; Rating is the optional trailing column.
CSV_HEADER = ['SKU', 'Source', 'Title', 'Description', 'Price', 'Number of Reviews', 'Rating']

TITLE_SENTINEL = 'ERROR'
FAILED_DESCRIPTION = 'FAILED'


@dataclass(frozen=True)
class SKUDescriptor:
    """One item to scrape: a retailer tag plus the retailer's identifier."""

    retailer: str
    sku: str


@dataclass(frozen=True)
class ProductRecord:
    """One output row. Every field is a string; absent values are ''."""

    sku: str
    source: str
    title: str
    description: str = ''
    price: str = ''
    reviews: str = ''
    rating: str = ''

    @classmethod
    def from_fields(cls, descriptor: SKUDescriptor, data: Dict[str, str]) -> 'ProductRecord':
        """Merge a descriptor with an extracted field map.

        An empty title becomes the TITLE_SENTINEL so the record is never
        title-less.
        """
        return cls(
            sku=descriptor.sku,
            source=descriptor.retailer,
            title=data.get('title', '') or TITLE_SENTINEL,
            description=data.get('description', ''),
            price=data.get('price', ''),
            reviews=data.get('reviews', ''),
            rating=data.get('rating', ''),
        )

    @classmethod
    def fallback(cls, descriptor: SKUDescriptor, reason: str) -> 'ProductRecord':
        """Placeholder record for an item that could not be scraped."""
        return cls(
            sku=descriptor.sku,
            source=descriptor.retailer,
            title=reason,
            description=FAILED_DESCRIPTION,
        )

    @property
    def is_fallback(self) -> bool:
        return self.description == FAILED_DESCRIPTION

    def to_row(self) -> List[str]:
        """Values in CSV_HEADER order."""
        return [self.sku, self.source, self.title, self.description,
                self.price, self.reviews, self.rating]
