"""
Signal generation.

This module provides:
- PriceAggregator: Combines spot streams into one price per asset
- ReferenceResolver: Resolves and caches each market's anchor price
- LagStrategy: Detects markets lagging the spot move since the anchor
"""
from .aggregator import PriceAggregator
from .reference import ReferenceResolver
from .lag import LagStrategy

__all__ = [
    "PriceAggregator",
    "ReferenceResolver",
    "LagStrategy",
]
