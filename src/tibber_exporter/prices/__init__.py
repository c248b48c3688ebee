"""Price sources: the fetch side of the exporter."""

from tibber_exporter.prices.provider import PriceSource
from tibber_exporter.prices.tibber import TibberAdapter, TibberPriceSource

__all__ = [
    "PriceSource",
    "TibberAdapter",
    "TibberPriceSource",
]
