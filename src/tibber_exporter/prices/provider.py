"""Price source protocol: the interface the exporter fetches prices through.

Any pricing API can feed the exporter by implementing ``PriceSource``; the
exporter never sees transport or response formats, only ``PriceRecord``s.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from tibber_exporter.core.models import PriceRecord


@runtime_checkable
class PriceSource(Protocol):
    """Fetches the current day-ahead price curve.

    Implementations raise ``TransientError`` for failures worth retrying and
    ``FatalError`` for everything else.
    """

    async def fetch_spot_prices(self) -> list[PriceRecord]:
        """Return today's prices followed by tomorrow's.

        Returns
        -------
        list[PriceRecord]
            Records without ``id``/``source``, in non-decreasing window-start
            order. Empty when the source has nothing published.
        """
        ...

    async def close(self) -> None: ...
