"""Tibber price source: GraphQL over httpx.

Queries ``priceInfo { today tomorrow }`` for one home of the account the
access token belongs to and maps every hourly quotation to a ``PriceRecord``.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import httpx

from tibber_exporter.core.config import TibberConfig
from tibber_exporter.core.exceptions import FatalError, TransientError
from tibber_exporter.core.models import PriceRecord

logger = logging.getLogger(__name__)

_PRICE_QUERY = """
{
  viewer {
    homes {
      currentSubscription {
        priceInfo {
          today {
            energy
            tax
            currency
            startsAt
          }
          tomorrow {
            energy
            tax
            currency
            startsAt
          }
        }
      }
    }
  }
}
"""

# Days in the order they are emitted.
_DAYS = ("today", "tomorrow")


class TibberAdapter:
    """Transforms a raw Tibber ``priceInfo`` response into PriceRecords.

    Markup and energy-tax components are not part of the Tibber quotation and
    are left at zero.
    """

    def __init__(self, home_index: int = 0) -> None:
        self._home_index = home_index

    def adapt(self, raw_data: Any) -> list[PriceRecord]:
        """Parse a GraphQL response body.

        Parameters
        ----------
        raw_data : dict
            The decoded JSON response.

        Returns
        -------
        list[PriceRecord]
            Today's and tomorrow's prices sorted by window start.

        Raises
        ------
        FatalError
            If the response carries GraphQL errors or does not have the
            expected shape.
        """
        if not isinstance(raw_data, dict):
            raise FatalError(
                "Tibber response is not a JSON object",
                context={"reason": "malformed_response"},
            )

        errors = raw_data.get("errors")
        if errors:
            messages = "; ".join(
                str(e.get("message", e)) if isinstance(e, dict) else str(e)
                for e in errors
            )
            raise FatalError(
                f"Tibber API returned errors: {messages}",
                context={"reason": "graphql_error"},
            )

        price_info = self._price_info(raw_data)

        records: list[PriceRecord] = []
        for day in _DAYS:
            quotes = price_info.get(day) or []
            for quote in quotes:
                records.append(self._to_record(quote, day))
            logger.debug("Parsed %d %s prices", len(quotes), day)

        return sorted(records, key=lambda r: r.window_start)

    def _price_info(self, raw_data: dict) -> dict:
        try:
            homes = raw_data["data"]["viewer"]["homes"]
        except (KeyError, TypeError) as e:
            raise FatalError(
                "Malformed Tibber response: missing data.viewer.homes",
                context={"reason": "malformed_response"},
            ) from e

        if not isinstance(homes, list) or len(homes) <= self._home_index:
            raise FatalError(
                f"Tibber account has no home at index {self._home_index}",
                context={"reason": "missing_home", "home_index": self._home_index},
            )

        subscription = homes[self._home_index].get("currentSubscription")
        if not subscription or not subscription.get("priceInfo"):
            raise FatalError(
                "Tibber home has no active subscription with price info",
                context={"reason": "missing_subscription", "home_index": self._home_index},
            )
        return subscription["priceInfo"]

    @staticmethod
    def _to_record(quote: dict, day: str) -> PriceRecord:
        try:
            return PriceRecord.starting_at(
                window_start=datetime.fromisoformat(quote["startsAt"]),
                market_price=float(quote["energy"]),
                market_price_tax=float(quote["tax"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise FatalError(
                f"Malformed {day} price quotation: {quote!r}",
                context={"reason": "malformed_quotation", "day": day},
            ) from e


class TibberPriceSource:
    """Fetches day-ahead prices from the Tibber API.

    Use via ``async with TibberPriceSource(config) as source:`` or call
    ``close()`` when done.

    Parameters
    ----------
    config : TibberConfig
        Token, endpoint, timeout and home selection.
    adapter : TibberAdapter | None
        Custom adapter instance. Uses one for ``config.home_index`` if None.
    client : httpx.AsyncClient | None
        Pre-built HTTP client (useful for testing).
    """

    def __init__(
        self,
        config: TibberConfig,
        adapter: TibberAdapter | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._adapter = adapter or TibberAdapter(home_index=config.home_index)
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(config.request_timeout),
        )

    async def __aenter__(self) -> TibberPriceSource:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def fetch_spot_prices(self) -> list[PriceRecord]:
        """Fetch today's and tomorrow's hourly prices.

        Raises:
            TransientError: Connection failure, timeout, HTTP 429 or 5xx.
            FatalError: Any other HTTP error or an unusable response body.
        """
        raw = await self._post_query(_PRICE_QUERY)
        records = self._adapter.adapt(raw)
        logger.info("Fetched %d spot prices from Tibber", len(records))
        return records

    async def _post_query(self, query: str) -> Any:
        url = self._config.api_url
        logger.debug("request body:\n%s", query)

        try:
            response = await self._client.post(
                url,
                json={"query": query},
                headers={"Authorization": f"Bearer {self._config.access_token}"},
            )
        except httpx.TransportError as e:
            raise TransientError(
                f"Request to Tibber failed: {e}",
                context={"url": url, "error": str(e)},
            ) from e

        status = response.status_code
        logger.debug("response status: %d", status)

        if status == 429 or status >= 500:
            raise TransientError(
                f"Tibber returned HTTP {status}",
                context={"url": url, "status_code": status},
            )
        if status != 200:
            raise FatalError(
                f"Tibber returned HTTP {status}",
                context={
                    "url": url,
                    "status_code": status,
                    "response_body": response.text[:200],
                },
            )

        try:
            return response.json()
        except ValueError as e:
            raise FatalError(
                "Tibber response is not valid JSON",
                context={"url": url, "reason": "invalid_json"},
            ) from e
