"""
Price resolution against the AWS Price List API.

Prices are resolved per resource class, not per instance, and cached for the
lifetime of the resolver. A resolver is built per scan, and the catalog
changes at most daily, so one lookup per filter set is enough.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

import structlog

from idlescan.shared.core.constants import HOURS_PER_MONTH
from idlescan.shared.core.exceptions import PricingError
from idlescan.shared.core.timeout import call_with_timeout

logger = structlog.get_logger()


@dataclass(frozen=True)
class PriceFilterSet:
    """Exact-match filters selecting one SKU from the catalog."""

    service_code: str
    terms: tuple[tuple[str, str], ...] = field(default_factory=tuple)

    def to_request(self) -> dict[str, Any]:
        return {
            "ServiceCode": self.service_code,
            "Filters": [
                {"Type": "TERM_MATCH", "Field": name, "Value": value}
                for name, value in self.terms
            ],
        }


@dataclass(frozen=True)
class PriceQuote:
    hourly: float

    @property
    def monthly(self) -> float:
        return self.hourly * HOURS_PER_MONTH

    def total(self, age: timedelta) -> float:
        return self.hourly * (age.total_seconds() / 3600)


def first_on_demand_price(price_list: list[Any]) -> float:
    """
    Return the first OnDemand USD unit price found in a Price List response.

    Entries arrive as JSON strings; each one holds
    ``terms.OnDemand.<offer>.priceDimensions.<rate>.pricePerUnit.USD``.
    """
    for raw in price_list:
        product = json.loads(raw) if isinstance(raw, str) else raw
        on_demand = product.get("terms", {}).get("OnDemand", {})
        for offer in on_demand.values():
            for dimension in offer.get("priceDimensions", {}).values():
                usd = dimension.get("pricePerUnit", {}).get("USD")
                if usd is not None:
                    return float(usd)
    raise PricingError("No OnDemand USD price in price list")


def _consume_outcome(lookup: asyncio.Future[float]) -> None:
    # Marks a failed lookup as retrieved even when every waiter was cancelled.
    if not lookup.cancelled():
        lookup.exception()


class AWSPriceResolver:
    """
    Resolves hourly prices, one catalog request per filter set per scan.

    Concurrent callers asking for the same filter set share one in-flight
    lookup, and its outcome, success or failure, is kept for the resolver's
    lifetime. A slow or failing catalog therefore costs one timeout per
    filter set, not one per resource.
    """

    def __init__(self, client: Any, timeout_seconds: float | None = None):
        self.client = client
        self.timeout_seconds = timeout_seconds
        self._lookups: dict[PriceFilterSet, asyncio.Future[float]] = {}

    async def resolve(self, filters: PriceFilterSet) -> float:
        """Hourly price for `filters`. Raises on any catalog failure."""
        lookup = self._lookups.get(filters)
        if lookup is None:
            lookup = asyncio.ensure_future(self._fetch(filters))
            lookup.add_done_callback(_consume_outcome)
            self._lookups[filters] = lookup
        # A caller hitting its own deadline must not cancel the shared lookup.
        return await asyncio.shield(lookup)

    async def _fetch(self, filters: PriceFilterSet) -> float:
        response = await call_with_timeout(
            "pricing_get_products",
            self.client.get_products,
            timeout_seconds=self.timeout_seconds,
            **filters.to_request(),
        )
        price_list = response.get("PriceList", [])
        if not price_list:
            raise PricingError(
                "Price catalog returned no products",
                details={"service_code": filters.service_code},
            )
        try:
            hourly = first_on_demand_price(price_list)
        except (ValueError, AttributeError) as exc:
            raise PricingError(
                "Malformed price list entry",
                details={"service_code": filters.service_code, "error": str(exc)},
            ) from exc

        logger.debug(
            "price_resolved",
            service_code=filters.service_code,
            terms=dict(filters.terms),
            hourly=hourly,
        )
        return hourly

    async def resolve_or_zero(
        self, filters: PriceFilterSet, *, log: Any = None, **log_context: Any
    ) -> float:
        """
        Best-effort price: any failure degrades to 0.0 so a missing price
        never hides an underutilized resource.

        `log` is the caller's bound logger, so the failure carries its
        region and resource context.
        """
        try:
            return await self.resolve(filters)
        except Exception as exc:
            (log or logger).warning(
                "price_resolution_failed",
                service_code=filters.service_code,
                error=str(exc),
                error_type=type(exc).__name__,
                **log_context,
            )
            return 0.0
