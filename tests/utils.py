from datetime import datetime, timezone
from typing import Any, Optional
from unittest.mock import AsyncMock, MagicMock

from botocore.exceptions import ClientError

FIXED_NOW = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


class RecordingStore:
    """DetectionStore double that keeps saved records in memory."""

    def __init__(self, fail_on: Optional[set[str]] = None):
        self.schemas: list[type] = []
        self.saved: list = []
        self.fail_on = fail_on or set()

    def ensure_schema(self, model: type) -> None:
        if model not in self.schemas:
            self.schemas.append(model)

    async def save(self, record) -> None:
        if record.resource_id in self.fail_on:
            raise RuntimeError(f"write rejected for {record.resource_id}")
        self.saved.append(record)


def client_error(code: str = "Throttling", operation: str = "Operation") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


def price_list_entry(usd: str) -> str:
    """One Price List API product, JSON encoded the way the API returns it."""
    import json

    return json.dumps(
        {
            "product": {"productFamily": "Load Balancer-Application"},
            "terms": {
                "OnDemand": {
                    "SKU.JRTCKXETXF": {
                        "priceDimensions": {
                            "SKU.JRTCKXETXF.6YS6EN2CT7": {
                                "unit": "Hrs",
                                "pricePerUnit": {"USD": usd},
                            }
                        }
                    }
                }
            },
        }
    )


def pricing_client(usd: Optional[str] = "0.0225", error: Any = None) -> MagicMock:
    client = MagicMock()
    if error is not None:
        client.get_products = AsyncMock(side_effect=error)
    else:
        price_list = [price_list_entry(usd)] if usd is not None else []
        client.get_products = AsyncMock(return_value={"PriceList": price_list})
    return client


def cloudwatch_client(values: dict[str, Any], statistic: str = "Sum") -> MagicMock:
    """
    CloudWatch double keyed by the first dimension value.

    A value that is an exception is raised; None returns no datapoints.
    """

    async def get_metric_statistics(**kwargs):
        key = kwargs["Dimensions"][0]["Value"]
        value = values.get(key)
        if isinstance(value, Exception):
            raise value
        if value is None:
            return {"Datapoints": []}
        return {"Datapoints": [{statistic: float(value), "Unit": "Count"}]}

    client = MagicMock()
    client.get_metric_statistics = AsyncMock(side_effect=get_metric_statistics)
    return client


def marker_listing(items_key: str, pages: list[list[dict]]) -> AsyncMock:
    """describe_load_balancers double serving `pages` through NextMarker."""

    async def describe_load_balancers(**kwargs):
        index = int(kwargs.get("Marker", 0))
        response: dict[str, Any] = {items_key: pages[index]}
        if index + 1 < len(pages):
            response["NextMarker"] = str(index + 1)
        return response

    return AsyncMock(side_effect=describe_load_balancers)
