from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, TypeVar

from idlescan.models.detection import DetectedResourceMixin
from idlescan.modules.detection.domain.pricing import PriceQuote

RecordT = TypeVar("RecordT", bound=DetectedResourceMixin)


@dataclass(frozen=True)
class DetectedResource:
    """One resource failing one metric's constraint, priced."""

    resource_id: str
    region: str
    metric_name: str
    launch_time: datetime
    price_per_hour: float
    price_per_month: float
    total_spend: float
    tags: str = "[]"

    @classmethod
    def build(
        cls,
        *,
        resource_id: str,
        region: str,
        metric_name: str,
        launch_time: datetime,
        price_per_hour: float,
        age: timedelta,
        tags: str = "[]",
    ) -> "DetectedResource":
        """The only constructor used by detectors: projections derive from the hourly price."""
        quote = PriceQuote(hourly=price_per_hour)
        return cls(
            resource_id=resource_id,
            region=region,
            metric_name=metric_name,
            launch_time=launch_time,
            price_per_hour=quote.hourly,
            price_per_month=quote.monthly,
            total_spend=quote.total(age),
            tags=tags,
        )

    def to_record(self, model: type[RecordT]) -> RecordT:
        return model(
            resource_id=self.resource_id,
            region=self.region,
            metric=self.metric_name,
            launch_time=self.launch_time,
            price_per_hour=self.price_per_hour,
            price_per_month=self.price_per_month,
            total_spend_price=self.total_spend,
            tags=self.tags,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "resource_id": self.resource_id,
            "region": self.region,
            "metric_name": self.metric_name,
            "launch_time": self.launch_time.isoformat(),
            "price_per_hour": self.price_per_hour,
            "price_per_month": self.price_per_month,
            "total_spend": self.total_spend,
            "tags": self.tags,
        }


@dataclass(frozen=True)
class StaleCredential:
    principal: str
    key_id: str
    last_used: datetime
    age_days: int
