from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable

import structlog

from idlescan.modules.detection.domain.rules import MetricSpec
from idlescan.shared.core.exceptions import MetricDataError
from idlescan.shared.core.timeout import call_with_timeout

logger = structlog.get_logger()


def _average(values: list[float]) -> float:
    return sum(values) / len(values)


# How datapoints of one window collapse into a single sample. Each datapoint
# already carries the statistic for its own period.
_REDUCERS: dict[str, Callable[[list[float]], float]] = {
    "Average": _average,
    "Sum": sum,
    "Minimum": min,
    "Maximum": max,
    "SampleCount": sum,
}


def reduce_datapoints(datapoints: list[dict[str, Any]], statistic: str) -> float:
    """Reduce CloudWatch datapoints to one scalar using `statistic`."""
    values = [float(dp[statistic]) for dp in datapoints if statistic in dp]
    if not values:
        raise MetricDataError(
            f"No {statistic} datapoints in window",
            details={"statistic": statistic},
        )
    return float(_REDUCERS[statistic](values))


class CloudWatchMetricReader:
    """
    Fetches one metric window for one resource and reduces it to a scalar.
    """

    def __init__(self, client: Any, clock: Callable[[], datetime] | None = None):
        self.client = client
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def read(
        self,
        namespace: str,
        dimensions: list[dict[str, str]],
        spec: MetricSpec,
        log: Any = None,
    ) -> float:
        end_time = self._clock()
        start_time = end_time - spec.start_time

        response = await call_with_timeout(
            "cloudwatch_get_metric_statistics",
            self.client.get_metric_statistics,
            Namespace=namespace,
            MetricName=spec.description,
            Dimensions=dimensions,
            StartTime=start_time,
            EndTime=end_time,
            Period=spec.period_seconds,
            Statistics=[spec.statistic],
        )

        datapoints = response.get("Datapoints", [])
        try:
            value = reduce_datapoints(datapoints, spec.statistic)
        except MetricDataError as exc:
            exc.details.update(
                {
                    "namespace": namespace,
                    "metric_name": spec.description,
                    "dimensions": dimensions,
                }
            )
            raise

        (log or logger).debug(
            "cloudwatch_metric_read",
            namespace=namespace,
            metric_name=spec.description,
            statistic=spec.statistic,
            datapoints=len(datapoints),
            value=value,
        )
        return value
