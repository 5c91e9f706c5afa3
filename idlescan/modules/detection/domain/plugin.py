from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime, timezone
from typing import Any

import structlog

from idlescan.models.detection import DetectedResourceMixin
from idlescan.modules.detection.domain.expression import evaluate
from idlescan.modules.detection.domain.findings import DetectedResource
from idlescan.modules.detection.domain.metrics import CloudWatchMetricReader
from idlescan.modules.detection.domain.pricing import AWSPriceResolver, PriceFilterSet
from idlescan.modules.detection.domain.rules import MetricSpec
from idlescan.modules.detection.domain.store import DetectionStore
from idlescan.shared.adapters.aws_pagination import Page, walk_pages
from idlescan.shared.core.exceptions import UnsupportedOperatorError

OnDetected = Callable[[DetectedResource], Awaitable[None]]


class ResourceDetector(ABC):
    """
    Generic detection pipeline for one resource kind in one region.

    Subclasses describe how to list, identify, measure, price and tag their
    resources; the pipeline in `detect` stays the same for every kind.
    """

    #: Key into the detection rules document (e.g. ``"elbv2"``).
    kind: str
    #: Boto service the inventory client is created for.
    service_name: str
    #: ORM model the findings of this kind are persisted as.
    record_model: type[DetectedResourceMixin]

    def __init__(
        self,
        *,
        region: str,
        metrics: Sequence[MetricSpec],
        metric_reader: CloudWatchMetricReader,
        price_resolver: AWSPriceResolver,
        store: DetectionStore,
        logger: Any = None,
        max_concurrency: int = 8,
        max_pages: int | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self.region = region
        self.metrics = [spec for spec in metrics if spec.enable]
        self.metric_reader = metric_reader
        self.price_resolver = price_resolver
        self.store = store
        self.max_concurrency = max_concurrency
        self.max_pages = max_pages
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.logger = (logger or structlog.get_logger()).bind(
            resource_kind=self.kind, region=region
        )
        store.ensure_schema(self.record_model)

    # -- hooks -------------------------------------------------------------

    @abstractmethod
    async def list_page(self, cursor: str | None) -> Page[dict[str, Any]]:
        """Fetch one inventory page starting at `cursor` (None for the first)."""
        raise NotImplementedError

    @abstractmethod
    def resource_id(self, descriptor: dict[str, Any]) -> str:
        raise NotImplementedError

    @abstractmethod
    def launch_time(self, descriptor: dict[str, Any]) -> datetime | None:
        raise NotImplementedError

    @abstractmethod
    def namespace_for(self, descriptor: dict[str, Any]) -> str:
        """CloudWatch namespace holding this resource's metrics."""
        raise NotImplementedError

    @abstractmethod
    def metric_dimensions(self, descriptor: dict[str, Any]) -> list[dict[str, str]]:
        """CloudWatch dimensions identifying this resource."""
        raise NotImplementedError

    @abstractmethod
    def pricing_filters(self, descriptor: dict[str, Any]) -> PriceFilterSet:
        raise NotImplementedError

    @abstractmethod
    async def describe_tags(self, descriptor: dict[str, Any]) -> Any:
        """JSON-serializable tag payload for this resource."""
        raise NotImplementedError

    # -- pipeline ----------------------------------------------------------

    async def list_resources(self) -> list[dict[str, Any]]:
        return await walk_pages(
            self.list_page,
            operation_name=f"{self.kind}_list_resources",
            max_pages=self.max_pages,
            log=self.logger,
        )

    async def detect(self, on_detected: OnDetected | None = None) -> list[DetectedResource]:
        """
        Run one detection pass.

        A listing failure raises and nothing is returned or persisted. Every
        other failure (metric, operator, tags, price, save) is logged and only
        affects the resource or rule it happened on. Findings come back in
        listing order, then rule order; `on_detected` sees each one as soon
        as its save has been attempted.
        """
        self.logger.info("detector_scan_started", rules=len(self.metrics))
        descriptors = await self.list_resources()
        now = self._clock()

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def bounded(descriptor: dict[str, Any]) -> list[DetectedResource]:
            async with semaphore:
                return await self._detect_resource(descriptor, now, on_detected)

        per_resource = await asyncio.gather(*(bounded(d) for d in descriptors))
        findings = [finding for group in per_resource for finding in group]

        self.logger.info(
            "detector_scan_complete",
            resources=len(descriptors),
            detected=len(findings),
        )
        return findings

    async def _detect_resource(
        self,
        descriptor: dict[str, Any],
        now: datetime,
        on_detected: OnDetected | None,
    ) -> list[DetectedResource]:
        resource_id = self.resource_id(descriptor)
        log = self.logger.bind(resource_id=resource_id)

        launch_time = self.launch_time(descriptor)
        if launch_time is None:
            log.warning("resource_missing_launch_time")
            return []
        age = now - launch_time

        hourly = await self.price_resolver.resolve_or_zero(
            self.pricing_filters(descriptor), log=log
        )

        namespace = self.namespace_for(descriptor)
        dimensions = self.metric_dimensions(descriptor)
        found: list[DetectedResource] = []

        for spec in self.metrics:
            metric_log = log.bind(metric_name=spec.description)
            try:
                measured = await self.metric_reader.read(
                    namespace, dimensions, spec, log=metric_log
                )
            except Exception as exc:
                metric_log.error(
                    "metric_fetch_failed",
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                continue

            try:
                matched = evaluate(measured, spec.constraint.value, spec.constraint.operator)
            except UnsupportedOperatorError as exc:
                metric_log.warning("metric_rule_skipped", error=str(exc))
                continue

            if not matched:
                continue

            metric_log.info(
                "resource_detected",
                constraint_operator=spec.constraint.operator,
                constraint_value=spec.constraint.value,
                metric_value=measured,
            )

            finding = DetectedResource.build(
                resource_id=resource_id,
                region=self.region,
                metric_name=spec.description,
                launch_time=launch_time,
                price_per_hour=hourly,
                age=age,
                tags=await self._tags_or_empty(descriptor, metric_log),
            )
            found.append(finding)
            try:
                await self._persist(finding, metric_log)
            finally:
                # Reported even if the scan deadline lands mid-save.
                if on_detected is not None:
                    await on_detected(finding)

        return found

    async def _tags_or_empty(self, descriptor: dict[str, Any], log: Any) -> str:
        try:
            return json.dumps(await self.describe_tags(descriptor), default=str)
        except Exception as exc:
            log.warning("tag_fetch_failed", error=str(exc), error_type=type(exc).__name__)
            return "[]"

    async def _persist(self, finding: DetectedResource, log: Any) -> None:
        try:
            await self.store.save(finding.to_record(self.record_model))
        except Exception as exc:
            log.error("detection_persist_failed", error=str(exc), error_type=type(exc).__name__)
