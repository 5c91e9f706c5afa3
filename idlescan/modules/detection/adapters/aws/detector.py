from __future__ import annotations

import asyncio
from contextlib import AsyncExitStack
from typing import Any, Optional

import structlog

from idlescan.modules.detection.domain.metrics import CloudWatchMetricReader
from idlescan.modules.detection.domain.pricing import AWSPriceResolver
from idlescan.modules.detection.domain.registry import registry
from idlescan.modules.detection.domain.rules import DetectionRules
from idlescan.modules.detection.domain.service import ScanReport, ScanService
from idlescan.modules.detection.domain.store import DetectionStore
from idlescan.shared.adapters.aws_utils import client_kwargs, get_boto_session
from idlescan.shared.core.config import get_settings
from idlescan.shared.core.exceptions import ScanCancelledError

# Import plugins to trigger registration
from idlescan.modules.detection.adapters.aws.plugins import IAMStaleKeysDetector

logger = structlog.get_logger()


class AWSScanner:
    """
    Opens the aioboto3 clients for one region, wires the registered
    detectors to them and runs one scan cycle.
    """

    def __init__(
        self,
        *,
        region: str,
        rules: DetectionRules,
        store: DetectionStore,
        session: Any = None,
    ) -> None:
        self.region = region
        self.rules = rules
        self.store = store
        self.session = session or get_boto_session()

    def _client(self, service_name: str, region: Optional[str] = None) -> Any:
        return self.session.client(
            service_name, **client_kwargs(region or self.region)
        )

    async def scan(
        self,
        *,
        include_iam: bool = True,
        iam_threshold_days: Optional[int] = None,
        iam_operator: Optional[str] = None,
    ) -> ScanReport:
        settings = get_settings()
        detector_classes = registry.get_detectors_for_provider("aws")

        async with AsyncExitStack() as stack:
            cloudwatch = await stack.enter_async_context(self._client("cloudwatch"))
            pricing = await stack.enter_async_context(
                self._client("pricing", region=settings.PRICING_REGION)
            )
            metric_reader = CloudWatchMetricReader(cloudwatch)
            price_resolver = AWSPriceResolver(pricing)

            detectors = []
            for kind, detector_cls in detector_classes.items():
                metrics = self.rules.for_kind(kind)
                if not metrics:
                    logger.info("detector_skipped_no_rules", resource_kind=kind, region=self.region)
                    continue
                client = await stack.enter_async_context(self._client(detector_cls.service_name))
                detectors.append(
                    detector_cls(
                        client=client,
                        region=self.region,
                        metrics=metrics,
                        metric_reader=metric_reader,
                        price_resolver=price_resolver,
                        store=self.store,
                        max_concurrency=settings.DETECTOR_MAX_CONCURRENCY,
                        max_pages=settings.INVENTORY_MAX_PAGES,
                    )
                )

            create_all = getattr(self.store, "create_all", None)
            if create_all is not None:
                await create_all()

            service = ScanService(
                detectors,
                region=self.region,
                timeout_seconds=settings.SCAN_TIMEOUT_SECONDS,
                max_concurrent=settings.SCAN_MAX_CONCURRENT_DETECTORS,
            )
            report = await service.run()

            if include_iam:
                iam = await stack.enter_async_context(self._client("iam"))
                stale_detector = IAMStaleKeysDetector(iam, max_pages=settings.INVENTORY_MAX_PAGES)
                threshold = (
                    iam_threshold_days
                    if iam_threshold_days is not None
                    else settings.IAM_KEY_THRESHOLD_DAYS
                )
                try:
                    report.stale_credentials = await asyncio.wait_for(
                        stale_detector.detect(threshold, iam_operator or settings.IAM_KEY_OPERATOR),
                        timeout=settings.SCAN_TIMEOUT_SECONDS,
                    )
                except asyncio.TimeoutError:
                    logger.error("stale_keys_scan_timeout", timeout_seconds=settings.SCAN_TIMEOUT_SECONDS)
                    report.credentials_error = ScanCancelledError(
                        f"IAM scan exceeded {settings.SCAN_TIMEOUT_SECONDS}s"
                    )
                except Exception as exc:
                    logger.error(
                        "stale_keys_scan_failed",
                        error=str(exc),
                        error_type=type(exc).__name__,
                    )
                    report.credentials_error = exc

        return report
