from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import structlog

from idlescan.modules.detection.domain.findings import DetectedResource, StaleCredential
from idlescan.modules.detection.domain.plugin import ResourceDetector
from idlescan.shared.core.exceptions import ScanCancelledError

logger = structlog.get_logger()


@dataclass
class DetectorOutcome:
    kind: str
    findings: list[DetectedResource] = field(default_factory=list)
    error: Exception | None = None

    @property
    def completed(self) -> bool:
        return self.error is None

    @property
    def cancelled(self) -> bool:
        return isinstance(self.error, ScanCancelledError)


@dataclass
class ScanReport:
    region: str
    started_at: datetime
    finished_at: datetime | None = None
    outcomes: list[DetectorOutcome] = field(default_factory=list)
    stale_credentials: list[StaleCredential] = field(default_factory=list)
    credentials_error: Exception | None = None

    @property
    def completed(self) -> bool:
        return self.credentials_error is None and all(o.completed for o in self.outcomes)

    @property
    def total_monthly_waste(self) -> float:
        total = Decimal("0")
        for outcome in self.outcomes:
            for finding in outcome.findings:
                total += Decimal(str(finding.price_per_month))
        return float(round(total, 2))

    def to_dict(self) -> dict[str, Any]:
        return {
            "region": self.region,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "completed": self.completed,
            "total_monthly_waste": self.total_monthly_waste,
            "detectors": {
                o.kind: {
                    "completed": o.completed,
                    "error": str(o.error) if o.error else None,
                    "findings": [f.to_dict() for f in o.findings],
                }
                for o in self.outcomes
            },
            "stale_credentials": [
                {
                    "principal": c.principal,
                    "key_id": c.key_id,
                    "last_used": c.last_used.isoformat(),
                    "age_days": c.age_days,
                }
                for c in self.stale_credentials
            ],
            "credentials_error": str(self.credentials_error) if self.credentials_error else None,
        }


class ScanService:
    """
    Runs a set of detectors for one region as one scan cycle.

    Detectors run concurrently (bounded), each under its own deadline. A
    detector that fails or times out never hides the others: its outcome
    carries the error, and for a timeout the findings persisted before the
    deadline.
    """

    def __init__(
        self,
        detectors: Sequence[ResourceDetector],
        *,
        region: str,
        timeout_seconds: float = 600.0,
        max_concurrent: int = 4,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self.detectors = list(detectors)
        self.region = region
        self.timeout_seconds = timeout_seconds
        self.max_concurrent = max_concurrent

    async def run(self) -> ScanReport:
        report = ScanReport(region=self.region, started_at=datetime.now(timezone.utc))
        semaphore = asyncio.Semaphore(self.max_concurrent)

        async def bounded(detector: ResourceDetector) -> DetectorOutcome:
            async with semaphore:
                return await self._run_detector(detector)

        report.outcomes = list(await asyncio.gather(*(bounded(d) for d in self.detectors)))
        report.finished_at = datetime.now(timezone.utc)

        logger.info(
            "scan_complete",
            region=self.region,
            completed=report.completed,
            detectors=len(report.outcomes),
            findings=sum(len(o.findings) for o in report.outcomes),
            total_monthly_waste=report.total_monthly_waste,
        )
        return report

    async def _run_detector(self, detector: ResourceDetector) -> DetectorOutcome:
        partial: list[DetectedResource] = []

        async def collect(finding: DetectedResource) -> None:
            partial.append(finding)

        try:
            findings = await asyncio.wait_for(
                detector.detect(on_detected=collect), timeout=self.timeout_seconds
            )
            return DetectorOutcome(kind=detector.kind, findings=findings)
        except asyncio.TimeoutError:
            logger.error(
                "detector_timeout",
                resource_kind=detector.kind,
                region=self.region,
                timeout_seconds=self.timeout_seconds,
                partial_findings=len(partial),
            )
            return DetectorOutcome(
                kind=detector.kind,
                findings=partial,
                error=ScanCancelledError(
                    f"{detector.kind} scan exceeded {self.timeout_seconds}s",
                    details={"resource_kind": detector.kind, "partial_findings": len(partial)},
                ),
            )
        except Exception as exc:
            logger.error(
                "detector_scan_failed",
                resource_kind=detector.kind,
                region=self.region,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return DetectorOutcome(kind=detector.kind, error=exc)
