import asyncio
from datetime import timedelta

import pytest

from idlescan.modules.detection.domain.findings import DetectedResource, StaleCredential
from idlescan.modules.detection.domain.service import ScanReport, ScanService
from idlescan.shared.core.exceptions import ScanCancelledError

from tests.utils import FIXED_NOW


def _finding(resource_id, hourly=0.05):
    return DetectedResource.build(
        resource_id=resource_id,
        region="us-east-1",
        metric_name="RequestCount",
        launch_time=FIXED_NOW - timedelta(hours=10),
        price_per_hour=hourly,
        age=timedelta(hours=10),
    )


class StaticDetector:
    def __init__(self, kind, findings):
        self.kind = kind
        self.findings = findings

    async def detect(self, on_detected=None):
        for finding in self.findings:
            if on_detected is not None:
                await on_detected(finding)
        return list(self.findings)


class FailingDetector:
    kind = "elb"

    async def detect(self, on_detected=None):
        raise RuntimeError("DescribeLoadBalancers denied")


class HangingDetector:
    """Reports one finding, then never finishes."""

    kind = "elbv2"

    def __init__(self):
        self.cancelled = False

    async def detect(self, on_detected=None):
        await on_detected(_finding("early"))
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise


@pytest.mark.asyncio
async def test_all_detectors_complete():
    service = ScanService(
        [StaticDetector("elbv2", [_finding("a")]), StaticDetector("elb", [_finding("b")])],
        region="us-east-1",
    )

    report = await service.run()

    assert report.completed
    assert [o.kind for o in report.outcomes] == ["elbv2", "elb"]
    assert report.total_monthly_waste == 72.0
    assert report.finished_at >= report.started_at


@pytest.mark.asyncio
async def test_failure_is_isolated_to_its_detector():
    service = ScanService(
        [StaticDetector("elbv2", [_finding("a")]), FailingDetector()],
        region="us-east-1",
    )

    report = await service.run()

    ok, failed = report.outcomes
    assert ok.completed and [f.resource_id for f in ok.findings] == ["a"]
    assert not failed.completed and not failed.cancelled
    assert "denied" in str(failed.error)
    assert failed.findings == []
    assert not report.completed


@pytest.mark.asyncio
async def test_timeout_keeps_partial_findings_and_cancels():
    hanging = HangingDetector()
    service = ScanService(
        [hanging, StaticDetector("elb", [_finding("b")])],
        region="us-east-1",
        timeout_seconds=0.05,
    )

    report = await service.run()

    timed_out, ok = report.outcomes
    assert timed_out.cancelled
    assert isinstance(timed_out.error, ScanCancelledError)
    assert timed_out.error.code == "scan_cancelled"
    assert [f.resource_id for f in timed_out.findings] == ["early"]
    assert hanging.cancelled
    assert ok.completed
    assert not report.completed


@pytest.mark.asyncio
async def test_concurrency_is_bounded():
    running = 0
    peak = 0

    class SlowDetector:
        def __init__(self, kind):
            self.kind = kind

        async def detect(self, on_detected=None):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1
            return []

    service = ScanService(
        [SlowDetector(f"k{i}") for i in range(6)], region="us-east-1", max_concurrent=2
    )

    await service.run()

    assert peak == 2


def test_invalid_concurrency():
    with pytest.raises(ValueError):
        ScanService([], region="us-east-1", max_concurrent=0)


def test_report_serializes_findings_and_credentials():
    report = ScanReport(region="eu-west-1", started_at=FIXED_NOW, finished_at=FIXED_NOW)
    report.stale_credentials = [
        StaleCredential(principal="ci", key_id="AKIACI", last_used=FIXED_NOW, age_days=120)
    ]

    data = report.to_dict()

    assert data["region"] == "eu-west-1"
    assert data["completed"] is True
    assert data["detectors"] == {}
    assert data["stale_credentials"][0]["key_id"] == "AKIACI"
    assert data["credentials_error"] is None


def test_credentials_error_marks_report_incomplete():
    report = ScanReport(region="us-east-1", started_at=FIXED_NOW)
    report.credentials_error = ScanCancelledError("IAM scan exceeded 1s")

    assert not report.completed
    assert report.total_monthly_waste == 0.0
