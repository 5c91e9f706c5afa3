from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from idlescan.models.detection import DetectedELB
from idlescan.modules.detection.adapters.aws.plugins.network import ClassicELBDetector
from idlescan.modules.detection.domain.metrics import CloudWatchMetricReader
from idlescan.modules.detection.domain.pricing import AWSPriceResolver

from tests.utils import FIXED_NOW, client_error, cloudwatch_client, marker_listing, pricing_client


def _lb(name, hours_old=48):
    return {
        "LoadBalancerName": name,
        "DNSName": f"{name}-1234.us-west-2.elb.amazonaws.com",
        "CreatedTime": FIXED_NOW - timedelta(hours=hours_old),
    }


def _detector(pages, store, cloudwatch, make_metric, pricing=None):
    client = MagicMock()
    client.describe_load_balancers = marker_listing("LoadBalancerDescriptions", pages)
    client.describe_tags = AsyncMock(
        return_value={"TagDescriptions": [{"LoadBalancerName": "legacy", "Tags": []}]}
    )
    detector = ClassicELBDetector(
        client,
        region="us-west-2",
        metrics=[make_metric()],
        metric_reader=CloudWatchMetricReader(cloudwatch, clock=lambda: FIXED_NOW),
        price_resolver=AWSPriceResolver(pricing or pricing_client("0.025")),
        store=store,
        clock=lambda: FIXED_NOW,
    )
    return detector, client


@pytest.mark.asyncio
async def test_idle_classic_load_balancer_detected(store, make_metric):
    cloudwatch = cloudwatch_client({"legacy": 0, "active": 57})
    detector, client = _detector([[_lb("legacy"), _lb("active")]], store, cloudwatch, make_metric)

    [finding] = await detector.detect()

    assert finding.resource_id == "legacy"
    assert finding.region == "us-west-2"
    assert finding.price_per_month == pytest.approx(18.0)
    assert finding.total_spend == pytest.approx(1.2)
    client.describe_tags.assert_awaited_once_with(LoadBalancerNames=["legacy"])

    kwargs = cloudwatch.get_metric_statistics.await_args_list[0].kwargs
    assert kwargs["Namespace"] == "AWS/ELB"
    assert kwargs["Dimensions"] == [{"Name": "LoadBalancerName", "Value": "legacy"}]

    [record] = store.saved
    assert isinstance(record, DetectedELB)
    assert record.__tablename__ == "aws_elb"


@pytest.mark.asyncio
async def test_classic_pricing_filters(store, make_metric):
    pricing = pricing_client("0.025")
    detector, _ = _detector(
        [[_lb("legacy")]], store, cloudwatch_client({"legacy": 0}), make_metric, pricing=pricing
    )

    await detector.detect()

    request = pricing.get_products.await_args.kwargs
    assert request["ServiceCode"] == "AmazonEC2"
    assert {f["Field"]: f["Value"] for f in request["Filters"]} == {
        "usagetype": "LoadBalancerUsage",
        "productFamily": "Load Balancer",
        "TermType": "OnDemand",
    }


@pytest.mark.asyncio
async def test_paginates_through_next_marker(store, make_metric):
    pages = [[_lb("one")], [_lb("two")]]
    detector, client = _detector(
        pages, store, cloudwatch_client({"one": 0, "two": 0}), make_metric
    )

    findings = await detector.detect()

    assert [f.resource_id for f in findings] == ["one", "two"]
    assert client.describe_load_balancers.await_args_list[0].kwargs == {}


@pytest.mark.asyncio
async def test_listing_error_propagates(store, make_metric):
    detector, client = _detector([[]], store, cloudwatch_client({}), make_metric)
    client.describe_load_balancers = AsyncMock(side_effect=client_error("Throttling"))

    with pytest.raises(Exception, match="Throttling"):
        await detector.detect()
    assert store.saved == []
