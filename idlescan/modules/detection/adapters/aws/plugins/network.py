from __future__ import annotations

from datetime import datetime
from typing import Any

from idlescan.models.detection import DetectedELB, DetectedELBV2
from idlescan.modules.detection.domain.plugin import ResourceDetector
from idlescan.modules.detection.domain.pricing import PriceFilterSet
from idlescan.modules.detection.domain.registry import registry
from idlescan.shared.adapters.aws_pagination import Page, marker_page
from idlescan.shared.core.timeout import call_with_timeout

_ELBV2_ARN_MARKER = "loadbalancer/"

# Per load balancer type: CloudWatch namespace and price-list product family.
_ELBV2_TYPES = {
    "application": ("AWS/ApplicationELB", "Load Balancer-Application"),
    "network": ("AWS/NetworkELB", "Load Balancer-Network"),
    "gateway": ("AWS/GatewayELB", "Load Balancer-Gateway"),
}


def elbv2_dimension_value(load_balancer_arn: str) -> str:
    """
    CloudWatch's ``LoadBalancer`` dimension for an ELBv2 ARN.

    ``arn:aws:elasticloadbalancing:...:loadbalancer/app/web/50dc6c495c0c9188``
    becomes ``app/web/50dc6c495c0c9188``.
    """
    _, sep, suffix = load_balancer_arn.rpartition(_ELBV2_ARN_MARKER)
    return suffix if sep else load_balancer_arn


class _LoadBalancerDetector(ResourceDetector):
    """Shared wiring for the elb and elbv2 APIs."""

    items_key: str

    def __init__(self, client: Any, **kwargs: Any) -> None:
        self.client = client
        super().__init__(**kwargs)

    def launch_time(self, descriptor: dict[str, Any]) -> datetime | None:
        return descriptor.get("CreatedTime")

    async def list_page(self, cursor: str | None) -> Page[dict[str, Any]]:
        kwargs = {"Marker": cursor} if cursor else {}
        response = await call_with_timeout(
            f"{self.kind}_describe_load_balancers",
            self.client.describe_load_balancers,
            **kwargs,
        )
        return marker_page(response, self.items_key)


@registry.register("aws")
class ELBV2Detector(_LoadBalancerDetector):
    """Application, network and gateway load balancers."""

    kind = "elbv2"
    service_name = "elbv2"
    record_model = DetectedELBV2
    items_key = "LoadBalancers"

    def resource_id(self, descriptor: dict[str, Any]) -> str:
        return descriptor["LoadBalancerName"]

    def _type(self, descriptor: dict[str, Any]) -> str:
        lb_type = descriptor.get("Type", "application")
        return lb_type if lb_type in _ELBV2_TYPES else "application"

    def namespace_for(self, descriptor: dict[str, Any]) -> str:
        return _ELBV2_TYPES[self._type(descriptor)][0]

    def metric_dimensions(self, descriptor: dict[str, Any]) -> list[dict[str, str]]:
        return [
            {
                "Name": "LoadBalancer",
                "Value": elbv2_dimension_value(descriptor["LoadBalancerArn"]),
            }
        ]

    def pricing_filters(self, descriptor: dict[str, Any]) -> PriceFilterSet:
        product_family = _ELBV2_TYPES[self._type(descriptor)][1]
        return PriceFilterSet(
            service_code="AmazonEC2",
            terms=(
                ("usagetype", "LoadBalancerUsage"),
                ("productFamily", product_family),
                ("TermType", "OnDemand"),
                ("group", "ELB:Balancer"),
            ),
        )

    async def describe_tags(self, descriptor: dict[str, Any]) -> Any:
        response = await call_with_timeout(
            "elbv2_describe_tags",
            self.client.describe_tags,
            ResourceArns=[descriptor["LoadBalancerArn"]],
        )
        return response.get("TagDescriptions", [])


@registry.register("aws")
class ClassicELBDetector(_LoadBalancerDetector):
    """Classic (previous generation) load balancers."""

    kind = "elb"
    service_name = "elb"
    record_model = DetectedELB
    items_key = "LoadBalancerDescriptions"

    def resource_id(self, descriptor: dict[str, Any]) -> str:
        return descriptor["LoadBalancerName"]

    def namespace_for(self, descriptor: dict[str, Any]) -> str:
        return "AWS/ELB"

    def metric_dimensions(self, descriptor: dict[str, Any]) -> list[dict[str, str]]:
        return [{"Name": "LoadBalancerName", "Value": descriptor["LoadBalancerName"]}]

    def pricing_filters(self, descriptor: dict[str, Any]) -> PriceFilterSet:
        return PriceFilterSet(
            service_code="AmazonEC2",
            terms=(
                ("usagetype", "LoadBalancerUsage"),
                ("productFamily", "Load Balancer"),
                ("TermType", "OnDemand"),
            ),
        )

    async def describe_tags(self, descriptor: dict[str, Any]) -> Any:
        response = await call_with_timeout(
            "elb_describe_tags",
            self.client.describe_tags,
            LoadBalancerNames=[descriptor["LoadBalancerName"]],
        )
        return response.get("TagDescriptions", [])
