from .expression import evaluate, SUPPORTED_OPERATORS
from .findings import DetectedResource, StaleCredential
from .metrics import CloudWatchMetricReader
from .plugin import ResourceDetector
from .pricing import AWSPriceResolver, PriceFilterSet, PriceQuote
from .registry import registry as detectors
from .rules import DetectionRules, MetricSpec, load_rules
from .service import ScanService, ScanReport, DetectorOutcome
from .store import DetectionStore, SQLAlchemyDetectionStore

__all__ = [
    "evaluate",
    "SUPPORTED_OPERATORS",
    "DetectedResource",
    "StaleCredential",
    "CloudWatchMetricReader",
    "ResourceDetector",
    "AWSPriceResolver",
    "PriceFilterSet",
    "PriceQuote",
    "detectors",
    "DetectionRules",
    "MetricSpec",
    "load_rules",
    "ScanService",
    "ScanReport",
    "DetectorOutcome",
    "DetectionStore",
    "SQLAlchemyDetectionStore",
]
