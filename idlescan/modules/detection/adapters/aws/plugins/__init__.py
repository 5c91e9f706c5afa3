from .network import ELBV2Detector, ClassicELBDetector
from .iam import IAMStaleKeysDetector

__all__ = [
    # Network
    "ELBV2Detector",
    "ClassicELBDetector",
    # Identity
    "IAMStaleKeysDetector",
]
