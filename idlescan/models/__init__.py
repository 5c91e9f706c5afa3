from .detection import DetectedResourceMixin, DetectedELBV2, DetectedELB

__all__ = ["DetectedResourceMixin", "DetectedELBV2", "DetectedELB"]
