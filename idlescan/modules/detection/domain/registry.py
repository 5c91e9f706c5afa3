from typing import Callable, TypeVar

import structlog

from idlescan.modules.detection.domain.plugin import ResourceDetector

logger = structlog.get_logger()

DetectorT = TypeVar("DetectorT", bound=type[ResourceDetector])


class DetectorRegistry:
    """In-process catalogue of resource detectors, keyed by provider and kind."""

    def __init__(self) -> None:
        self._detectors: dict[str, dict[str, type[ResourceDetector]]] = {}

    def register(self, provider: str) -> Callable[[DetectorT], DetectorT]:
        def decorator(cls: DetectorT) -> DetectorT:
            kinds = self._detectors.setdefault(provider, {})
            if cls.kind in kinds and kinds[cls.kind] is not cls:
                raise ValueError(f"Detector kind '{cls.kind}' already registered for {provider}")
            kinds[cls.kind] = cls
            logger.debug("detector_registered", provider=provider, kind=cls.kind)
            return cls

        return decorator

    def get_detectors_for_provider(self, provider: str) -> dict[str, type[ResourceDetector]]:
        return dict(self._detectors.get(provider, {}))


registry = DetectorRegistry()
