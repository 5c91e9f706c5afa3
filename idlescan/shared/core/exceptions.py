from typing import Optional, Dict, Any


class IdleScanException(Exception):
    """Base exception for all idlescan errors."""
    def __init__(
        self,
        message: str,
        code: str = "internal_error",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}


class AdapterError(IdleScanException):
    """Raised when an external cloud adapter fails."""
    def __init__(self, message: str, code: str = "adapter_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)


class ConfigurationError(IdleScanException):
    """Raised when application configuration is invalid or missing."""
    def __init__(self, message: str, code: str = "config_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)


class PaginationError(AdapterError):
    """Raised when a listing API misbehaves (repeated cursor, page cap)."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="pagination_error", details=details)


class MetricDataError(AdapterError):
    """Raised when a metric window has no usable datapoints."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="metric_data_error", details=details)


class PricingError(AdapterError):
    """Raised when the price catalog yields no usable price."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="pricing_error", details=details)


class UnsupportedOperatorError(IdleScanException):
    """Raised when a constraint uses an operator token we cannot evaluate."""
    def __init__(self, operator: str):
        super().__init__(
            f"Unsupported operator '{operator}'",
            code="unsupported_operator",
            details={"operator": operator},
        )
        self.operator = operator


class ScanCancelledError(IdleScanException):
    """Raised (or reported) when a scan stops before completing."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="scan_cancelled", details=details)
