"""
Timeout helpers for cloud API calls.

Every call the detection engine makes to AWS goes through `call_with_timeout`
so a hung endpoint can never stall a scan indefinitely.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog

from idlescan.shared.core.config import get_settings
from idlescan.shared.core.exceptions import AdapterError

logger = structlog.get_logger()

T = TypeVar("T")


class TimeoutManager:
    """Manages timeouts for external operations."""

    def __init__(self, operation_type: str = "cloud_api", timeout_seconds: float | None = None):
        self.operation_type = operation_type
        if timeout_seconds is None:
            timeout_seconds = get_settings().CLOUD_API_TIMEOUT_SECONDS
        self.timeout_seconds = timeout_seconds

    async def execute_with_timeout(
        self,
        coro: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Execute a coroutine with timeout handling."""
        start_time = time.perf_counter()

        try:
            return await asyncio.wait_for(
                coro(*args, **kwargs), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            execution_time = time.perf_counter() - start_time
            logger.warning(
                "operation_timed_out",
                operation_type=self.operation_type,
                execution_time_seconds=round(execution_time, 3),
                timeout_seconds=self.timeout_seconds,
            )

            raise AdapterError(
                f"Operation timed out after {self.timeout_seconds} seconds",
                code="timeout_error",
                details={
                    "operation_type": self.operation_type,
                    "timeout_seconds": self.timeout_seconds,
                    "execution_time_seconds": round(execution_time, 3),
                },
            )


async def call_with_timeout(
    operation: str,
    func: Callable[..., Awaitable[T]],
    *args: Any,
    timeout_seconds: float | None = None,
    **kwargs: Any,
) -> T:
    """Shorthand for a one-off `TimeoutManager` call."""
    manager = TimeoutManager(operation, timeout_seconds=timeout_seconds)
    return await manager.execute_with_timeout(func, *args, **kwargs)
