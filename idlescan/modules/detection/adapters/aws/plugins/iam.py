from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable

import structlog

from idlescan.modules.detection.domain.expression import evaluate, parse_operator
from idlescan.modules.detection.domain.findings import StaleCredential
from idlescan.shared.adapters.aws_pagination import Page, walk_pages
from idlescan.shared.core.timeout import call_with_timeout


def _iam_page(response: dict[str, Any], items_key: str) -> Page[dict[str, Any]]:
    # IAM signals more pages with IsTruncated + Marker rather than NextMarker.
    next_cursor = response.get("Marker") if response.get("IsTruncated") else None
    return Page(items=list(response.get(items_key, [])), next_cursor=next_cursor)


class IAMStaleKeysDetector:
    """
    Flags IAM access keys whose last use is older than a threshold.

    IAM is global, so there is no region and no pricing; findings are
    returned to the caller, not persisted.
    """

    kind = "iam_access_keys"

    def __init__(
        self,
        client: Any,
        *,
        logger: Any = None,
        max_pages: int | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.client = client
        self.max_pages = max_pages
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.logger = (logger or structlog.get_logger()).bind(resource_kind=self.kind)

    async def list_users(self) -> list[dict[str, Any]]:
        async def fetch(cursor: str | None) -> Page[dict[str, Any]]:
            kwargs = {"Marker": cursor} if cursor else {}
            response = await call_with_timeout("iam_list_users", self.client.list_users, **kwargs)
            return _iam_page(response, "Users")

        return await walk_pages(
            fetch, operation_name="iam_list_users", max_pages=self.max_pages, log=self.logger
        )

    async def list_access_keys(self, user_name: str) -> list[dict[str, Any]]:
        async def fetch(cursor: str | None) -> Page[dict[str, Any]]:
            kwargs: dict[str, Any] = {"UserName": user_name}
            if cursor:
                kwargs["Marker"] = cursor
            response = await call_with_timeout(
                "iam_list_access_keys", self.client.list_access_keys, **kwargs
            )
            return _iam_page(response, "AccessKeyMetadata")

        return await walk_pages(
            fetch,
            operation_name="iam_list_access_keys",
            max_pages=self.max_pages,
            log=self.logger.bind(principal=user_name),
        )

    async def last_used(self, key: dict[str, Any]) -> datetime | None:
        """Last-used timestamp, falling back to creation for never-used keys."""
        response = await call_with_timeout(
            "iam_get_access_key_last_used",
            self.client.get_access_key_last_used,
            AccessKeyId=key["AccessKeyId"],
        )
        last_used = (response.get("AccessKeyLastUsed") or {}).get("LastUsedDate")
        return last_used or key.get("CreateDate")

    async def detect(self, threshold_days: int, operator: str) -> list[StaleCredential]:
        """
        Access keys whose age in days since last use satisfies
        ``age <operator> threshold_days``.

        Order follows user listing order, then key order. A user listing
        failure raises; a key listing or last-used failure only skips the
        affected user or key.
        """
        parse_operator(operator)
        self.logger.info("stale_keys_scan_started", threshold_days=threshold_days, operator=operator)

        users = await self.list_users()
        now = self._clock()
        stale: list[StaleCredential] = []
        seen: set[str] = set()

        for user in users:
            user_name = user["UserName"]
            try:
                keys = await self.list_access_keys(user_name)
            except Exception as exc:
                self.logger.error(
                    "access_keys_list_failed",
                    principal=user_name,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                continue

            for key in keys:
                key_id = key["AccessKeyId"]
                if key_id in seen:
                    continue
                seen.add(key_id)
                try:
                    last_used = await self.last_used(key)
                except Exception as exc:
                    self.logger.error(
                        "access_key_last_used_failed",
                        principal=user_name,
                        key_id=key_id,
                        error=str(exc),
                        error_type=type(exc).__name__,
                    )
                    continue
                if last_used is None:
                    self.logger.warning("access_key_without_activity", principal=user_name, key_id=key_id)
                    continue

                age_days = (now - last_used).days
                if evaluate(age_days, threshold_days, operator):
                    self.logger.info(
                        "stale_access_key_detected",
                        principal=user_name,
                        key_id=key_id,
                        age_days=age_days,
                    )
                    stale.append(
                        StaleCredential(
                            principal=user_name,
                            key_id=key_id,
                            last_used=last_used,
                            age_days=age_days,
                        )
                    )

        self.logger.info("stale_keys_scan_complete", users=len(users), detected=len(stale))
        return stale
