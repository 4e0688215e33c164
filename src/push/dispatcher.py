"""Web Push dispatch to every active subscription.

Each subscription gets exactly one attempt per run:
  pending -> delivered  (2xx)
          -> expired    (404/410, subscription deactivated)
          -> failed     (anything else, including timeouts)
"""

import asyncio
import enum
import json
import logging
import sqlite3
from datetime import date, datetime, time
from typing import Any

import httpx

from src.core.config import PushConfig
from src.core.db import (
    count_tools_since,
    deactivate_subscriptions,
    get_active_subscriptions,
    insert_run_log,
)
from src.core.schemas import NotificationOverride, PushSubscription, PushSummary
from src.push.encryption import encrypt_payload
from src.push.vapid import VapidCredentials, authorization_header

logger = logging.getLogger(__name__)

RUN_LOG_SOURCE = "send-push"
EXPIRED_STATUSES = frozenset({404, 410})


class DeliveryStatus(enum.Enum):
    DELIVERED = "delivered"
    EXPIRED = "expired"
    FAILED = "failed"


def build_payload(
    conn: sqlite3.Connection,
    config: PushConfig,
    override: NotificationOverride | None = None,
    today: date | None = None,
) -> dict[str, str] | None:
    """Notification JSON for today, or None when there is nothing to announce.

    Override fields replace the configured defaults one by one.
    """
    override = override or NotificationOverride()
    day = today or date.today()
    count = count_tools_since(conn, datetime.combine(day, time.min))
    if count == 0 and override.is_empty():
        logger.info("No tools collected today and no override, skipping push")
        return None
    return {
        "title": override.title or config.default_title,
        "body": override.body or config.default_body.format(count=count),
        "url": override.url or config.default_url,
    }


class PushDispatcher:
    """Signs and delivers one payload to all active subscriptions."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        client: httpx.AsyncClient,
        credentials: VapidCredentials,
        config: PushConfig,
    ) -> None:
        self._conn = conn
        self._client = client
        self._credentials = credentials
        self._config = config

    def _body_and_headers(
        self, subscription: PushSubscription, payload: bytes,
    ) -> tuple[bytes, dict[str, str]]:
        headers = {
            "Authorization": authorization_header(
                self._credentials, subscription.endpoint, self._config.token_ttl_hours,
            ),
            "TTL": str(self._config.ttl_seconds),
            "Urgency": self._config.urgency,
        }
        if not self._config.encrypt_payload:
            headers["Content-Type"] = "application/json"
            return payload, headers
        body = encrypt_payload(payload, subscription.p256dh, subscription.auth)
        headers["Content-Type"] = "application/octet-stream"
        headers["Content-Encoding"] = "aes128gcm"
        return body, headers

    async def send(self, subscription: PushSubscription, payload: bytes) -> DeliveryStatus:
        """Deliver to one endpoint. Never raises."""
        try:
            body, headers = self._body_and_headers(subscription, payload)
            response = await self._client.post(
                subscription.endpoint,
                content=body,
                headers=headers,
                timeout=self._config.timeout_seconds,
            )
        except Exception as e:
            logger.warning("Push to subscription %d failed: %r", subscription.id, e)
            return DeliveryStatus.FAILED

        if 200 <= response.status_code < 300:
            return DeliveryStatus.DELIVERED
        if response.status_code in EXPIRED_STATUSES:
            logger.info(
                "Subscription %d expired (%d)", subscription.id, response.status_code,
            )
            return DeliveryStatus.EXPIRED
        logger.warning(
            "Push to subscription %d rejected: %d", subscription.id, response.status_code,
        )
        return DeliveryStatus.FAILED

    async def dispatch(self, payload: dict[str, Any]) -> PushSummary:
        """Send to every active subscription in concurrent groups.

        Expired subscriptions are deactivated in one update afterwards and a
        summary row is appended to the run log.
        """
        subscriptions = get_active_subscriptions(self._conn)
        data = json.dumps(payload, ensure_ascii=False).encode()
        summary = PushSummary(total=len(subscriptions))
        expired_ids: list[int] = []
        size = self._config.batch_size

        for start in range(0, len(subscriptions), size):
            group = subscriptions[start:start + size]
            statuses = await asyncio.gather(*(self.send(s, data) for s in group))
            for subscription, status in zip(group, statuses):
                if status is DeliveryStatus.DELIVERED:
                    summary.sent += 1
                elif status is DeliveryStatus.EXPIRED:
                    summary.expired += 1
                    expired_ids.append(subscription.id)
                else:
                    summary.failed += 1

        deactivate_subscriptions(self._conn, expired_ids)
        insert_run_log(
            self._conn,
            RUN_LOG_SOURCE,
            "partial" if summary.failed else "success",
            tools_found=summary.sent,
            details=summary.model_dump(),
        )
        logger.info(
            "Push: %d sent, %d failed, %d expired of %d",
            summary.sent, summary.failed, summary.expired, summary.total,
        )
        return summary


async def send_daily_push(
    conn: sqlite3.Connection,
    client: httpx.AsyncClient,
    config: PushConfig,
    override: NotificationOverride | None = None,
) -> PushSummary | None:
    """Build today's notification and dispatch it.

    Returns None when push is disabled, keys are missing, or there is
    nothing to announce.
    """
    if not config.enabled:
        logger.info("Push disabled in settings")
        return None
    credentials = VapidCredentials.from_env(config)
    if credentials is None:
        return None
    payload = build_payload(conn, config, override)
    if payload is None:
        return None
    return await PushDispatcher(conn, client, credentials, config).dispatch(payload)
