"""Audit webhook client with exponential backoff retry logic"""

import asyncio
import logging
from dataclasses import asdict, replace
from typing import Any, Dict, Optional

import httpx
from fastapi import BackgroundTasks

from koperasi_ledger.config import settings
from koperasi_ledger.domain.models import AuditEvent
from koperasi_ledger.infrastructure.observability.metrics import audit_failure_counter, audit_latency_histogram

logger = logging.getLogger(__name__)


def audit_payload(event: AuditEvent) -> Dict[str, Any]:
    payload = asdict(event)
    payload["event"] = "AUDIT"
    return payload


class AuditClient:
    """Client for sending audit events to the audit log service"""

    def __init__(self, webhook_url: str | None = None):
        self.webhook_url = webhook_url or settings.audit_webhook_url
        self.max_retries = settings.audit_max_retries
        self.backoff_base = settings.audit_backoff_base
        self.timeout = settings.http_timeout_seconds

    async def send_event(self, payload: Dict[str, Any]) -> bool:
        """
        Deliver one audit event with retry logic.

        Retry strategy:
        - Exponential backoff: base * 2^(attempt-1)
        - Retries on 5xx errors and network failures
        - A 4xx response is a rejected payload and is not retried
        - Gives up after max_retries with a warning; never raises

        Args:
            payload: Serialized audit event

        Returns:
            True when the webhook acknowledged the event
        """
        attempt = 0
        async with httpx.AsyncClient() as client:
            while attempt < self.max_retries:
                try:
                    with audit_latency_histogram.time():
                        response = await client.post(
                            self.webhook_url,
                            json=payload,
                            timeout=self.timeout,
                        )
                        response.raise_for_status()
                        return True

                except (httpx.HTTPStatusError, httpx.RequestError) as e:
                    attempt += 1
                    audit_failure_counter.inc()

                    if isinstance(e, httpx.HTTPStatusError) and e.response.status_code < 500:
                        logger.warning(
                            f"Audit event rejected by webhook: {e.response.status_code}",
                            extra={"action": payload.get("action"), "entity_id": payload.get("entity_id")},
                        )
                        return False

                    if attempt >= self.max_retries:
                        logger.warning(
                            f"Audit delivery failed after {attempt} attempts: {e}",
                            extra={"action": payload.get("action"), "entity_id": payload.get("entity_id")},
                        )
                        return False

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    await asyncio.sleep(backoff)
        return False


class BackgroundAuditSink:
    """Fire-and-forget audit sink: delivery runs after the response is sent"""

    def __init__(self, background_tasks: BackgroundTasks, client: AuditClient, ip: Optional[str] = None):
        self.background_tasks = background_tasks
        self.client = client
        self.ip = ip

    def record(self, event: AuditEvent) -> None:
        if event.ip is None:
            event = replace(event, ip=self.ip)
        self.background_tasks.add_task(self.client.send_event, audit_payload(event))


class LoggingAuditSink:
    """Audit sink for jobs running outside a request"""

    def record(self, event: AuditEvent) -> None:
        logger.info("Audit event", extra=audit_payload(event))
