"""
Notification fan-out to the push dispatch service.

Best effort: dispatch() reports success as a bool and never raises.
"""

from __future__ import annotations

from typing import Any

import requests

from flowq.config import DISPATCH_ACTION_URL, DISPATCH_TIMEOUT_SECONDS
from flowq.infrastructure.retry import AdapterError, CircuitBreaker, RetryPolicy
from flowq.infrastructure.settings import NOTIFICATION_DISPATCH_TOKEN, NOTIFICATION_DISPATCH_URL
from flowq.observability.logging import get_logger
from flowq.observability.telemetry import counter

logger = get_logger(__name__)


class NotificationDispatcher:
    def __init__(
        self,
        url: str | None = None,
        token: str | None = None,
        session: requests.Session | None = None,
        retry_policy: RetryPolicy | None = None,
        breaker: CircuitBreaker | None = None,
    ):
        self.url = url if url is not None else NOTIFICATION_DISPATCH_URL
        self.token = token if token is not None else NOTIFICATION_DISPATCH_TOKEN
        self.session = session or requests.Session()
        self.retry_policy = retry_policy or RetryPolicy(stage="notification_dispatch", max_attempts=2)
        self.breaker = breaker or CircuitBreaker(stage="notification_dispatch")

    def build_payload(
        self, company_id: str, subject: str, message: str, severity: str
    ) -> dict[str, Any]:
        return {
            "company_id": company_id,
            "subject": subject,
            "message": message,
            "channels": ["push"],
            "severity": severity,
            "action_url": DISPATCH_ACTION_URL,
        }

    def dispatch(self, company_id: str, subject: str, message: str, severity: str) -> bool:
        if not self.url:
            logger.debug("No dispatch URL configured, skipping push fan-out")
            return False
        if not self.breaker.allow_request():
            counter("notifications.dispatch.circuit_open")
            return False

        payload = self.build_payload(company_id, subject, message, severity)
        try:
            self.retry_policy.execute(self._post, payload)
        except Exception as e:
            self.breaker.record_failure()
            counter("notifications.dispatch.failed")
            logger.warning("Push dispatch failed for company %s: %s", company_id, e)
            return False

        self.breaker.record_success()
        counter("notifications.dispatch.sent")
        return True

    def _post(self, payload: dict[str, Any]) -> None:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        try:
            response = self.session.post(
                self.url, json=payload, headers=headers, timeout=DISPATCH_TIMEOUT_SECONDS
            )
        except requests.RequestException as e:
            raise AdapterError(f"dispatch transport error: {e}") from e
        if response.status_code >= 400:
            raise AdapterError(
                f"dispatch rejected: HTTP {response.status_code}", status_code=response.status_code
            )
