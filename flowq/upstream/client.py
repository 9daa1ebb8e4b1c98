"""
Execution fetcher for the tenant's workflow engine (n8n public REST API).

Fetches completed executions with their full node-output data and turns them
into ExecutionRecords. Transport errors, 429 and 5xx are retried with
backoff; anything else surfaces as UpstreamFetchError.
"""

from __future__ import annotations

from typing import Any

import requests
from pydantic import ValidationError

from flowq.config import (
    UPSTREAM_MAX_ATTEMPTS,
    UPSTREAM_MAX_PAGES,
    UPSTREAM_PAGE_SIZE,
    UPSTREAM_TIMEOUT_SECONDS,
)
from flowq.infrastructure.retry import AdapterError, RetryPolicy
from flowq.infrastructure.settings import UPSTREAM_USER_AGENT
from flowq.observability.logging import get_logger
from flowq.observability.telemetry import counter, log_event, time_block
from flowq.outcomes.models import ExecutionRecord

logger = get_logger(__name__)

EXECUTIONS_PATH = "/api/v1/executions"


class UpstreamFetchError(Exception):
    """The workflow engine could not be reached or returned an unusable response."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class PartialFetchError(UpstreamFetchError):
    """A page after the first failed; earlier pages are still usable."""

    def __init__(
        self, message: str, records: list[ExecutionRecord], status_code: int | None = None
    ):
        super().__init__(message, status_code=status_code)
        self.records = records


def normalize_base_url(url: str) -> str:
    """Trim, strip trailing slashes and default the scheme to https."""
    normalized = (url or "").strip().rstrip("/")
    if normalized and not normalized.startswith(("http://", "https://")):
        normalized = f"https://{normalized}"
    return normalized


def join_path(base_url: str, path: str) -> str:
    """
    Append path to base_url without doubling an /api or /api/v1 segment.

    >>> join_path("https://n8n.example.com/api/v1/", "/api/v1/executions")
    'https://n8n.example.com/api/v1/executions'
    """
    base = base_url.strip().rstrip("/")
    clean = path.strip()
    if base.endswith("/api/v1") and clean.startswith("/api/v1"):
        return base + clean[len("/api/v1") :]
    if base.endswith("/api") and clean.startswith("/api"):
        return base + clean[len("/api") :]
    return base + clean


class WorkflowEngineClient:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        session: requests.Session | None = None,
        retry_policy: RetryPolicy | None = None,
        timeout: float = UPSTREAM_TIMEOUT_SECONDS,
    ):
        if not base_url or not api_key:
            raise ValueError("Workflow engine base_url and api_key are required")
        self.base_url = normalize_base_url(base_url)
        self.api_key = api_key
        self.session = session or requests.Session()
        self.retry_policy = retry_policy or RetryPolicy(
            stage="upstream_fetch", max_attempts=UPSTREAM_MAX_ATTEMPTS
        )
        self.timeout = timeout

    def _headers(self) -> dict[str, str]:
        return {
            "X-N8N-API-KEY": self.api_key,
            "Accept": "application/json",
            "User-Agent": UPSTREAM_USER_AGENT,
        }

    def _get_page(self, params: dict[str, Any]) -> dict[str, Any]:
        url = join_path(self.base_url, EXECUTIONS_PATH)
        try:
            response = self.session.get(
                url, params=params, headers=self._headers(), timeout=self.timeout
            )
        except requests.RequestException as e:
            raise AdapterError(f"upstream transport error: {e}") from e

        if response.status_code >= 400:
            raise AdapterError(
                f"upstream returned HTTP {response.status_code}: {response.text[:300]}",
                status_code=response.status_code,
            )

        content_type = response.headers.get("content-type", "")
        if "html" in content_type:
            # proxy, WAF or a wrong API path; not worth retrying
            raise AdapterError(
                "upstream returned HTML instead of JSON; check the base URL", status_code=400
            )
        try:
            body = response.json()
        except ValueError as e:
            raise AdapterError(f"upstream returned invalid JSON: {e}", status_code=400) from e
        if not isinstance(body, dict):
            raise AdapterError("upstream response is not a JSON object", status_code=400)
        return body

    def _fetch_page(self, params: dict[str, Any]) -> dict[str, Any]:
        """One page through the retry policy, with a usable data list."""
        try:
            body = self.retry_policy.execute(self._get_page, dict(params))
        except AdapterError as e:
            counter("upstream.fetch_failed")
            raise UpstreamFetchError(str(e), status_code=e.status_code) from e
        except Exception as e:
            counter("upstream.fetch_failed")
            raise UpstreamFetchError(f"upstream fetch failed: {e}") from e

        if not isinstance(body.get("data"), list):
            raise UpstreamFetchError("upstream response has no data list")
        return body

    def fetch_executions(
        self,
        workflow_id: str,
        status: str | None = "success",
        limit: int = UPSTREAM_PAGE_SIZE,
        max_pages: int = UPSTREAM_MAX_PAGES,
    ) -> list[ExecutionRecord]:
        """
        Fetch recent executions of one workflow, with node data included.

        Follows nextCursor for up to max_pages pages. Malformed records are
        logged and skipped.

        Raises:
            UpstreamFetchError: the first page failed after retries, or came
                back in an unusable shape
            PartialFetchError: a later page failed; its `records` holds what
                the earlier pages returned
        """
        params: dict[str, Any] = {
            "workflowId": workflow_id,
            "limit": limit,
            "includeData": "true",
        }
        if status:
            params["status"] = status

        records: list[ExecutionRecord] = []
        pages = 0
        with time_block("upstream.fetch_latency"):
            while pages < max_pages:
                pages += 1
                try:
                    body = self._fetch_page(params)
                except UpstreamFetchError as e:
                    if pages == 1:
                        raise
                    counter("upstream.partial_fetch")
                    raise PartialFetchError(
                        f"page {pages} failed after {len(records)} executions: {e}",
                        records,
                        status_code=e.status_code,
                    ) from e

                for payload in body["data"]:
                    record = self._parse(payload, workflow_id)
                    if record is not None:
                        records.append(record)

                cursor = body.get("nextCursor")
                if not cursor:
                    break
                params["cursor"] = cursor

        log_event("upstream.fetched", workflow_id=workflow_id, count=len(records), pages=pages)
        return records

    def _parse(self, payload: Any, workflow_id: str) -> ExecutionRecord | None:
        if not isinstance(payload, dict):
            counter("upstream.malformed")
            logger.warning("Skipping non-object execution for workflow %s", workflow_id)
            return None
        try:
            return ExecutionRecord.from_api(payload, workflow_id=workflow_id)
        except ValidationError as e:
            counter("upstream.malformed")
            logger.warning(
                "Skipping malformed execution %s for workflow %s: %s",
                payload.get("id"),
                workflow_id,
                e.error_count(),
            )
            return None
