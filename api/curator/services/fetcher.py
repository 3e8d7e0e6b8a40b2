from __future__ import annotations

from dataclasses import dataclass
import json
import logging
import time
from typing import Any, Literal

import httpx

from curator.services.sources import ApiSource, ScrapeSource

logger = logging.getLogger(__name__)

FetchStatus = Literal["ok", "no_results", "blocked", "error", "timeout", "skipped"]
BLOCKED_STATUS_CODES = {401, 403, 429}


class SourceFetchError(Exception):
    def __init__(self, code: str, message: str, *, status: FetchStatus = "error", http_status: int | None = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status
        self.http_status = http_status


@dataclass(slots=True)
class SourceDiagnostics:
    source_name: str
    status: FetchStatus = "ok"
    http_status: int | None = None
    elapsed_ms: int | None = None
    error_code: str | None = None
    error_message: str | None = None
    result_count_raw: int = 0
    result_count_usable: int = 0

    def fail(self, error: SourceFetchError) -> None:
        self.status = error.status
        self.error_code = error.code
        self.error_message = error.message
        if error.http_status is not None:
            self.http_status = error.http_status

    def as_dict(self) -> dict[str, Any]:
        return {
            "source_name": self.source_name,
            "status": self.status,
            "http_status": self.http_status,
            "elapsed_ms": self.elapsed_ms,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "result_count_raw": self.result_count_raw,
            "result_count_usable": self.result_count_usable,
        }


@dataclass(slots=True)
class SourceFetchResult:
    source: ScrapeSource | ApiSource
    payload: str | Any | None
    diagnostics: SourceDiagnostics

    @property
    def succeeded(self) -> bool:
        return self.payload is not None


async def fetch_source(
    client: httpx.AsyncClient,
    source: ScrapeSource | ApiSource,
    query: str,
    *,
    user_agent: str,
) -> SourceFetchResult:
    """Issue exactly one request for ``source``.

    Scrape sources yield the response text, API sources the decoded JSON body.
    Failures never propagate: they are recorded on the returned diagnostics and
    the payload is ``None``.
    """
    diagnostics = SourceDiagnostics(source_name=source.name)
    started = time.perf_counter()
    try:
        payload = await _request_payload(client, source, query, user_agent=user_agent, diagnostics=diagnostics)
    except SourceFetchError as exc:
        diagnostics.fail(exc)
        payload = None
    diagnostics.elapsed_ms = int((time.perf_counter() - started) * 1000)

    if payload is None:
        logger.warning(
            "source fetch failed source=%s status=%s http_status=%s error_code=%s error=%s",
            source.name,
            diagnostics.status,
            diagnostics.http_status,
            diagnostics.error_code,
            diagnostics.error_message,
        )
    return SourceFetchResult(source=source, payload=payload, diagnostics=diagnostics)


async def _request_payload(
    client: httpx.AsyncClient,
    source: ScrapeSource | ApiSource,
    query: str,
    *,
    user_agent: str,
    diagnostics: SourceDiagnostics,
) -> str | Any:
    params = source.build_params(query)
    headers = {"User-Agent": user_agent}
    if isinstance(source, ApiSource):
        if source.credential is not None and source.credential_param:
            params[source.credential_param] = source.credential.get_secret_value()
        elif source.requires_credential:
            raise SourceFetchError("missing_credential", "source requires a credential", status="skipped")
        headers["Accept"] = "application/json"
    else:
        headers["Accept"] = "text/html,application/xhtml+xml"

    try:
        response = await client.get(source.endpoint, params=params, headers=headers, follow_redirects=True)
    except httpx.TimeoutException as exc:
        raise SourceFetchError("timeout", str(exc) or "request timed out", status="timeout") from exc
    except httpx.HTTPError as exc:
        raise SourceFetchError("request_failed", str(exc) or exc.__class__.__name__) from exc

    diagnostics.http_status = int(response.status_code)
    if response.status_code in BLOCKED_STATUS_CODES:
        raise SourceFetchError(
            "blocked",
            f"source refused request with HTTP {response.status_code}",
            status="blocked",
            http_status=int(response.status_code),
        )
    if response.status_code >= 400:
        raise SourceFetchError(
            "http_error",
            f"HTTP {response.status_code}",
            http_status=int(response.status_code),
        )

    if isinstance(source, ScrapeSource):
        return response.text
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise SourceFetchError("parse_failed", f"invalid JSON body: {exc}") from exc
