"""HTTP transport: issue one request and capture it as a RequestRecord."""

import logging
import time
from typing import Dict, Optional

import httpx

from ratelimit_probe.models import RequestRecord, RequestTarget


logger = logging.getLogger(__name__)

CONTENT_FIELD = "content"
ERROR_FIELD = "error"


class HttpTransport:
    """Sends requests through an ``httpx.Client`` authenticated by API key.

    Transport failures never propagate: they come back as a record with
    status 0, which every classifier treats as a genuine error.
    """

    def __init__(
        self,
        client: httpx.Client,
        api_key: Optional[str] = None,
        api_key_header: str = "X-API-Key",
    ):
        self.client = client
        self.headers: Dict[str, str] = {"Content-Type": "application/json"}
        if api_key:
            self.headers[api_key_header] = api_key

    @classmethod
    def for_base_url(cls, base_url: str, api_key: Optional[str] = None, timeout: float = 10.0):
        return cls(httpx.Client(base_url=base_url, timeout=timeout), api_key=api_key)

    def request(self, target: RequestTarget, index: int) -> RequestRecord:
        timestamp = time.time()
        start = time.perf_counter()
        try:
            response = self.client.request(
                target.method, target.path, headers=self.headers, json=target.payload
            )
        except httpx.HTTPError as exc:
            logger.error("request %d to %s failed: %s", index, target.path, exc)
            return RequestRecord(
                index=index,
                timestamp=timestamp,
                status=0,
                latency_ms=(time.perf_counter() - start) * 1000,
                group=target.group,
            )
        latency_ms = (time.perf_counter() - start) * 1000
        return record_from_response(response, index, timestamp, latency_ms, target.group)

    def close(self) -> None:
        self.client.close()


def record_from_response(
    response: httpx.Response,
    index: int,
    timestamp: float,
    latency_ms: float,
    group: str = "default",
) -> RequestRecord:
    """Reduce a response to the facts the classifiers look at."""
    body = _json_body(response)
    return RequestRecord(
        index=index,
        timestamp=timestamp,
        status=response.status_code,
        headers={key.lower(): value for key, value in response.headers.items()},
        has_content=isinstance(body, dict) and body.get(CONTENT_FIELD) is not None,
        has_error_field=isinstance(body, dict) and body.get(ERROR_FIELD) is not None,
        latency_ms=latency_ms,
        group=group,
    )


def _json_body(response: httpx.Response):
    try:
        return response.json()
    except ValueError:
        return None
