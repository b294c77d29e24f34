from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from http.client import HTTPException
from typing import Any
from urllib.error import HTTPError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

logger = logging.getLogger(__name__)


class GatewayTransportError(Exception):
    """Connection failure, timeout or broken response that outlived every retry."""


@dataclass(frozen=True)
class HttpResponse:
    status_code: int
    body: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        return json.loads(self.body)


class HttpClient:
    """Small urllib wrapper that retries connection failures and 5xx responses."""

    def __init__(self, max_attempts: int = 3, backoff_seconds: float = 0.5) -> None:
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds

    def post_form(self, url: str, fields: dict[str, str], timeout: float) -> HttpResponse:
        req = Request(
            url,
            data=urlencode(fields).encode("utf-8"),
            headers={"Content-Type": "application/x-www-form-urlencoded", "Accept": "application/json"},
            method="POST",
        )
        return self._send(req, timeout)

    def post_json(
        self,
        url: str,
        payload: dict[str, Any],
        timeout: float,
        headers: dict[str, str] | None = None,
    ) -> HttpResponse:
        req = Request(
            url,
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json", "Accept": "application/json", **(headers or {})},
            method="POST",
        )
        return self._send(req, timeout)

    def _open(self, req: Request, timeout: float) -> HttpResponse:
        try:
            with urlopen(req, timeout=timeout) as resp:
                return HttpResponse(resp.status, resp.read().decode("utf-8", errors="replace"))
        except HTTPError as exc:
            body = exc.read().decode("utf-8", errors="replace") if exc.fp is not None else ""
            return HttpResponse(exc.code, body)

    def _send(self, req: Request, timeout: float) -> HttpResponse:
        last_error: Exception | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                response = self._open(req, timeout)
            except (HTTPException, OSError) as exc:
                last_error = exc
                logger.warning(
                    "HTTP request failed",
                    extra={"url": req.full_url, "attempt": attempt, "error": str(exc)},
                )
            else:
                if response.status_code < 500 or attempt == self.max_attempts:
                    return response
                logger.warning(
                    "HTTP request returned server error",
                    extra={"url": req.full_url, "attempt": attempt, "status_code": response.status_code},
                )

            if attempt < self.max_attempts:
                time.sleep(self.backoff_seconds)

        raise GatewayTransportError(f"Request to {req.full_url} failed after {self.max_attempts} attempts: {last_error}")
