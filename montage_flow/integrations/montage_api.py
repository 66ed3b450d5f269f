"""HTTP client for the montage board-facing API.

``MontageApiClient`` is the remote counterpart of
``montage_flow.board.LocalBoardBackend``: a BoardSession can drive either.

Behaviour:
  timeout    = 10 s per request
  retry_max  = 2 extra attempts, GET only, on network errors / 5xx
  backoff    = [0.5, 2] seconds
  4xx responses are never retried; the server's ``{"error", "code"}``
  body is surfaced on the result.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import requests

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 10
_RETRY_MAX = 2
_RETRY_BACKOFF_SECONDS = [0.5, 2]


class MontageApiResult:
    """Typed result returned by all MontageApiClient methods.

    Always check .ok before accessing .data.
    Never raises — all errors are captured in .error / .code.
    """

    __slots__ = ("ok", "status_code", "data", "error", "code", "duration_ms")

    def __init__(
        self,
        *,
        ok: bool,
        status_code: int | None,
        data: dict | list | None,
        error: str | None,
        code: str | None = None,
        duration_ms: int = 0,
    ) -> None:
        self.ok = ok
        self.status_code = status_code
        self.data = data
        self.error = error
        self.code = code
        self.duration_ms = duration_ms

    def to_log_dict(self) -> dict:
        return {
            "ok": self.ok,
            "status_code": self.status_code,
            "error": self.error,
            "code": self.code,
            "duration_ms": self.duration_ms,
        }


class MontageApiClient:
    """Board backend talking to ``/api/v1`` of a remote montage service."""

    def __init__(
        self,
        base_url: str,
        *,
        user_id: str | None = None,
        role: str | None = None,
        session: requests.Session | None = None,
        timeout: int = _DEFAULT_TIMEOUT,
        backoff: list[float] | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.backoff = _RETRY_BACKOFF_SECONDS if backoff is None else backoff
        self.headers = {"Accept": "application/json"}
        if user_id:
            self.headers["X-User-Id"] = user_id
        if role:
            self.headers["X-User-Role"] = role

    # ── Internal HTTP dispatch ────────────────────────────────────────────────

    def _call(
        self,
        method: str,
        path: str,
        *,
        params: dict | None = None,
        json_body: dict | None = None,
    ) -> MontageApiResult:
        url = f"{self.base_url}/api/v1{path}"
        retries = _RETRY_MAX if method == "GET" else 0
        last_error = "Unknown error"
        last_status: int | None = None

        for attempt in range(retries + 1):
            try:
                kwargs: dict[str, Any] = {"headers": self.headers, "timeout": self.timeout}
                if json_body is not None:
                    kwargs["json"] = json_body
                if params:
                    kwargs["params"] = params

                t0 = time.perf_counter()
                resp = self.session.request(method, url, **kwargs)
                duration_ms = int((time.perf_counter() - t0) * 1000)
                last_status = resp.status_code

                try:
                    body = resp.json() if resp.content else {}
                except ValueError:
                    body = {}

                if resp.ok:
                    return MontageApiResult(
                        ok=True, status_code=resp.status_code, data=body,
                        error=None, duration_ms=duration_ms,
                    )

                error = body.get("error") if isinstance(body, dict) else None
                code = body.get("code") if isinstance(body, dict) else None
                last_error = error or f"HTTP {resp.status_code}: {resp.text[:500]}"
                if resp.status_code < 500:
                    return MontageApiResult(
                        ok=False, status_code=resp.status_code, data=None,
                        error=last_error, code=code, duration_ms=duration_ms,
                    )
                logger.warning("Montage API request failed attempt=%d/%d status=%d url=%s",
                               attempt + 1, retries + 1, resp.status_code, url)

            except requests.Timeout:
                last_error = f"Request timed out after {self.timeout}s"
                logger.warning("Montage API request timed out attempt=%d/%d url=%s",
                               attempt + 1, retries + 1, url)

            except requests.RequestException as exc:
                last_error = str(exc)[:500]
                logger.warning("Montage API network error attempt=%d/%d url=%s error=%s",
                               attempt + 1, retries + 1, url, last_error)

            if attempt < retries and self.backoff:
                time.sleep(self.backoff[min(attempt, len(self.backoff) - 1)])

        return MontageApiResult(ok=False, status_code=last_status, data=None, error=last_error)

    # ── Public operations ─────────────────────────────────────────────────────

    def list_montages(self, **filters) -> MontageApiResult:
        result = self._call("GET", "/montages", params={k: v for k, v in filters.items() if v is not None})
        if result.ok:
            result.data = result.data.get("items", [])
        return result

    def get_montage(self, montage_id: str) -> MontageApiResult:
        return self._call("GET", f"/montages/{montage_id}")

    def request_status_change(self, montage_id: str, to_status: str,
                              expected_version: str | None = None) -> MontageApiResult:
        body = {"status": to_status}
        if expected_version:
            body["expected_updated_at"] = expected_version
        return self._call("POST", f"/montages/{montage_id}/status", json_body=body)

    def toggle_checklist_item(self, montage_id: str, item_id: str, completed: bool,
                              expected_version: str | None = None) -> MontageApiResult:
        body = {"completed": completed}
        if expected_version:
            body["expected_updated_at"] = expected_version
        return self._call("PATCH", f"/montages/{montage_id}/checklist/{item_id}", json_body=body)
