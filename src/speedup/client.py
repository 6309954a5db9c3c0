"""Typed HTTP client for the upload timing endpoints.

Used by ``speedup probe``; only imports from ``speedup.api.schemas``.
"""
from __future__ import annotations

import time
from typing import Any

import httpx
from pydantic import BaseModel

from speedup.api.schemas.envelope import HealthResponse
from speedup.api.schemas.log import LogAck
from speedup.api.schemas.upload import UploadResponse


_DEFAULT_BASE_URL = "http://127.0.0.1:3000"


class APIError(Exception):
    """Raised when the server returns a 4xx/5xx envelope."""

    def __init__(self, status_code: int, detail: str) -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"[{status_code}] {detail}")


class ProbeResult(BaseModel):
    upload: UploadResponse
    round_trip_ms: int

    @property
    def network_ms(self) -> int:
        """Round trip minus the time the server spent ingesting."""
        return max(self.round_trip_ms - self.upload.server_processing_ms, 0)


class SpeedupClient:
    def __init__(
        self,
        base_url: str = _DEFAULT_BASE_URL,
        *,
        api_key: str | None = None,
        token: str | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        headers: dict[str, str] = {}
        if api_key:
            headers["x-api-key"] = api_key
        elif token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = client or httpx.Client(base_url=base_url, timeout=300.0)
        self._headers = headers

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "SpeedupClient":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def _raise_for_status(self, resp: httpx.Response) -> None:
        if resp.is_success:
            return
        try:
            detail = resp.json().get("error", resp.text)
        except Exception:
            detail = resp.text
        raise APIError(resp.status_code, detail)

    def health(self) -> HealthResponse:
        resp = self._client.get("/api/health")
        self._raise_for_status(resp)
        return HealthResponse.model_validate(resp.json())

    def upload(self, filename: str, content: bytes) -> ProbeResult:
        started = time.perf_counter()
        resp = self._client.post(
            "/upload",
            files={"file": (filename, content, "application/octet-stream")},
            headers=self._headers,
        )
        round_trip_ms = int((time.perf_counter() - started) * 1000)
        self._raise_for_status(resp)
        return ProbeResult(
            upload=UploadResponse.model_validate(resp.json()),
            round_trip_ms=round_trip_ms,
        )

    def log(self, payload: Any) -> LogAck:
        resp = self._client.post("/api/log", json=payload, headers=self._headers)
        self._raise_for_status(resp)
        return LogAck.model_validate(resp.json())
