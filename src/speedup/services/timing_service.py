"""Upload timing use-case service.

Both handler flavours share the same gates (auth result, then method) and differ
in what they do with the body:

* multipart mode streams the ``file`` field through a counter and reports
  size and server-side timestamps; bytes are never kept.
* telemetry mode reads a bounded JSON document, logs it and acknowledges it
  without computing any timing fields.
"""
from __future__ import annotations
import json
import time
import urllib.parse
from collections.abc import AsyncIterator, Callable
from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header
from speedup.api.schemas.log import LogAck
from speedup.api.schemas.upload import UploadMetadata, UploadResponse
from speedup.config import Settings
from speedup.domain.exceptions import (
    MalformedBodyError,
    MethodNotAllowedError,
    PayloadTooLargeError,
)
from speedup.logging import logger
from speedup.services.auth_service import AuthResult, raise_for_result

FILE_FIELD = "file"
MAX_PART_HEADER_BYTES = 16 * 1024


def now_ms() -> int:
    return time.time_ns() // 1_000_000


def _decode_ext_value(raw: bytes) -> str:
    """Decode an RFC 5987 value such as ``UTF-8''t%C3%A9.txt``."""
    value = raw.decode("latin-1").strip().strip('"')
    charset, sep, rest = value.partition("'")
    if not sep:
        return urllib.parse.unquote(value, errors="replace")
    _lang, _, encoded = rest.partition("'")
    try:
        return urllib.parse.unquote(encoded, encoding=charset or "utf-8", errors="replace")
    except LookupError:
        return urllib.parse.unquote(encoded, errors="replace")


def _gate(method: str, auth_result: AuthResult) -> None:
    raise_for_result(auth_result)
    if method.upper() != "POST":
        raise MethodNotAllowedError(allow="POST")


class _FileFieldCounter:
    """Multipart callbacks that count bytes of the single ``file`` field."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        self.filename: str | None = None
        self.size = 0
        self.parts_started = 0
        self.in_part = False
        self._seen_file = False
        self._counting = False
        self._header_field = bytearray()
        self._header_value = bytearray()
        self._header_bytes = 0
        self._headers: dict[bytes, bytes] = {}

    def callbacks(self) -> dict:
        return {
            "on_part_begin": self.on_part_begin,
            "on_part_data": self.on_part_data,
            "on_part_end": self.on_part_end,
            "on_header_field": self.on_header_field,
            "on_header_value": self.on_header_value,
            "on_header_end": self.on_header_end,
            "on_headers_finished": self.on_headers_finished,
        }

    def on_part_begin(self) -> None:
        self.parts_started += 1
        self.in_part = True
        self._counting = False
        self._headers = {}
        self._header_bytes = 0

    def on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._track_header(end - start)
        self._header_field += data[start:end]

    def on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._track_header(end - start)
        self._header_value += data[start:end]

    def on_header_end(self) -> None:
        self._headers[bytes(self._header_field).lower()] = bytes(self._header_value)
        self._header_field.clear()
        self._header_value.clear()

    def on_headers_finished(self) -> None:
        disposition = self._headers.get(b"content-disposition")
        if disposition is None:
            raise MalformedBodyError("Missing Content-Disposition in multipart part")
        _, params = parse_options_header(disposition)
        if b"filename" not in params and b"filename*" not in params:
            # plain text field; ignored
            return
        name = params.get(b"name", b"").decode("utf-8", errors="replace")
        if name != FILE_FIELD or self._seen_file:
            raise MalformedBodyError(f"Unexpected field: {name}")
        self._seen_file = True
        self._counting = True
        if b"filename*" in params:
            self.filename = _decode_ext_value(params[b"filename*"]) or None
        else:
            self.filename = params[b"filename"].decode("utf-8", errors="replace") or None

    def on_part_data(self, data: bytes, start: int, end: int) -> None:
        if not self._counting:
            return
        self.size += end - start
        if self.size > self.limit:
            raise PayloadTooLargeError(
                self.limit, f"File too large: maximum size is {self.limit} bytes"
            )

    def on_part_end(self) -> None:
        self.in_part = False
        self._counting = False

    def _track_header(self, n: int) -> None:
        self._header_bytes += n
        if self._header_bytes > MAX_PART_HEADER_BYTES:
            raise MalformedBodyError("Multipart part headers too large")


class TimingService:
    def __init__(self, settings: Settings, clock: Callable[[], int] = now_ms) -> None:
        self._settings = settings
        self._clock = clock

    async def handle_upload(
        self,
        method: str,
        auth_result: AuthResult,
        stream: AsyncIterator[bytes],
        content_type: str | None,
        *,
        limit: int | None = None,
    ) -> UploadResponse:
        _gate(method, auth_result)
        limit = self._settings.MAX_FILE_BYTES if limit is None else limit

        received_at = self._clock()
        try:
            filename, size = await self._ingest_multipart(stream, content_type, limit)
        finally:
            processed_at = max(self._clock(), received_at)
            logger.debug("Upload ingestion finished in %d ms", processed_at - received_at)

        meta = UploadMetadata(
            filename=filename,
            size_bytes=size,
            received_at_ms=received_at,
            processed_at_ms=processed_at,
        )
        logger.info(
            "Upload measured: filename=%r size=%d processing_ms=%d",
            meta.filename, meta.size_bytes, meta.processing_ms,
        )
        return UploadResponse.from_metadata(meta)

    async def _ingest_multipart(
        self,
        stream: AsyncIterator[bytes],
        content_type: str | None,
        limit: int,
    ) -> tuple[str | None, int]:
        if not content_type:
            raise MalformedBodyError("Missing Content-Type; expected multipart/form-data")
        mime, params = parse_options_header(content_type)
        if mime.lower() != b"multipart/form-data":
            raise MalformedBodyError("Expected multipart/form-data")
        boundary = params.get(b"boundary")
        if not boundary:
            raise MalformedBodyError("Multipart boundary not found")

        counter = _FileFieldCounter(limit)
        parser = MultipartParser(boundary, counter.callbacks())
        try:
            async for chunk in stream:
                if chunk:
                    parser.write(chunk)
            parser.finalize()
        except MultipartParseError as exc:
            raise MalformedBodyError(f"Malformed multipart body: {exc}") from exc

        if counter.parts_started == 0 or counter.in_part:
            raise MalformedBodyError("Unexpected end of form")
        return counter.filename, counter.size

    async def handle_log(
        self,
        method: str,
        auth_result: AuthResult,
        stream: AsyncIterator[bytes],
        content_length: int | None = None,
        *,
        limit: int | None = None,
    ) -> LogAck:
        _gate(method, auth_result)
        limit = self._settings.MAX_LOG_BYTES if limit is None else limit

        if content_length is not None and content_length > limit:
            raise PayloadTooLargeError(limit)

        body = bytearray()
        async for chunk in stream:
            if len(body) + len(chunk) > limit:
                raise PayloadTooLargeError(limit)
            body += chunk

        data = None
        if body.strip():
            try:
                data = json.loads(body)
            except (json.JSONDecodeError, UnicodeDecodeError, RecursionError) as exc:
                raise MalformedBodyError(f"Invalid JSON body: {exc}") from exc

        logger.info("Speed test log received: %s", json.dumps(data))
        return LogAck()
