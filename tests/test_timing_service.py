"""Service-level tests for bounded ingestion and timestamp capture."""
import asyncio
import json
import logging

import pytest
from starlette.requests import ClientDisconnect

from speedup.domain.exceptions import (
    InvalidCredentialError,
    MalformedBodyError,
    MethodNotAllowedError,
    PayloadTooLargeError,
    UnauthenticatedError,
)
from speedup.services.auth_service import AuthResult
from speedup.services.timing_service import TimingService

BOUNDARY = "speeduptestboundary"
CONTENT_TYPE = f"multipart/form-data; boundary={BOUNDARY}"


def _part_head(name: str, filename: str | None = None) -> bytes:
    disposition = f'form-data; name="{name}"'
    if filename is not None:
        disposition += f'; filename="{filename}"'
    return (
        f"--{BOUNDARY}\r\n"
        f"Content-Disposition: {disposition}\r\n"
        f"Content-Type: application/octet-stream\r\n\r\n"
    ).encode()


def _form(*parts: tuple[str, str | None, bytes]) -> bytes:
    body = b""
    for name, filename, content in parts:
        body += _part_head(name, filename) + content + b"\r\n"
    return body + f"--{BOUNDARY}--\r\n".encode()


class _Stream:
    """Async chunk source that records how many chunks were pulled.

    A ``None`` chunk stands for the client going away mid-body.
    """

    def __init__(self, chunks: list[bytes]) -> None:
        self.chunks = chunks
        self.pulled = 0

    def __aiter__(self):
        return self

    async def __anext__(self) -> bytes:
        if self.pulled >= len(self.chunks):
            raise StopAsyncIteration
        chunk = self.chunks[self.pulled]
        self.pulled += 1
        if chunk is None:
            raise ClientDisconnect()
        return chunk


def _clock(*ticks: int):
    it = iter(ticks)
    return lambda: next(it)


def _upload(service, body_chunks, *, method="POST", auth=AuthResult.ACCEPTED,
            content_type=CONTENT_TYPE, limit=None):
    stream = body_chunks if isinstance(body_chunks, _Stream) else _Stream(body_chunks)
    return asyncio.run(service.handle_upload(
        method=method, auth_result=auth, stream=stream,
        content_type=content_type, limit=limit,
    ))


@pytest.fixture
def service(make_settings):
    return TimingService(make_settings(API_KEY="k"), clock=_clock(1_000, 1_007))


# ---------------------------------------------------------------------------
# Gates
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("method", ["GET", "PUT", "DELETE", "PATCH"])
def test_non_post_never_reads_body(service, method):
    stream = _Stream([b"this is not multipart at all"])
    with pytest.raises(MethodNotAllowedError) as exc_info:
        _upload(service, stream, method=method, limit=1)
    assert exc_info.value.allow == "POST"
    assert stream.pulled == 0


def test_rejected_auth_short_circuits_before_method(service):
    stream = _Stream([_form(("file", "a.txt", b"abc"))])
    with pytest.raises(UnauthenticatedError):
        _upload(service, stream, method="GET", auth=AuthResult.REJECTED_UNAUTHENTICATED)
    with pytest.raises(InvalidCredentialError):
        _upload(service, stream, auth=AuthResult.REJECTED_INVALID)
    assert stream.pulled == 0


# ---------------------------------------------------------------------------
# Multipart ingestion
# ---------------------------------------------------------------------------

def test_file_field_is_measured(service):
    result = _upload(service, [_form(("file", "t.txt", b"0123456789"))])
    assert result.ok is True
    assert result.filename == "t.txt"
    assert result.size == 10
    assert result.server_received_at == 1_000
    assert result.server_processed_at == 1_007
    assert result.server_processing_ms == 7


def test_processing_ms_never_negative_when_clock_steps_back(make_settings):
    svc = TimingService(make_settings(), clock=_clock(5_000, 4_990))
    result = _upload(svc, [_form(("file", "t.txt", b"x"))])
    assert result.server_processing_ms == 0
    assert result.server_processed_at == result.server_received_at


def test_body_split_across_many_chunks(service):
    body = _form(("note", None, b"hello"), ("file", "big.bin", b"z" * 5000))
    chunks = [body[i:i + 7] for i in range(0, len(body), 7)]
    result = _upload(service, chunks)
    assert result.size == 5000
    assert result.filename == "big.bin"


def test_missing_file_field_reports_defaults(service):
    result = _upload(service, [_form(("comment", None, b"no file here"))])
    assert result.filename is None
    assert result.size == 0


def test_empty_filename_becomes_none(service):
    result = _upload(service, [_form(("file", "", b""))])
    assert result.filename is None
    assert result.size == 0


def test_body_exactly_at_limit_succeeds(service):
    result = _upload(service, [_form(("file", "edge.bin", b"a" * 64))], limit=64)
    assert result.size == 64


def test_body_one_byte_over_limit_fails(service):
    with pytest.raises(PayloadTooLargeError) as exc_info:
        _upload(service, [_form(("file", "edge.bin", b"a" * 65))], limit=64)
    assert exc_info.value.limit == 64


def test_oversized_stream_is_abandoned_early(service):
    chunks = [_part_head("file", "huge.bin")] + [b"x" * 8] * 1000 + [f"\r\n--{BOUNDARY}--\r\n".encode()]
    stream = _Stream(chunks)
    with pytest.raises(PayloadTooLargeError):
        _upload(service, stream, limit=32)
    assert stream.pulled < 10


def test_default_limit_comes_from_settings(make_settings):
    svc = TimingService(make_settings(MAX_FILE_BYTES=4), clock=_clock(1, 2))
    with pytest.raises(PayloadTooLargeError):
        _upload(svc, [_form(("file", "f", b"12345"))])


def test_unexpected_file_field_is_rejected(service):
    with pytest.raises(MalformedBodyError, match="Unexpected field: upload"):
        _upload(service, [_form(("upload", "t.txt", b"abc"))])


def test_second_file_part_is_rejected(service):
    with pytest.raises(MalformedBodyError, match="Unexpected field"):
        _upload(service, [_form(("file", "a", b"1"), ("file", "b", b"2"))])


def test_non_multipart_content_type_is_malformed(service):
    with pytest.raises(MalformedBodyError):
        _upload(service, [b"{}"], content_type="application/json")


def test_missing_content_type_is_malformed(service):
    with pytest.raises(MalformedBodyError):
        _upload(service, [b"abc"], content_type=None)


def test_missing_boundary_is_malformed(service):
    with pytest.raises(MalformedBodyError, match="boundary"):
        _upload(service, [b"abc"], content_type="multipart/form-data")


def _raw_part(disposition: str, content: bytes) -> bytes:
    return (
        f"--{BOUNDARY}\r\n"
        f"Content-Disposition: {disposition}\r\n\r\n"
    ).encode() + content + f"\r\n--{BOUNDARY}--\r\n".encode()


def test_extended_filename_parameter_is_a_file(service):
    body = _raw_part("form-data; name=\"file\"; filename*=UTF-8''t%C3%A9.txt", b"0123456789")
    result = _upload(service, [body])
    assert result.filename == "té.txt"
    assert result.size == 10


def test_extended_filename_wins_over_plain_filename(service):
    body = _raw_part(
        "form-data; name=\"file\"; filename=\"te.txt\"; filename*=UTF-8''t%C3%A9.txt", b"abc"
    )
    result = _upload(service, [body])
    assert result.filename == "té.txt"
    assert result.size == 3


def test_client_disconnect_aborts_ingestion(service):
    stream = _Stream([_part_head("file", "gone.bin"), b"x" * 8, None, b"x" * 8, b"x" * 8])
    with pytest.raises(ClientDisconnect):
        _upload(service, stream)
    assert stream.pulled == 3


def test_truncated_body_is_malformed(service):
    body = _part_head("file", "cut.bin") + b"partial content"
    with pytest.raises(MalformedBodyError):
        _upload(service, [body])


def test_empty_body_is_malformed(service):
    with pytest.raises(MalformedBodyError):
        _upload(service, [b""])


# ---------------------------------------------------------------------------
# Telemetry (JSON) mode
# ---------------------------------------------------------------------------

def _log(service, chunks, *, method="POST", auth=AuthResult.ACCEPTED,
         content_length=None, limit=None):
    stream = chunks if isinstance(chunks, _Stream) else _Stream(chunks)
    return asyncio.run(service.handle_log(
        method=method, auth_result=auth, stream=stream,
        content_length=content_length, limit=limit,
    ))


def test_json_payload_is_acknowledged_and_logged(service, caplog):
    payload = {"download_mbps": 812.4, "upload_mbps": 95.1, "ping_ms": 11}
    caplog.set_level(logging.INFO, logger="speedup")
    ack = _log(service, [json.dumps(payload).encode()])
    assert ack.model_dump() == {"ok": True, "received": True}
    assert "Speed test log received" in caplog.text
    assert "812.4" in caplog.text


def test_json_mode_computes_no_timing_fields(service):
    ack = _log(service, [b'{"a": 1}'])
    assert set(ack.model_dump()) == {"ok", "received"}


def test_empty_json_body_is_accepted(service):
    assert _log(service, []).received is True


def test_invalid_json_is_malformed(service):
    with pytest.raises(MalformedBodyError, match="Invalid JSON"):
        _log(service, [b"{not json"])


def test_deeply_nested_json_is_malformed(service):
    with pytest.raises(MalformedBodyError, match="Invalid JSON"):
        _log(service, [b"[" * 100_000])


def test_json_over_limit_fails_without_full_read(service):
    stream = _Stream([b"[" + b"1," * 8] * 100)
    with pytest.raises(PayloadTooLargeError):
        _log(service, stream, limit=40)
    assert stream.pulled < 100


def test_declared_content_length_over_limit_reads_nothing(service):
    stream = _Stream([b"{}"])
    with pytest.raises(PayloadTooLargeError):
        _log(service, stream, content_length=1_000, limit=10)
    assert stream.pulled == 0


def test_json_mode_enforces_method_gate(service):
    stream = _Stream([b"{}"])
    with pytest.raises(MethodNotAllowedError):
        _log(service, stream, method="GET")
    assert stream.pulled == 0
