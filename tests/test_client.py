"""SpeedupClient against the in-process app."""
import pytest

from conftest import API_KEY
from speedup.client import APIError, SpeedupClient


def test_upload_returns_probe_result(client):
    api = SpeedupClient(api_key=API_KEY, client=client)
    result = api.upload("probe.bin", b"\x00" * 2048)
    assert result.upload.size == 2048
    assert result.upload.filename == "probe.bin"
    assert result.round_trip_ms >= 0
    assert result.network_ms >= 0


def test_health(client):
    assert SpeedupClient(client=client).health().ok is True


def test_log(client):
    ack = SpeedupClient(api_key=API_KEY, client=client).log({"mbps": 1.5})
    assert ack.received is True


def test_error_envelope_raises_api_error(client):
    api = SpeedupClient(api_key="wrong", client=client)
    with pytest.raises(APIError) as exc_info:
        api.upload("x", b"x")
    assert exc_info.value.status_code == 401
    assert exc_info.value.detail == "Unauthorized"
