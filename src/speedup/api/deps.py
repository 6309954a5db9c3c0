"""FastAPI dependencies."""
from __future__ import annotations
from fastapi import Depends, Header, Query, Request
from speedup.config import Settings
from speedup.services.auth_service import AuthResult, AuthService, extract_credential
from speedup.services.timing_service import TimingService


def get_app_settings(request: Request) -> Settings:
    """Settings built once by create_app() and pinned on app.state."""
    return request.app.state.settings


def get_credential(
    x_api_key: str | None = Header(default=None),
    api_key: str | None = Query(default=None),
    authorization: str | None = Header(default=None),
) -> str | None:
    return extract_credential(x_api_key, api_key, authorization)


def get_auth_result(
    credential: str | None = Depends(get_credential),
    settings: Settings = Depends(get_app_settings),
) -> AuthResult:
    return AuthService(settings).check(credential)


def get_timing_service(settings: Settings = Depends(get_app_settings)) -> TimingService:
    return TimingService(settings)
