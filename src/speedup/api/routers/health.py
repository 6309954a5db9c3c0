"""Liveness and banner endpoints; no auth."""
from fastapi import APIRouter
from fastapi.responses import PlainTextResponse
from speedup.api.schemas.envelope import HealthResponse
from speedup.services.timing_service import now_ms

router = APIRouter(tags=["ops"])

BANNER = 'Upload timing server. POST /upload with multipart/form-data field "file".'


@router.get("/api/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(ts=now_ms())


@router.get("/", response_class=PlainTextResponse, include_in_schema=False)
def index() -> str:
    return BANNER
