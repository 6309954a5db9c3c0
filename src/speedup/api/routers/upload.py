"""Upload timing router.

The body is consumed from ``request.stream()`` inside the service rather than
through an ``UploadFile`` parameter, so the received timestamp is taken before
the first byte is read and over-size bodies are cut off mid-stream.
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response
from starlette.requests import ClientDisconnect
from speedup.api.deps import get_auth_result, get_timing_service
from speedup.api.schemas.envelope import ErrorEnvelope
from speedup.api.schemas.upload import UploadResponse
from speedup.domain.exceptions import SpeedupError
from speedup.logging import logger
from speedup.services.auth_service import AuthResult
from speedup.services.timing_service import TimingService

router = APIRouter(tags=["upload"])

ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


@router.api_route(
    "/upload",
    methods=ALL_METHODS,
    response_model=UploadResponse,
    response_model_by_alias=True,
    responses={400: {"model": ErrorEnvelope}, 401: {"model": ErrorEnvelope},
               403: {"model": ErrorEnvelope}, 405: {"model": ErrorEnvelope}},
)
@router.api_route("/api/upload", methods=ALL_METHODS, include_in_schema=False)
async def upload(
    request: Request,
    auth_result: AuthResult = Depends(get_auth_result),
    service: TimingService = Depends(get_timing_service),
) -> Response:
    try:
        result = await service.handle_upload(
            method=request.method,
            auth_result=auth_result,
            stream=request.stream(),
            content_type=request.headers.get("content-type"),
        )
    except SpeedupError:
        raise
    except ClientDisconnect:
        logger.info("Client disconnected mid-upload; partial body discarded")
        return Response(status_code=400)
    except Exception as exc:
        logger.exception(exc)
        return JSONResponse(status_code=500, content={"ok": False, "error": "Server error"})
    return JSONResponse(content=result.model_dump(by_alias=True))
