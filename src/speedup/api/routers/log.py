"""Speed-test telemetry router."""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response
from starlette.requests import ClientDisconnect
from speedup.api.deps import get_auth_result, get_timing_service
from speedup.api.routers.upload import ALL_METHODS
from speedup.api.schemas.envelope import ErrorEnvelope
from speedup.api.schemas.log import LogAck
from speedup.domain.exceptions import SpeedupError
from speedup.logging import logger
from speedup.services.auth_service import AuthResult
from speedup.services.timing_service import TimingService

router = APIRouter(prefix="/api", tags=["log"])


def _content_length(request: Request) -> int | None:
    raw = request.headers.get("content-length")
    if raw is None or not raw.isdigit():
        return None
    return int(raw)


@router.api_route(
    "/log",
    methods=ALL_METHODS,
    response_model=LogAck,
    responses={400: {"model": ErrorEnvelope}, 401: {"model": ErrorEnvelope},
               403: {"model": ErrorEnvelope}, 405: {"model": ErrorEnvelope}},
)
async def log(
    request: Request,
    auth_result: AuthResult = Depends(get_auth_result),
    service: TimingService = Depends(get_timing_service),
) -> Response:
    try:
        ack = await service.handle_log(
            method=request.method,
            auth_result=auth_result,
            stream=request.stream(),
            content_length=_content_length(request),
        )
    except SpeedupError:
        raise
    except ClientDisconnect:
        logger.info("Client disconnected while sending telemetry")
        return Response(status_code=400)
    except Exception as exc:
        logger.exception(exc)
        return JSONResponse(status_code=500, content={"ok": False, "error": "Server error"})
    return JSONResponse(content=ack.model_dump())
