"""Response envelopes shared by every endpoint."""
from __future__ import annotations
from pydantic import BaseModel


class ErrorEnvelope(BaseModel):
    ok: bool = False
    error: str


class HealthResponse(BaseModel):
    ok: bool = True
    ts: int
