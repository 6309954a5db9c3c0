"""Telemetry log DTOs."""
from __future__ import annotations
from pydantic import BaseModel


class LogAck(BaseModel):
    ok: bool = True
    received: bool = True
