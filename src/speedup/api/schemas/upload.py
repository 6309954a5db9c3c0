"""Upload timing DTOs — pure Pydantic, no framework imports."""
from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator


class UploadMetadata(BaseModel):
    filename: str | None = None
    size_bytes: int = Field(default=0, ge=0)
    received_at_ms: int
    processed_at_ms: int

    @model_validator(mode="after")
    def _processed_not_before_received(self) -> "UploadMetadata":
        if self.processed_at_ms < self.received_at_ms:
            raise ValueError("processed_at_ms precedes received_at_ms")
        return self

    @computed_field
    @property
    def processing_ms(self) -> int:
        return self.processed_at_ms - self.received_at_ms


class UploadResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ok: bool = True
    message: str = "received"
    filename: str | None = None
    size: int = 0
    server_received_at: int = Field(alias="serverReceivedAt")
    server_processed_at: int = Field(alias="serverProcessedAt")
    server_processing_ms: int = Field(alias="serverProcessingMs")

    @classmethod
    def from_metadata(cls, meta: UploadMetadata) -> "UploadResponse":
        return cls(
            filename=meta.filename,
            size=meta.size_bytes,
            server_received_at=meta.received_at_ms,
            server_processed_at=meta.processed_at_ms,
            server_processing_ms=meta.processing_ms,
        )
