"""Pydantic schemas for sync requests and job payloads."""

from datetime import date
from uuid import UUID

from pydantic import BaseModel, field_validator, model_validator

from adledger.db.enums import SUPPORTED_PLATFORMS, ChunkGranularity, Platform


class _DateWindow(BaseModel):
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def check_order(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class SyncRequest(_DateWindow):
    """Request body for starting a sync."""

    granularity: ChunkGranularity | None = None


class SyncChunkPayload(_DateWindow):
    """Payload of one chunk sync job."""

    platform: Platform = Platform.META

    @field_validator("platform")
    @classmethod
    def check_supported(cls, value: Platform) -> Platform:
        if value not in SUPPORTED_PLATFORMS:
            raise ValueError(f"platform {value.value} is not supported")
        return value


class SyncQueued(BaseModel):
    job_ids: list[UUID]
    chunks: int


class SyncResponse(BaseModel):
    data: SyncQueued

