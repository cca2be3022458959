"""Pydantic schemas for ad account and object reporting."""

from uuid import UUID

from pydantic import BaseModel


class AccountSpend(BaseModel):
    id: UUID
    external_id: str
    name: str | None
    platform: str
    currency: str
    timezone: str
    spend_minor: int
    spend: float
    impressions: int
    clicks: int


class AccountList(BaseModel):
    data: list[AccountSpend]


class AccountInfo(BaseModel):
    id: UUID
    external_id: str
    name: str | None
    platform: str
    currency: str
    timezone: str


class ObjectSpend(BaseModel):
    id: UUID
    external_id: str
    type: str
    name: str | None
    status: str
    parent_id: UUID | None
    parent_name: str | None
    parent_type: str | None
    spend_minor: int
    spend: float
    impressions: int
    clicks: int
    conversions: int
    ctr: float
    cpc: float
    cpm: float


class Pagination(BaseModel):
    total: int
    limit: int
    offset: int
    has_more: bool


class ObjectList(BaseModel):
    account: AccountInfo
    data: list[ObjectSpend]
    pagination: Pagination
