"""Pydantic models describing the registry feed snapshot."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


def _blank_to_none(value: object) -> object:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


class FeedBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, str_strip_whitespace=True)


class AssetRecord(FeedBaseModel):
    kind: Literal["asset"]
    symbol: str = Field(min_length=1)
    chain_name: str | None = None
    denom: str | None = None
    cw20: str | None = None
    key: str | None = None
    revision: int | None = Field(default=None, ge=0)

    _normalize_optional = field_validator("chain_name", "denom", "cw20", "key", mode="before")(
        _blank_to_none
    )


class ContractRecord(FeedBaseModel):
    kind: Literal["contract"]
    protocol: str = Field(min_length=1)
    contract: str = Field(min_length=1)
    address: str
    revision: int | None = Field(default=None, ge=0)


class ChannelRecord(FeedBaseModel):
    kind: Literal["channel"]
    connected_chain: str = Field(min_length=1)
    protocol: str = Field(min_length=1)
    channel_id: str
    revision: int | None = Field(default=None, ge=0)


FeedRecord = Annotated[AssetRecord | ContractRecord | ChannelRecord, Field(discriminator="kind")]

FEED_RECORD_ADAPTER: TypeAdapter[AssetRecord | ContractRecord | ChannelRecord] = TypeAdapter(
    FeedRecord
)


class FeedSnapshot(FeedBaseModel):
    """Snapshot envelope; records stay raw so one bad record cannot sink the rest."""

    revision: int = Field(ge=0)
    records: list[Any]
