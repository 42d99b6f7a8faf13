"""Pydantic models for the Cosmos SDK REST (LCD) responses we consume."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, cast

from pydantic import BaseModel, ConfigDict, Field, model_validator


class LcdBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class SmartQueryResponse(LcdBaseModel):
    data: Any


class BaseAccount(LcdBaseModel):
    address: str
    account_number: int = 0
    sequence: int = 0


class AccountResponse(LcdBaseModel):
    """``/cosmos/auth/v1beta1/accounts/{address}``.

    Vesting, module and eth-style accounts nest the base account one or two levels
    deep; the validator digs it out so callers only see ``account``.
    """

    account: BaseAccount

    @model_validator(mode="before")
    @classmethod
    def _unwrap_base_account(cls, value: object) -> object:
        if not isinstance(value, Mapping):
            return value
        payload = cast(Mapping[str, Any], value)
        account = payload.get("account")
        while isinstance(account, Mapping) and "address" not in account:
            nested = cast(Mapping[str, Any], account)
            account = nested.get("base_account") or nested.get("base_vesting_account")
            if account is None:
                break
        return {**payload, "account": account}


class TxResponse(LcdBaseModel):
    txhash: str
    height: int = 0
    code: int = 0
    codespace: str = ""
    raw_log: str = ""


class TxResponseEnvelope(LcdBaseModel):
    tx_response: TxResponse


class BroadcastRequest(LcdBaseModel):
    tx_bytes: str
    mode: str = Field(default="BROADCAST_MODE_SYNC")
