"""Ledger-history client for Blockscout/Etherscan-compatible explorers.

The explorer's ``txlist`` payload is loosely typed (numbers as strings,
``to`` empty for contract creations). Each entry is validated into a
:class:`HistoryEntry` at this boundary; entries that do not fit are logged
and dropped.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from custodial_wallet.errors import ServiceUnavailableError

logger = logging.getLogger("custodial_wallet.wallet.history")

_NO_TRANSACTIONS = "no transactions found"


class HistoryEntry(BaseModel):
    """One transaction from the explorer's ``txlist`` result."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    hash: str = Field(pattern=r"^0x[0-9a-fA-F]{64}$")
    from_address: str = Field(alias="from", pattern=r"^0x[0-9a-fA-F]{40}$")
    to_address: Optional[str] = Field(default=None, alias="to")
    value: int = Field(ge=0)
    block_number: int = Field(alias="blockNumber", ge=0)
    gas_used: int = Field(alias="gasUsed", ge=0)
    gas_price: int = Field(alias="gasPrice", ge=0)
    nonce: int = Field(ge=0)
    is_error: bool = Field(default=False, alias="isError")

    @field_validator("value", "block_number", "gas_used", "gas_price", "nonce", mode="before")
    @classmethod
    def _decimal_string(cls, v):
        # Explorers send integers as decimal strings; refuse floats and hex.
        if isinstance(v, bool):
            raise ValueError("expected an integer")
        if isinstance(v, str):
            if not v.isdigit():
                raise ValueError("expected a decimal integer string")
            return int(v)
        if isinstance(v, int):
            return v
        raise ValueError("expected an integer")

    @field_validator("to_address", mode="before")
    @classmethod
    def _empty_to_none(cls, v):
        return v or None

    @field_validator("is_error", mode="before")
    @classmethod
    def _flag(cls, v):
        if v in ("0", 0, False, None, ""):
            return False
        if v in ("1", 1, True):
            return True
        raise ValueError("isError must be '0' or '1'")

    def is_incoming_to(self, address: str) -> bool:
        addr = address.lower()
        return (
            self.to_address is not None
            and self.to_address.lower() == addr
            and self.from_address.lower() != addr
            and not self.is_error
        )


def parse_entries(raw: list) -> list[HistoryEntry]:
    """Validate raw ``txlist`` items, skipping malformed ones."""
    entries: list[HistoryEntry] = []
    for index, item in enumerate(raw):
        try:
            entries.append(HistoryEntry.model_validate(item))
        except ValidationError as exc:
            logger.warning(
                f"Skipping malformed history entry #{index}: {exc.error_count()} error(s)"
            )
    return entries


class LedgerHistoryClient:
    """Fetches the full transaction list for an address.

    Parameters
    ----------
    api_url:
        Explorer API root, e.g. ``https://eth-sepolia.blockscout.com/api``.
    api_key:
        Optional explorer key, sent as ``apikey``.
    client:
        Injected ``httpx.AsyncClient``; one is created when omitted.
    """

    def __init__(
        self,
        api_url: str,
        *,
        api_key: str = "",
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_url = api_url
        self.api_key = api_key
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def list_transactions(self, address: str) -> list[HistoryEntry]:
        params = {
            "module": "account",
            "action": "txlist",
            "address": address,
            "startblock": "0",
            "endblock": "99999999",
            "sort": "asc",
        }
        if self.api_key:
            params["apikey"] = self.api_key

        try:
            resp = await self._client.get(self.api_url, params=params)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ServiceUnavailableError(f"History provider error: {exc}") from exc

        if not isinstance(data, dict):
            raise ServiceUnavailableError("History provider returned an unexpected payload")

        result = data.get("result")
        if str(data.get("status")) != "1":
            message = str(data.get("message") or "")
            if message.lower().startswith(_NO_TRANSACTIONS) or result == []:
                return []
            raise ServiceUnavailableError(
                f"History provider error: {message or 'unknown error'}"
            )
        if not isinstance(result, list):
            raise ServiceUnavailableError("History provider returned no result list")

        return parse_entries(result)
