"""Tests for the explorer client, using httpx.MockTransport."""

import httpx
import pytest

from custodial_wallet.errors import ServiceUnavailableError
from custodial_wallet.wallet.history import HistoryEntry, LedgerHistoryClient

API = "https://explorer.test/api"
ADDRESS = "0x" + "ab" * 20

ITEM = {
    "hash": "0x" + "12" * 32,
    "from": "0x" + "cd" * 20,
    "to": ADDRESS,
    "value": "1000000000000000",
    "blockNumber": "100",
    "gasUsed": "21000",
    "gasPrice": "1000000000",
    "nonce": "0",
    "isError": "0",
    "confirmations": "12",
}


def _client(handler, **kwargs) -> LedgerHistoryClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return LedgerHistoryClient(API, client=http, **kwargs)


async def test_list_transactions_parses_entries():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(request.url.params)
        return httpx.Response(200, json={"status": "1", "message": "OK", "result": [ITEM]})

    client = _client(handler, api_key="secret")
    (entry,) = await client.list_transactions(ADDRESS)

    assert seen["module"] == "account"
    assert seen["action"] == "txlist"
    assert seen["address"] == ADDRESS
    assert seen["sort"] == "asc"
    assert seen["apikey"] == "secret"
    assert entry.value == 10**15
    assert entry.block_number == 100
    assert entry.is_incoming_to(ADDRESS.upper().replace("0X", "0x"))


async def test_no_transactions_is_empty():
    def handler(request):
        return httpx.Response(
            200, json={"status": "0", "message": "No transactions found", "result": []}
        )

    assert await _client(handler).list_transactions(ADDRESS) == []


async def test_error_status_raises():
    def handler(request):
        return httpx.Response(
            200, json={"status": "0", "message": "NOTOK", "result": "Max rate limit reached"}
        )

    with pytest.raises(ServiceUnavailableError):
        await _client(handler).list_transactions(ADDRESS)


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(502, text="bad gateway"),
        httpx.Response(200, text="<html>not json</html>"),
        httpx.Response(200, json=["unexpected"]),
    ],
)
async def test_transport_failures_raise(response):
    with pytest.raises(ServiceUnavailableError):
        await _client(lambda request: response).list_transactions(ADDRESS)


async def test_connection_error_raises():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(ServiceUnavailableError):
        await _client(handler).list_transactions(ADDRESS)


async def test_malformed_items_are_dropped():
    bad = dict(ITEM, gasUsed="1.5")
    missing = {k: v for k, v in ITEM.items() if k != "from"}

    def handler(request):
        return httpx.Response(200, json={"status": "1", "result": [bad, missing, ITEM]})

    assert len(await _client(handler).list_transactions(ADDRESS)) == 1


class TestHistoryEntry:
    def test_empty_to_is_none(self):
        entry = HistoryEntry.model_validate(dict(ITEM, to=""))
        assert entry.to_address is None
        assert not entry.is_incoming_to(ADDRESS)

    def test_error_flag(self):
        entry = HistoryEntry.model_validate(dict(ITEM, isError="1"))
        assert entry.is_error
        assert not entry.is_incoming_to(ADDRESS)

    @pytest.mark.parametrize("value", ["0x10", "-1", "1e3", True, 1.5])
    def test_value_must_be_decimal_integer(self, value):
        with pytest.raises(ValueError):
            HistoryEntry.model_validate(dict(ITEM, value=value))
