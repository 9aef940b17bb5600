import pytest

from custodial_wallet.errors import InvalidAmountError
from custodial_wallet.wallet.amounts import canonical_ether, format_ether, parse_ether


@pytest.mark.parametrize(
    "amount, wei",
    [
        ("1", 10**18),
        ("0.01", 10**16),
        ("0.001", 10**15),
        (" 2.5 ", 25 * 10**17),
        ("0.000000000000000001", 1),
        ("1e-3", 10**15),
    ],
)
def test_parse_ether(amount, wei):
    assert parse_ether(amount) == wei


@pytest.mark.parametrize(
    "amount",
    ["", "abc", "0", "-1", "0.0", "NaN", "Infinity", "0.0000000000000000001", "1,5", "1e100"],
)
def test_parse_ether_rejects(amount):
    with pytest.raises(InvalidAmountError):
        parse_ether(amount)


def test_parse_ether_rejects_non_string():
    with pytest.raises(InvalidAmountError):
        parse_ether(0.5)


@pytest.mark.parametrize(
    "wei, text",
    [
        (0, "0.0"),
        (10**15, "0.001"),
        (2 * 10**18, "2.0"),
        (123456789, "0.000000000123456789"),
        (15 * 10**17, "1.5"),
    ],
)
def test_format_ether(wei, text):
    assert format_ether(wei) == text


def test_canonical_ether():
    assert canonical_ether("0.0100") == "0.01"
    assert canonical_ether("3") == "3.0"


MAX_ETHER = "115792089237316195423570985008687907853269984665640564039457.584007913129639935"


def test_parse_ether_uint256_bound():
    assert parse_ether(MAX_ETHER) == 2**256 - 1
    with pytest.raises(InvalidAmountError):
        parse_ether(MAX_ETHER[:-1] + "6")


def test_format_ether_matches_web3():
    from web3 import Web3

    wei = 987654321 * 10**12
    assert format_ether(wei) == str(Web3.from_wei(wei, "ether")) == "0.987654321"
