"""Ether amount parsing and formatting.

Amounts travel as decimal strings at the edges and as integer wei inside.
Unit conversion is web3's ``to_wei``/``from_wei``.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from web3 import Web3

from custodial_wallet.errors import InvalidAmountError

ETHER_DECIMALS = 18


def parse_ether(amount: str) -> int:
    """Parse a positive ether amount string into wei.

    Raises ``InvalidAmountError`` for anything that is not a finite,
    positive number representable in whole wei.
    """
    if not isinstance(amount, str):
        raise InvalidAmountError(f"Amount must be a decimal string, got {type(amount).__name__}")
    try:
        value = Decimal(amount.strip())
    except InvalidOperation:
        raise InvalidAmountError(f"Invalid amount '{amount[:32]}'") from None
    if not value.is_finite() or value <= 0:
        raise InvalidAmountError("Amount must be a positive number of ether")
    # to_wei truncates fractional wei
    if -value.as_tuple().exponent > ETHER_DECIMALS:
        raise InvalidAmountError("Amount has more than 18 decimal places")
    try:
        return Web3.to_wei(value, "ether")
    except ValueError:
        raise InvalidAmountError("Amount exceeds the largest transferable value") from None


def format_ether(wei: int) -> str:
    """Render wei as ether with at least one fractional digit.

    ``0 -> "0.0"``, ``10**15 -> "0.001"``, ``2 * 10**18 -> "2.0"``.
    """
    text = f"{Decimal(Web3.from_wei(int(wei), 'ether')):f}"
    return text if "." in text else f"{text}.0"


def canonical_ether(amount: str) -> str:
    """Normalize a valid amount string, e.g. ``"0.0100" -> "0.01"``."""
    return format_ether(parse_ether(amount))
