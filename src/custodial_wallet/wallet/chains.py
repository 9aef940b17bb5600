"""Network definitions for the EVM chains a deployment can custody on.

A running service is bound to exactly one of these; the table only
supplies defaults for the ``chain`` config section.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Chain:
    name: str
    chain_id: int
    rpc_url: str
    explorer_url: str

    @property
    def history_api_url(self) -> str:
        """Etherscan-compatible API root served by the explorer."""
        return f"{self.explorer_url}/api"

    def tx_url(self, tx_hash: str) -> str:
        return f"{self.explorer_url}/tx/{tx_hash}"


CHAINS: dict[str, Chain] = {
    c.name: c
    for c in (
        Chain("sepolia", 11155111, "https://ethereum-sepolia-rpc.publicnode.com",
              "https://eth-sepolia.blockscout.com"),
        Chain("ethereum", 1, "https://eth.llamarpc.com", "https://eth.blockscout.com"),
    )
}


def get_chain(name: str) -> Chain:
    """Look up a network by name (case-insensitive). Raises ``KeyError``."""
    try:
        return CHAINS[name.strip().lower()]
    except KeyError:
        raise KeyError(f"Unknown network '{name}'. Known: {', '.join(CHAINS)}") from None
