"""EVM networks a Baintwallet process can be configured for."""

from __future__ import annotations

from dataclasses import dataclass

from baintwallet.errors import ConfigError


@dataclass(frozen=True)
class Chain:
    """One EVM network. A running service talks to exactly one."""

    name: str
    chain_id: int
    rpc_url: str  # public default, overridable in config
    native_symbol: str
    explorer_url: str
    poa: bool = False  # blocks carry oversized extraData
    testnet: bool = False

    def tx_url(self, tx_hash: str) -> str:
        return f"{self.explorer_url}/tx/{tx_hash}"

    def address_url(self, address: str) -> str:
        return f"{self.explorer_url}/address/{address}"


_KNOWN = (
    Chain("ethereum", 1, "https://eth.llamarpc.com", "ETH", "https://etherscan.io"),
    Chain(
        "sepolia",
        11155111,
        "https://rpc.sepolia.org",
        "ETH",
        "https://sepolia.etherscan.io",
        testnet=True,
    ),
    Chain("base", 8453, "https://mainnet.base.org", "ETH", "https://basescan.org", poa=True),
    Chain("arbitrum", 42161, "https://arb1.arbitrum.io/rpc", "ETH", "https://arbiscan.io", poa=True),
    Chain("polygon", 137, "https://polygon-rpc.com", "POL", "https://polygonscan.com", poa=True),
)

CHAINS: dict[str, Chain] = {chain.name: chain for chain in _KNOWN}


def get_chain(name: str) -> Chain:
    """Look up a chain by name (case-insensitive). Raises :class:`ConfigError`."""
    chain = CHAINS.get(name.strip().lower())
    if chain is None:
        raise ConfigError(
            f"Unknown chain '{name}'. Available: {', '.join(list_chain_names())}"
        )
    return chain


def list_chain_names() -> list[str]:
    return list(CHAINS)
