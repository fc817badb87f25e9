"""Chain gateway: the blockchain operations the transaction engine consumes."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Protocol, TypeVar

from web3 import AsyncWeb3, Web3
from web3.middleware import ExtraDataToPOAMiddleware

from baintwallet.errors import GatewayError
from baintwallet.wallet.chains import Chain

logger = logging.getLogger("baintwallet.wallet.gateway")

T = TypeVar("T")


@dataclass(frozen=True)
class InclusionReceipt:
    """What the chain reports once a transaction is mined."""

    tx_hash: str
    block_number: int
    status: int  # 1 = success, 0 = reverted

    @property
    def succeeded(self) -> bool:
        return self.status == 1


class ChainGateway(Protocol):
    """Boundary to the chain. Implementations raise only :class:`GatewayError`."""

    chain: Chain

    async def get_balance(self, address: str) -> int:
        """Native balance in wei."""
        ...

    async def get_fee_rate(self) -> int:
        """Current gas price in wei."""
        ...

    def is_valid_address(self, value: str) -> bool:
        ...

    async def get_nonce(self, address: str) -> int:
        ...

    async def broadcast(self, raw_tx: bytes) -> str:
        """Submit a signed transaction and return its 0x-prefixed hash."""
        ...

    async def await_inclusion(self, tx_hash: str) -> InclusionReceipt:
        ...


class Web3Gateway:
    """:class:`ChainGateway` backed by a web3.py async HTTP provider."""

    def __init__(
        self,
        chain: Chain,
        rpc_url: str | None = None,
        confirmation_timeout: float = 180.0,
    ) -> None:
        self.chain = chain
        self.confirmation_timeout = confirmation_timeout
        self._w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url or chain.rpc_url))

        if chain.poa:
            self._w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)

    async def _call(self, what: str, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except Exception as exc:
            logger.warning(f"{what} failed on {self.chain.name}: {exc}")
            raise GatewayError(f"{what} failed: {exc}") from exc

    async def get_balance(self, address: str) -> int:
        checksum = Web3.to_checksum_address(address)
        return await self._call("get_balance", self._w3.eth.get_balance(checksum))

    async def get_fee_rate(self) -> int:
        return await self._call("gas_price", self._w3.eth.gas_price)

    def is_valid_address(self, value: str) -> bool:
        return Web3.is_address(value)

    async def get_nonce(self, address: str) -> int:
        checksum = Web3.to_checksum_address(address)
        return await self._call(
            "get_transaction_count",
            self._w3.eth.get_transaction_count(checksum, "pending"),
        )

    async def broadcast(self, raw_tx: bytes) -> str:
        tx_hash = await self._call(
            "send_raw_transaction", self._w3.eth.send_raw_transaction(raw_tx)
        )
        return Web3.to_hex(tx_hash)

    async def await_inclusion(self, tx_hash: str) -> InclusionReceipt:
        receipt = await self._call(
            "wait_for_transaction_receipt",
            self._w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.confirmation_timeout
            ),
        )
        try:
            return InclusionReceipt(
                tx_hash=tx_hash,
                block_number=receipt["blockNumber"],
                status=receipt["status"],
            )
        except (KeyError, TypeError) as exc:
            raise GatewayError(f"malformed receipt for {tx_hash}: {exc!r}") from exc

    async def close(self) -> None:
        await self._w3.provider.disconnect()
