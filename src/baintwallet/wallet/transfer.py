"""Build, sign, broadcast, and confirm native-token transfers."""

from __future__ import annotations

import logging
from decimal import Decimal

from web3 import Web3

from baintwallet.errors import (
    GatewayError,
    InsufficientFunds,
    TransferUnconfirmed,
    ValidationError,
)
from baintwallet.logutil import mask_identity
from baintwallet.storage.models import TransferReceipt, TransferStatus
from baintwallet.wallet.custody import KeyCustodyStore
from baintwallet.wallet.gateway import ChainGateway
from baintwallet.wallet.history import TransferHistory

logger = logging.getLogger("baintwallet.wallet.transfer")

# Fixed cost of a plain value transfer; never estimated.
TRANSFER_GAS_LIMIT = 21000
# Transaction values are uint256.
MAX_WEI = 2**256 - 1


class TransferExecutor:
    """Turns a confirmed transfer intent into a mined transaction.

    Every check (address, amount, balance, fee) happens before the key is
    unlocked.  Once :meth:`ChainGateway.broadcast` has returned, failures
    surface as :class:`TransferUnconfirmed` and are never retried here.
    """

    def __init__(
        self,
        custody: KeyCustodyStore,
        gateway: ChainGateway,
        history: TransferHistory | None = None,
    ) -> None:
        self.custody = custody
        self.gateway = gateway
        self.history = history

    async def execute(
        self, identity: str, destination: str, amount: Decimal
    ) -> TransferReceipt:
        if not self.gateway.is_valid_address(destination):
            raise ValidationError("❌ Invalid recipient address.")

        try:
            value = Web3.to_wei(amount, "ether")
        except (ArithmeticError, ValueError, TypeError):
            raise ValidationError("❌ Invalid amount. Must be a positive number.") from None
        if value <= 0 or value > MAX_WEI:
            raise ValidationError("❌ Invalid amount. Must be a positive number.")

        from_address = await self.custody.address_of(identity)
        balance = await self.gateway.get_balance(from_address)
        if balance < value:
            raise InsufficientFunds("Insufficient balance")

        gas_price = await self.gateway.get_fee_rate()
        total_cost = value + gas_price * TRANSFER_GAS_LIMIT
        if balance < total_cost:
            raise InsufficientFunds("Insufficient balance for transaction + gas")

        nonce = await self.gateway.get_nonce(from_address)
        tx = {
            "to": Web3.to_checksum_address(destination),
            "value": value,
            "gas": TRANSFER_GAS_LIMIT,
            "gasPrice": gas_price,
            "nonce": nonce,
            "chainId": self.gateway.chain.chain_id,
        }
        signed = await self.custody.with_signing_handle(
            identity, lambda handle: handle.sign_transaction(tx)
        )

        tx_hash = await self.gateway.broadcast(signed.raw_transaction)
        logger.info(
            f"Broadcast {amount} {self.gateway.chain.native_symbol} for "
            f"{mask_identity(identity)} to {destination}: tx={tx_hash}"
        )
        await self._record_submitted(identity, tx_hash, from_address, destination, amount)

        try:
            inclusion = await self.gateway.await_inclusion(tx_hash)
        except Exception as exc:
            # The transaction is out; whatever went wrong, it must not be resent.
            cause = exc.cause if isinstance(exc, GatewayError) else repr(exc)
            logger.error(f"Transfer {tx_hash} broadcast but unconfirmed: {cause}")
            await self._update_status(tx_hash, TransferStatus.UNCONFIRMED)
            raise TransferUnconfirmed(tx_hash, cause) from exc

        status = TransferStatus.SUCCESS if inclusion.succeeded else TransferStatus.FAILED
        await self._update_status(tx_hash, status, inclusion.block_number)

        return TransferReceipt(
            tx_hash=tx_hash,
            from_address=from_address,
            to_address=destination,
            amount=amount,
            block_number=inclusion.block_number,
            status=status,
        )

    # ------------------------------------------------------------------
    # History (best-effort: a bookkeeping failure never masks the transfer)
    # ------------------------------------------------------------------

    async def _record_submitted(
        self,
        identity: str,
        tx_hash: str,
        from_address: str,
        to_address: str,
        amount: Decimal,
    ) -> None:
        if self.history is None:
            return
        try:
            await self.history.record_submitted(
                identity, tx_hash, from_address, to_address, str(amount)
            )
        except Exception:
            logger.exception(f"Failed to record transfer {tx_hash}")

    async def _update_status(
        self, tx_hash: str, status: TransferStatus, block_number: int | None = None
    ) -> None:
        if self.history is None:
            return
        try:
            await self.history.update_status(tx_hash, status, block_number)
        except Exception:
            logger.exception(f"Failed to update transfer {tx_hash}")
