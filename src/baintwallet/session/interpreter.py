"""SMS command interpreter: one inbound message in, one reply out."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Awaitable, Callable

from web3 import Web3

from baintwallet.errors import (
    AlreadyProvisioned,
    DecryptionFailed,
    GatewayError,
    NotProvisioned,
    TransferUnconfirmed,
    ValidationError,
    WalletError,
)
from baintwallet.logutil import mask_identity
from baintwallet.session.commands import (
    EXAMPLE_ADDRESS,
    OPEN_COMMANDS,
    CommandKind,
    ParsedCommand,
    parse_command,
    parse_send,
)
from baintwallet.session.pending import PendingTransferCache
from baintwallet.storage.models import TransferStatus
from baintwallet.wallet.custody import KeyCustodyStore
from baintwallet.wallet.gateway import ChainGateway
from baintwallet.wallet.history import TransferHistory
from baintwallet.wallet.transfer import TransferExecutor

logger = logging.getLogger("baintwallet.session.interpreter")

HISTORY_LIMIT = 5

GENERIC_FAILURE_REPLY = "❌ Something went wrong. Please try again later."

# Replies used when a command fails for a reason the user cannot act on.
_FAILURE_REPLIES: dict[CommandKind, str] = {
    CommandKind.START: "❌ Failed to create wallet. Please try again.",
    CommandKind.BALANCE: "❌ Failed to fetch balance. Please try again.",
    CommandKind.WALLET: "❌ Failed to retrieve wallet info.",
    CommandKind.SEND: "❌ Failed to prepare transaction.",
    CommandKind.CONFIRM: (
        "❌ Transaction failed due to a network error. No funds were sent.\n\n"
        "Use SEND <address> <amount> to try again."
    ),
    CommandKind.HISTORY: "❌ Failed to fetch transaction history.",
}

HELP_REPLY = (
    "📱 Baintwallet Commands:\n\n"
    "START - Create your wallet\n"
    "BALANCE - Check balance\n"
    "WALLET - Get your address\n"
    "SEND <addr> <amt> - Send tokens\n"
    "CONFIRM - Confirm transaction\n"
    "CANCEL - Cancel transaction\n"
    "HISTORY - View transactions\n"
    "HELP - Show this message\n\n"
    "Example:\n"
    f"SEND {EXAMPLE_ADDRESS[:10]}... 0.01"
)


@dataclass(frozen=True)
class Reply:
    """The text to send back, plus the error behind it if the command failed."""

    text: str
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class WalletSnapshot:
    address: str
    balance: Decimal
    symbol: str
    chain: str


class CommandInterpreter:
    """Drives the per-identity session state machine.

    State is never stored here: ``UNPROVISIONED``, ``READY`` and
    ``AWAITING_CONFIRMATION`` are read off the custody store and the
    pending transfer cache.
    """

    def __init__(
        self,
        custody: KeyCustodyStore,
        gateway: ChainGateway,
        pending: PendingTransferCache,
        history: TransferHistory | None = None,
        executor: TransferExecutor | None = None,
    ) -> None:
        self.custody = custody
        self.gateway = gateway
        self.pending = pending
        self.history = history
        self.executor = executor or TransferExecutor(custody, gateway, history)
        self._handlers: dict[CommandKind, Callable[[str, ParsedCommand], Awaitable[str]]] = {
            CommandKind.START: self._start,
            CommandKind.BALANCE: self._balance,
            CommandKind.WALLET: self._wallet,
            CommandKind.SEND: self._send,
            CommandKind.CONFIRM: self._confirm,
            CommandKind.CANCEL: self._cancel,
            CommandKind.HISTORY: self._history,
            CommandKind.HELP: self._help,
            CommandKind.UNKNOWN: self._unknown,
        }

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def handle(self, identity: str, text: str) -> str:
        """Process one message and return the reply text. Never raises."""
        reply = await self.respond(identity, text)
        return reply.text

    async def respond(self, identity: str, text: str) -> Reply:
        """Process one message and return a :class:`Reply`."""
        command = parse_command(text)
        logger.info(f"{mask_identity(identity)} -> {command.kind.value}")
        try:
            if command.kind not in OPEN_COMMANDS and not await self.custody.exists(identity):
                return Reply(NotProvisioned.reply)
            return Reply(await self._handlers[command.kind](identity, command))
        except WalletError as exc:
            self._log_failure(identity, command, exc)
            return Reply(self._render(command.kind, exc), error=exc)
        except Exception as exc:
            logger.exception(
                f"Unhandled error processing {command.kind.value} for {mask_identity(identity)}"
            )
            return Reply(_FAILURE_REPLIES.get(command.kind, GENERIC_FAILURE_REPLY), error=exc)

    async def describe_wallet(self, identity: str) -> WalletSnapshot:
        """Address and current balance. Raises :class:`NotProvisioned`."""
        address = await self.custody.address_of(identity)
        balance_wei = await self.gateway.get_balance(address)
        chain = self.gateway.chain
        return WalletSnapshot(
            address=address,
            balance=Decimal(str(Web3.from_wei(balance_wei, "ether"))),
            symbol=chain.native_symbol,
            chain=chain.name,
        )

    # ------------------------------------------------------------------
    # Command handlers
    # ------------------------------------------------------------------

    async def _start(self, identity: str, command: ParsedCommand) -> str:
        if await self.custody.exists(identity):
            return AlreadyProvisioned.reply
        try:
            address = await self.custody.provision(identity)
        except AlreadyProvisioned:
            # Lost a race with a concurrent START for the same identity.
            return AlreadyProvisioned.reply
        return (
            "✅ Wallet created!\n\n"
            f"Address: {address}\n\n"
            "⚠️ IMPORTANT: Keep your phone secure. Your private key is "
            "encrypted and stored securely.\n\n"
            "Reply HELP for available commands."
        )

    async def _balance(self, identity: str, command: ParsedCommand) -> str:
        snapshot = await self.describe_wallet(identity)
        return (
            "💰 Your Balance:\n\n"
            f"{snapshot.balance:.4f} {snapshot.symbol}\n\n"
            f"Chain: {snapshot.chain}"
        )

    async def _wallet(self, identity: str, command: ParsedCommand) -> str:
        address = await self.custody.address_of(identity)
        return (
            "🏦 Your Wallet:\n\n"
            f"{address}\n\n"
            "Reply BALANCE to check your balance."
        )

    async def _send(self, identity: str, command: ParsedCommand) -> str:
        request = parse_send(command)
        self.pending.put(identity, request.destination, request.amount)
        minutes = int(self.pending.ttl.total_seconds() // 60)
        return (
            "📤 Send Transaction:\n\n"
            f"To: {request.destination}\n"
            f"Amount: {request.amount} {self.gateway.chain.native_symbol}\n\n"
            f"⚠️ Reply CONFIRM within {minutes} minutes to proceed or CANCEL to abort.\n\n"
            "This transaction cannot be reversed!"
        )

    async def _confirm(self, identity: str, command: ParsedCommand) -> str:
        # Consumed before the transfer runs; a failed transfer is never replayed.
        entry = self.pending.take_if_fresh(identity)
        receipt = await self.executor.execute(identity, entry.destination, entry.amount)
        chain = self.gateway.chain
        if receipt.status is not TransferStatus.SUCCESS:
            return (
                "❌ Transaction was mined but failed on-chain.\n\n"
                f"Hash: {receipt.tx_hash}\n\n"
                f"Track at: {chain.tx_url(receipt.tx_hash)}"
            )
        return (
            "✅ Transaction Sent!\n\n"
            f"Hash: {receipt.tx_hash}\n"
            f"Amount: {receipt.amount} {chain.native_symbol}\n"
            f"To: {receipt.to_address}\n"
            f"Block: {receipt.block_number}\n\n"
            f"Track at: {chain.tx_url(receipt.tx_hash)}"
        )

    async def _cancel(self, identity: str, command: ParsedCommand) -> str:
        if not self.pending.clear(identity):
            return "ℹ️ No pending transaction to cancel."
        return "✅ Transaction cancelled."

    async def _history(self, identity: str, command: ParsedCommand) -> str:
        if self.history is None:
            return "📜 No transaction history yet."
        records = await self.history.recent(identity, HISTORY_LIMIT)
        if not records:
            return "📜 No transaction history yet."

        symbol = self.gateway.chain.native_symbol
        lines = ["📜 Recent Transactions:", ""]
        for index, record in enumerate(records, start=1):
            lines.append(f"{index}. SENT {record.amount} {symbol} ({record.status.value})")
            lines.append(f"   {record.tx_hash[:10]}...")
            lines.append(f"   {record.created_at:%Y-%m-%d %H:%M}")
            lines.append("")
        lines.append("Reply WALLET for your address.")
        return "\n".join(lines)

    async def _help(self, identity: str, command: ParsedCommand) -> str:
        return HELP_REPLY

    async def _unknown(self, identity: str, command: ParsedCommand) -> str:
        return f"Unknown command: {command.token[:20]}\n\nReply HELP for available commands."

    # ------------------------------------------------------------------
    # Error rendering
    # ------------------------------------------------------------------

    @staticmethod
    def _render(kind: CommandKind, exc: WalletError) -> str:
        if isinstance(exc, GatewayError) and not isinstance(exc, TransferUnconfirmed):
            return _FAILURE_REPLIES.get(kind, exc.reply)
        return exc.reply

    @staticmethod
    def _log_failure(identity: str, command: ParsedCommand, exc: WalletError) -> None:
        who = mask_identity(identity)
        if isinstance(exc, (DecryptionFailed, TransferUnconfirmed)):
            logger.error(f"{command.kind.value} for {who} failed: {exc}")
        elif isinstance(exc, GatewayError):
            logger.warning(f"{command.kind.value} for {who} failed: {exc}")
        elif isinstance(exc, ValidationError):
            logger.debug(f"{command.kind.value} for {who} rejected")
        else:
            logger.info(f"{command.kind.value} for {who}: {type(exc).__name__}")
