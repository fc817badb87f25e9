"""Error hierarchy for Baintwallet.

Every error carries a ``reply``: a short, user-safe text the command
interpreter can send back over SMS.  The exception message itself is for
logs only and is never shown to the user.
"""

from __future__ import annotations


class WalletError(Exception):
    """Base class for all Baintwallet domain errors."""

    reply: str = "❌ Something went wrong. Please try again later."


class ConfigError(WalletError):
    """Raised when the service configuration is missing or invalid."""


class ValidationError(WalletError):
    """Malformed address, amount, or command shape. Never mutates state."""

    def __init__(self, reply: str) -> None:
        super().__init__(reply)
        self.reply = reply


class NotProvisioned(WalletError):
    """No wallet exists for the identity."""

    reply = "Welcome to Baintwallet! 🎉\n\nReply START to create your wallet."


class AlreadyProvisioned(WalletError):
    """A wallet already exists for the identity."""

    reply = (
        "You already have a wallet! 👍\n\n"
        "Reply WALLET to see your address or HELP for commands."
    )


class PendingNotFound(WalletError):
    """No pending transfer is staged for the identity."""

    reply = "❌ No pending transaction found.\n\nUse SEND <address> <amount> first."


class PendingExpired(WalletError):
    """The staged transfer outlived its TTL and has been discarded."""

    reply = "❌ Transaction expired. Please create a new transaction."


class InsufficientFunds(WalletError):
    """Balance does not cover the amount plus the maximum fee."""

    def __init__(self, message: str = "Insufficient balance for transaction + gas") -> None:
        super().__init__(message)
        self.reply = f"❌ Transaction failed: {message}.\n\nNo funds were sent."


class DecryptionFailed(WalletError):
    """The stored key could not be decrypted. Fatal for this identity."""

    reply = (
        "❌ Your wallet could not be unlocked. "
        "Please contact support; do not retry."
    )


class GatewayError(WalletError):
    """The chain gateway failed (RPC, network, or node error).

    ``cause`` is a human-readable description for logs.
    """

    reply = "❌ Network error. No funds were sent. Please try again."

    def __init__(self, cause: str) -> None:
        super().__init__(cause)
        self.cause = cause


class TransferUnconfirmed(GatewayError):
    """The transfer was broadcast but inclusion could not be confirmed.

    Must not be retried as a new send: the transaction may still be mined.
    """

    def __init__(self, tx_hash: str, cause: str) -> None:
        super().__init__(cause)
        self.tx_hash = tx_hash
        self.reply = (
            "⚠️ Transaction submitted but not yet confirmed.\n\n"
            f"Hash: {tx_hash}\n\n"
            "Do NOT send again. Reply HISTORY to check its status."
        )
