"""Baintwallet storage layer -- async SQLite database and Pydantic models."""

from baintwallet.storage.database import Database, get_database
from baintwallet.storage.models import (
    PendingTransfer,
    TransferReceipt,
    TransferRecord,
    TransferStatus,
    WalletRecord,
)

__all__ = [
    "Database",
    "get_database",
    "PendingTransfer",
    "TransferReceipt",
    "TransferRecord",
    "TransferStatus",
    "WalletRecord",
]
