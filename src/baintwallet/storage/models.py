"""Pydantic models for wallet records, pending transfers, and receipts."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class TransferStatus(str, Enum):
    SUBMITTED = "submitted"
    SUCCESS = "success"
    FAILED = "failed"
    UNCONFIRMED = "unconfirmed"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _new_id() -> str:
    """Generate a short hex ID (12 characters)."""
    return uuid.uuid4().hex[:12]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Record models
# ---------------------------------------------------------------------------

class WalletRecord(BaseModel):
    """Maps to the ``wallets`` table.

    ``keystore_json`` is the encrypted keystore; the plaintext key is never
    part of any model.
    """

    identity: str
    address: str
    keystore_json: str
    created_at: datetime = Field(default_factory=utcnow)


class PendingTransfer(BaseModel):
    """A staged, unsigned transfer awaiting CONFIRM. Held in memory only."""

    identity: str
    destination: str
    amount: Decimal
    created_at: datetime = Field(default_factory=utcnow)


class TransferReceipt(BaseModel):
    """Result of a confirmed transfer. Returned once, not stored."""

    tx_hash: str
    from_address: str
    to_address: str
    amount: Decimal
    block_number: Optional[int] = None
    status: TransferStatus


class TransferRecord(BaseModel):
    """Maps to the ``transfers`` table (best-effort history)."""

    id: str = Field(default_factory=_new_id)
    identity: str
    tx_hash: str
    from_address: str
    to_address: str
    amount: str  # stored as string to preserve decimal precision
    status: TransferStatus = TransferStatus.SUBMITTED
    block_number: Optional[int] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
