"""Best-effort record of transfers broadcast on behalf of each identity."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from baintwallet.storage.database import Database
from baintwallet.storage.models import TransferRecord, TransferStatus

logger = logging.getLogger("baintwallet.wallet.history")


class TransferHistory:
    """Writes and reads the ``transfers`` table."""

    def __init__(self, db: Database) -> None:
        self.db = db

    async def record_submitted(
        self,
        identity: str,
        tx_hash: str,
        from_address: str,
        to_address: str,
        amount: str,
    ) -> TransferRecord:
        """Insert a row for a transfer that has just been broadcast."""
        record = TransferRecord(
            identity=identity,
            tx_hash=tx_hash,
            from_address=from_address,
            to_address=to_address,
            amount=amount,
        )
        await self.db.execute(
            "INSERT INTO transfers "
            "(id, identity, tx_hash, from_address, to_address, amount, status, "
            "created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                record.id,
                record.identity,
                record.tx_hash,
                record.from_address,
                record.to_address,
                record.amount,
                record.status.value,
                record.created_at.isoformat(),
                record.updated_at.isoformat(),
            ),
        )
        return record

    async def update_status(
        self,
        tx_hash: str,
        status: TransferStatus,
        block_number: int | None = None,
    ) -> None:
        updated = await self.db.execute(
            "UPDATE transfers SET status = ?, block_number = ?, updated_at = ? "
            "WHERE tx_hash = ?",
            (
                status.value,
                block_number,
                datetime.now(timezone.utc).isoformat(),
                tx_hash,
            ),
        )
        if not updated:
            logger.warning(f"No recorded transfer {tx_hash} to mark {status.value}")
            return
        logger.info(f"Transfer {tx_hash} is now {status.value}")

    async def recent(self, identity: str, limit: int = 5) -> list[TransferRecord]:
        """Newest-first transfers for *identity*."""
        rows = await self.db.fetch_all(
            "SELECT * FROM transfers WHERE identity = ? "
            "ORDER BY created_at DESC LIMIT ?",
            (identity, limit),
        )
        return [TransferRecord.model_validate(r) for r in rows]
