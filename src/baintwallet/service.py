"""Wires config, storage, custody, gateway, and the interpreter together."""

from __future__ import annotations

import logging
from datetime import timedelta
from pathlib import Path

from baintwallet.config import (
    WalletServiceConfig,
    get_root_dir,
    load_config,
    resolve_database_path,
)
from baintwallet.session.interpreter import CommandInterpreter
from baintwallet.session.pending import PendingTransferCache
from baintwallet.storage.database import Database, get_database
from baintwallet.wallet.chains import get_chain
from baintwallet.wallet.custody import KeyCustodyStore
from baintwallet.wallet.gateway import ChainGateway, Web3Gateway
from baintwallet.wallet.history import TransferHistory

logger = logging.getLogger("baintwallet.service")


class WalletService:
    """A running Baintwallet instance. Create with :meth:`load`."""

    def __init__(
        self,
        config: WalletServiceConfig,
        db: Database,
        gateway: ChainGateway,
        interpreter: CommandInterpreter,
    ) -> None:
        self.config = config
        self.db = db
        self.gateway = gateway
        self.interpreter = interpreter

    @classmethod
    async def load(
        cls,
        base: Path | None = None,
        config: WalletServiceConfig | None = None,
        gateway: ChainGateway | None = None,
    ) -> WalletService:
        """Load config from ``<base>/.baintwallet/config.yaml`` and connect.

        Raises :class:`~baintwallet.errors.ConfigError` if the master secret
        is not configured.
        """
        root = get_root_dir(base)
        if config is None:
            config = load_config(root / "config.yaml")
        master_secret = config.custody.require_secret()

        if gateway is None:
            chain = get_chain(config.chain.name)
            gateway = Web3Gateway(
                chain,
                rpc_url=config.chain.rpc_url,
                confirmation_timeout=config.chain.confirmation_timeout,
            )

        db = get_database(resolve_database_path(config, root))
        await db.connect()

        custody = KeyCustodyStore(
            db,
            master_secret,
            kdf=config.custody.kdf,
            iterations=config.custody.iterations,
        )
        pending = PendingTransferCache(
            ttl=timedelta(seconds=config.session.pending_ttl_seconds),
            max_entries=config.session.max_pending,
        )
        interpreter = CommandInterpreter(
            custody=custody,
            gateway=gateway,
            pending=pending,
            history=TransferHistory(db),
        )
        logger.info(f"{config.name} ready on {gateway.chain.name}")
        return cls(config, db, gateway, interpreter)

    async def shutdown(self) -> None:
        """Close the database and the gateway's connections."""
        await self.db.close()
        close = getattr(self.gateway, "close", None)
        if close is not None:
            await close()
