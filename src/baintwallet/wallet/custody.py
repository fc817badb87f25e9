"""Key custody store: one encrypted wallet per identity."""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import sqlite3
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, TypeVar, Union

from eth_account import Account
from eth_account.datastructures import SignedTransaction
from eth_account.signers.local import LocalAccount

from baintwallet.errors import AlreadyProvisioned, DecryptionFailed, NotProvisioned
from baintwallet.locks import KeyedLocks
from baintwallet.logutil import mask_identity
from baintwallet.storage.database import Database
from baintwallet.storage.models import WalletRecord
from baintwallet.wallet.keystore import decrypt_key, encrypt_key, generate_key, wipe

logger = logging.getLogger("baintwallet.wallet.custody")

T = TypeVar("T")


class SigningHandle:
    """Scope-bound capability to sign with one wallet's key.

    The handle is closed when the scope that produced it exits; any use
    after that raises ``RuntimeError``.
    """

    __slots__ = ("_account", "_address")

    def __init__(self, account: LocalAccount) -> None:
        self._account: Optional[LocalAccount] = account
        self._address = account.address

    @property
    def address(self) -> str:
        return self._address

    @property
    def closed(self) -> bool:
        return self._account is None

    def sign_transaction(self, tx: dict[str, Any]) -> SignedTransaction:
        if self._account is None:
            raise RuntimeError("Signing handle used outside its scope.")
        return self._account.sign_transaction(tx)

    def close(self) -> None:
        self._account = None

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<SigningHandle {self._address} {state}>"


class KeyCustodyStore:
    """Generates, encrypts, stores, and unlocks per-identity wallets.

    Parameters
    ----------
    db:
        Connected :class:`Database` holding the ``wallets`` table.
    master_secret:
        Process-wide secret mixed with each identity to derive the
        keystore password.
    kdf, iterations:
        Keystore KDF settings passed to eth-account.
    """

    def __init__(
        self,
        db: Database,
        master_secret: str,
        kdf: str = "scrypt",
        iterations: Optional[int] = None,
    ) -> None:
        self.db = db
        self._master_secret = master_secret
        self._kdf = kdf
        self._iterations = iterations
        self._locks = KeyedLocks()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def exists(self, identity: str) -> bool:
        row = await self.db.fetch_one(
            "SELECT 1 FROM wallets WHERE identity = ?", (identity,)
        )
        return row is not None

    async def get_record(self, identity: str) -> WalletRecord | None:
        row = await self.db.fetch_one(
            "SELECT * FROM wallets WHERE identity = ?", (identity,)
        )
        if row is None:
            return None
        return WalletRecord.model_validate(row)

    async def address_of(self, identity: str) -> str:
        """Return the wallet address. Raises :class:`NotProvisioned`."""
        row = await self.db.fetch_one(
            "SELECT address FROM wallets WHERE identity = ?", (identity,)
        )
        if row is None:
            raise NotProvisioned(f"No wallet for {mask_identity(identity)}")
        return row["address"]

    # ------------------------------------------------------------------
    # Provisioning
    # ------------------------------------------------------------------

    async def provision(self, identity: str) -> str:
        """Create the wallet for *identity* and return its public address.

        Raises :class:`AlreadyProvisioned` if one exists.  Concurrent calls
        for the same identity are serialized; the table's primary key backs
        this up across processes.
        """
        async with self._locks.hold(identity):
            if await self.exists(identity):
                raise AlreadyProvisioned(f"Wallet exists for {mask_identity(identity)}")

            address, key = generate_key()
            try:
                keystore = await asyncio.to_thread(
                    encrypt_key,
                    key,
                    self._master_secret,
                    identity,
                    self._kdf,
                    self._iterations,
                )
            finally:
                wipe(key)

            record = WalletRecord(
                identity=identity,
                address=address,
                keystore_json=json.dumps(keystore),
            )
            try:
                await self.db.execute(
                    "INSERT INTO wallets (identity, address, keystore_json, created_at) "
                    "VALUES (?, ?, ?, ?)",
                    (
                        record.identity,
                        record.address,
                        record.keystore_json,
                        record.created_at.isoformat(),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise AlreadyProvisioned(
                    f"Wallet exists for {mask_identity(identity)}"
                ) from exc

        logger.info(f"Wallet provisioned for {mask_identity(identity)}: {address}")
        return address

    # ------------------------------------------------------------------
    # Signing
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def signing_handle(self, identity: str) -> AsyncIterator[SigningHandle]:
        """Unlock the wallet for the duration of the ``async with`` block.

        The decrypted key buffer is zeroed and the handle closed on exit,
        whether the block returns or raises.
        """
        record = await self.get_record(identity)
        if record is None:
            raise NotProvisioned(f"No wallet for {mask_identity(identity)}")

        key = await asyncio.to_thread(
            decrypt_key, record.keystore_json, self._master_secret, identity
        )
        handle: SigningHandle | None = None
        try:
            account = Account.from_key(bytes(key))
            if account.address != record.address:
                raise DecryptionFailed(
                    f"Keystore for {mask_identity(identity)} does not match its address"
                )
            handle = SigningHandle(account)
            del account
            yield handle
        finally:
            if handle is not None:
                handle.close()
            wipe(key)

    async def with_signing_handle(
        self,
        identity: str,
        fn: Callable[[SigningHandle], Union[T, Awaitable[T]]],
    ) -> T:
        """Run *fn* with an unlocked :class:`SigningHandle` and return its result."""
        async with self.signing_handle(identity) as handle:
            result = fn(handle)
            if inspect.isawaitable(result):
                result = await result
            return result
