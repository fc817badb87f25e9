"""Encrypted keystore helpers using eth-account.

Each wallet is stored as a standard Web3 Secret Storage (keystore v3) JSON
document.  The keystore password is never chosen by a human: it is derived
from the process-wide master secret and the owner's identity, so a keystore
copied onto another identity's record cannot be opened.
"""

from __future__ import annotations

import hashlib
import hmac
import json
from typing import Any, Optional

from eth_account import Account

from baintwallet.errors import DecryptionFailed


def derive_password(master_secret: str, identity: str) -> str:
    """Derive the keystore password for *identity* (HMAC-SHA256, hex)."""
    return hmac.new(
        master_secret.encode("utf-8"),
        identity.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def generate_key() -> tuple[str, bytearray]:
    """Generate a new keypair.

    Returns
    -------
    tuple[str, bytearray]
        The checksummed address and the raw private key in a mutable buffer
        the caller must zero with :func:`wipe` once it has been encrypted.
    """
    acct = Account.create()
    return acct.address, bytearray(acct.key)


def encrypt_key(
    private_key: bytes | bytearray,
    master_secret: str,
    identity: str,
    kdf: str = "scrypt",
    iterations: Optional[int] = None,
) -> dict[str, Any]:
    """Encrypt a raw private key into a keystore v3 document.

    Parameters
    ----------
    private_key:
        The raw 32-byte private key.
    master_secret, identity:
        Inputs to :func:`derive_password`.
    kdf:
        ``"scrypt"`` (default) or ``"pbkdf2"``.
    iterations:
        KDF work factor; ``None`` uses the eth-account default.
    """
    password = derive_password(master_secret, identity)
    return Account.encrypt(bytes(private_key), password, kdf=kdf, iterations=iterations)


def decrypt_key(
    keystore: dict[str, Any] | str,
    master_secret: str,
    identity: str,
) -> bytearray:
    """Decrypt a keystore document back into the raw private key.

    Returns
    -------
    bytearray
        A mutable copy of the key so it can be zeroed after use.

    Raises
    ------
    DecryptionFailed
        If the keystore is malformed or was not encrypted for *identity*.
    """
    try:
        data = json.loads(keystore) if isinstance(keystore, str) else keystore
        password = derive_password(master_secret, identity)
        return bytearray(Account.decrypt(data, password))
    except (ValueError, KeyError, TypeError) as exc:
        # Not chained: the underlying exception may echo keystore fields.
        raise DecryptionFailed(f"Keystore could not be decrypted: {type(exc).__name__}") from None


def wipe(buffer: bytearray) -> None:
    """Overwrite a key buffer with zeros in place."""
    for i in range(len(buffer)):
        buffer[i] = 0

