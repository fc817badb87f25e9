"""Custodial wallet engine for Baintwallet.

Provides per-identity Ethereum-compatible wallets with encrypted keystores,
a chain gateway over web3.py, and transfer construction with balance and fee
checks.  Plaintext keys exist only inside a signing handle's scope.
"""
