"""Baintwallet: a custodial EVM wallet driven by SMS commands."""

__version__ = "0.1.0"
