"""Helpers for keeping personal data out of log lines."""

from __future__ import annotations


def mask_identity(identity: str) -> str:
    """Render an identity for logs, keeping only the last four characters."""
    if len(identity) <= 4:
        return "***"
    return f"***{identity[-4:]}"
