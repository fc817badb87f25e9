"""Per-identity SMS session: command parsing, pending transfers, replies."""

from baintwallet.session.commands import CommandKind, ParsedCommand, parse_command
from baintwallet.session.interpreter import CommandInterpreter, Reply, WalletSnapshot
from baintwallet.session.pending import PendingTransferCache

__all__ = [
    "CommandInterpreter",
    "CommandKind",
    "ParsedCommand",
    "PendingTransferCache",
    "Reply",
    "WalletSnapshot",
    "parse_command",
]
