"""Parse inbound SMS text into typed commands."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from baintwallet.errors import ValidationError
from baintwallet.wallet.transfer import MAX_WEI

# Smallest unit is 1 wei = 1e-18 of the native token.
MAX_DECIMALS = 18
ADDRESS_LENGTH = 42
ADDRESS_PREFIX = "0x"
EXAMPLE_ADDRESS = "0x742d35Cc6634C0532925a3b844Bc9e7595f0bEb0"


class CommandKind(str, Enum):
    START = "START"
    BALANCE = "BALANCE"
    WALLET = "WALLET"
    SEND = "SEND"
    CONFIRM = "CONFIRM"
    CANCEL = "CANCEL"
    HISTORY = "HISTORY"
    HELP = "HELP"
    UNKNOWN = "UNKNOWN"


_ALIASES: dict[str, CommandKind] = {
    "BAL": CommandKind.BALANCE,
    "ADDRESS": CommandKind.WALLET,
    "TX": CommandKind.HISTORY,
}

# Commands that work before a wallet exists.
OPEN_COMMANDS = frozenset({CommandKind.START, CommandKind.HELP})


@dataclass(frozen=True)
class ParsedCommand:
    kind: CommandKind
    token: str  # first token, upper-cased, as the user typed it
    args: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class SendRequest:
    destination: str
    amount: Decimal


def parse_command(text: str) -> ParsedCommand:
    """Split *text* on whitespace and classify the first token.

    Never raises: anything unrecognized becomes :attr:`CommandKind.UNKNOWN`.
    """
    parts = (text or "").split()
    if not parts:
        return ParsedCommand(CommandKind.UNKNOWN, "")
    token = parts[0].upper()
    try:
        kind = CommandKind(token)
    except ValueError:
        kind = _ALIASES.get(token, CommandKind.UNKNOWN)
    return ParsedCommand(kind, token, tuple(parts[1:]))


def parse_send(command: ParsedCommand) -> SendRequest:
    """Validate ``SEND <address> <amount>``.

    Raises :class:`ValidationError` with the reply to send back.
    """
    if len(command.args) != 2:
        raise ValidationError(
            "❌ Invalid format.\n\n"
            "Use: SEND <address> <amount>\n\n"
            f"Example: SEND {EXAMPLE_ADDRESS} 0.01"
        )
    destination, raw_amount = command.args

    if not destination.startswith(ADDRESS_PREFIX) or len(destination) != ADDRESS_LENGTH:
        raise ValidationError(
            "❌ Invalid address format. Address must start with 0x "
            "and be 42 characters long."
        )

    amount = parse_amount(raw_amount)
    return SendRequest(destination=destination, amount=amount)


def parse_amount(raw: str) -> Decimal:
    """Parse a finite, strictly positive decimal that fits in a wei value."""
    try:
        amount = Decimal(raw)
    except ArithmeticError:
        amount = None
    if amount is None or not amount.is_finite() or amount <= 0:
        raise ValidationError("❌ Invalid amount. Must be a positive number.")
    if _decimal_places(amount) > MAX_DECIMALS:
        raise ValidationError(
            f"❌ Invalid amount. At most {MAX_DECIMALS} decimal places are allowed."
        )
    # adjusted() bounds the magnitude before any big-integer arithmetic.
    if amount.adjusted() + MAX_DECIMALS > 78 or to_base_units(amount) > MAX_WEI:
        raise ValidationError("❌ Invalid amount. Too large to send.")
    return amount


def _decimal_places(amount: Decimal) -> int:
    _, digits, exponent = amount.as_tuple()
    text = "".join(map(str, digits))
    trailing_zeros = len(text) - len(text.rstrip("0"))
    return max(0, -(exponent + trailing_zeros))


def to_base_units(amount: Decimal) -> int:
    """Exact wei value of *amount*, without going through a decimal context.

    Assumes at most 18 significant decimal places.
    """
    _, digits, exponent = amount.as_tuple()
    coefficient = int("".join(map(str, digits)))
    shift = exponent + MAX_DECIMALS
    if shift >= 0:
        return coefficient * 10**shift
    return coefficient // 10**-shift
