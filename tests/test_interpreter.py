import asyncio
import unittest
from decimal import Decimal

from eth_account import Account
from web3 import Web3

from baintwallet.errors import (
    DecryptionFailed,
    GatewayError,
    InsufficientFunds,
    NotProvisioned,
    PendingExpired,
    PendingNotFound,
    TransferUnconfirmed,
    ValidationError,
)
from baintwallet.storage.models import TransferStatus
from tests.fakes import (
    DEST,
    GWEI,
    ONE_ETH,
    FakeGateway,
    ManualClock,
    decode_legacy_tx,
    make_db,
    make_interpreter,
)

ALICE = "+15551234567"


class InterpreterTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.db = await make_db()
        self.gateway = FakeGateway()
        self.clock = ManualClock()
        self.interpreter = make_interpreter(self.db, self.gateway, self.clock)

    async def asyncTearDown(self) -> None:
        await self.db.close()

    async def start(self, identity: str = ALICE) -> str:
        await self.interpreter.handle(identity, "START")
        return await self.interpreter.custody.address_of(identity)


class OnboardingTests(InterpreterTestCase):
    async def test_unprovisioned_identity_gets_onboarding_prompt(self) -> None:
        for text in ("BALANCE", "WALLET", "CONFIRM", "CANCEL", "HISTORY", "whatever"):
            with self.subTest(text=text):
                reply = await self.interpreter.handle(ALICE, text)
                self.assertIn("Reply START", reply)

    async def test_guard_runs_before_send_validation(self) -> None:
        reply = await self.interpreter.respond(ALICE, "SEND notanaddress 1")
        self.assertIn("Reply START", reply.text)
        self.assertTrue(reply.ok)
        self.assertIsNone(self.interpreter.pending.peek(ALICE))

    async def test_help_needs_no_wallet(self) -> None:
        reply = await self.interpreter.handle(ALICE, "help")
        self.assertIn("Baintwallet Commands", reply)
        self.assertFalse(await self.interpreter.custody.exists(ALICE))

    async def test_start_provisions_once(self) -> None:
        reply = await self.interpreter.handle(ALICE, "START")
        address = await self.interpreter.custody.address_of(ALICE)
        self.assertIn("Wallet created", reply)
        self.assertIn(address, reply)

        again = await self.interpreter.handle(ALICE, "start")
        self.assertIn("already have a wallet", again)
        self.assertEqual(await self.interpreter.custody.address_of(ALICE), address)

    async def test_concurrent_starts_create_one_wallet(self) -> None:
        replies = await asyncio.gather(
            *(self.interpreter.handle(ALICE, "START") for _ in range(3))
        )
        created = [r for r in replies if "Wallet created" in r]
        self.assertEqual(len(created), 1)
        rows = await self.db.fetch_all("SELECT identity FROM wallets")
        self.assertEqual(len(rows), 1)


class QueryTests(InterpreterTestCase):
    async def test_wallet_and_alias(self) -> None:
        address = await self.start()
        for text in ("WALLET", "address"):
            with self.subTest(text=text):
                self.assertIn(address, await self.interpreter.handle(ALICE, text))

    async def test_balance_is_formatted_to_four_places(self) -> None:
        await self.start()
        self.gateway.balance = Web3.to_wei(Decimal("1.23456789"), "ether")
        reply = await self.interpreter.handle(ALICE, "BAL")
        self.assertIn("1.2346 ETH", reply)
        self.assertIn("Chain: sepolia", reply)

    async def test_balance_failure_is_generic(self) -> None:
        await self.start()
        self.gateway.fail_balance = True
        reply = await self.interpreter.respond(ALICE, "BALANCE")
        self.assertFalse(reply.ok)
        self.assertIsInstance(reply.error, GatewayError)
        self.assertIn("Failed to fetch balance", reply.text)
        self.assertNotIn("connection refused", reply.text)

    async def test_describe_wallet(self) -> None:
        address = await self.start()
        snapshot = await self.interpreter.describe_wallet(ALICE)
        self.assertEqual(snapshot.address, address)
        self.assertEqual(snapshot.balance, Decimal(1))
        self.assertEqual(snapshot.symbol, "ETH")
        with self.assertRaises(NotProvisioned):
            await self.interpreter.describe_wallet("+15550000000")

    async def test_unknown_command(self) -> None:
        await self.start()
        reply = await self.interpreter.handle(ALICE, "dance now")
        self.assertIn("Unknown command: DANCE", reply)

    async def test_unexpected_errors_become_replies(self) -> None:
        async def broken(identity):
            raise RuntimeError("database is locked")

        self.interpreter.custody.exists = broken
        reply = await self.interpreter.respond(ALICE, "BALANCE")
        self.assertFalse(reply.ok)
        self.assertNotIn("database", reply.text)


class SendTests(InterpreterTestCase):
    async def test_valid_send_stages_transfer(self) -> None:
        await self.start()
        reply = await self.interpreter.handle(ALICE, f"SEND {DEST} 0.01")
        self.assertIn("Reply CONFIRM", reply)
        self.assertIn("0.01 ETH", reply)
        entry = self.interpreter.pending.peek(ALICE)
        self.assertEqual(entry.destination, DEST)
        self.assertEqual(entry.amount, Decimal("0.01"))

    async def test_invalid_send_leaves_cache_empty(self) -> None:
        await self.start()
        for text in (
            "SEND notanaddress 1",
            f"SEND {DEST} -1",
            f"SEND {DEST} abc",
            f"SEND {DEST}",
        ):
            with self.subTest(text=text):
                reply = await self.interpreter.respond(ALICE, text)
                self.assertIsInstance(reply.error, ValidationError)
                self.assertTrue(reply.text.startswith("❌"))
                self.assertEqual(len(self.interpreter.pending), 0)

    async def test_invalid_send_keeps_previous_pending_entry(self) -> None:
        await self.start()
        await self.interpreter.handle(ALICE, f"SEND {DEST} 0.5")
        await self.interpreter.handle(ALICE, f"SEND {DEST} abc")
        self.assertEqual(self.interpreter.pending.peek(ALICE).amount, Decimal("0.5"))

    async def test_cancel(self) -> None:
        await self.start()
        self.assertIn("No pending", await self.interpreter.handle(ALICE, "CANCEL"))
        await self.interpreter.handle(ALICE, f"SEND {DEST} 0.01")
        self.assertIn("cancelled", await self.interpreter.handle(ALICE, "cancel"))
        self.assertIsNone(self.interpreter.pending.peek(ALICE))
        reply = await self.interpreter.respond(ALICE, "CONFIRM")
        self.assertIsInstance(reply.error, PendingNotFound)
        self.assertEqual(self.gateway.broadcasts, [])


class ConfirmTests(InterpreterTestCase):
    async def test_send_confirm_broadcasts_exactly_once(self) -> None:
        address = await self.start()
        await self.interpreter.handle(ALICE, f"SEND {DEST} 0.01")
        reply = await self.interpreter.respond(ALICE, "CONFIRM")

        self.assertTrue(reply.ok, reply.text)
        self.assertEqual(len(self.gateway.broadcasts), 1)
        tx = decode_legacy_tx(self.gateway.broadcasts[0])
        self.assertEqual(tx["to"], Web3.to_checksum_address(DEST))
        self.assertEqual(tx["value"], Web3.to_wei(Decimal("0.01"), "ether"))
        self.assertIsNone(self.interpreter.pending.peek(ALICE))

        self.assertEqual(Account.recover_transaction(self.gateway.broadcasts[0]), address)
        self.assertIn("Transaction Sent", reply.text)
        self.assertIn("https://sepolia.etherscan.io/tx/0x", reply.text)

    async def test_confirm_without_pending(self) -> None:
        await self.start()
        reply = await self.interpreter.respond(ALICE, "CONFIRM")
        self.assertIsInstance(reply.error, PendingNotFound)
        self.assertIn("No pending transaction", reply.text)

    async def test_confirm_after_ttl_is_expired(self) -> None:
        await self.start()
        await self.interpreter.handle(ALICE, f"SEND {DEST} 0.01")
        self.clock.advance(minutes=10, seconds=1)
        reply = await self.interpreter.respond(ALICE, "CONFIRM")
        self.assertIsInstance(reply.error, PendingExpired)
        self.assertIn("expired", reply.text)
        self.assertEqual(self.gateway.broadcasts, [])
        self.assertIsNone(self.interpreter.pending.peek(ALICE))

    async def test_concurrent_confirms_broadcast_once(self) -> None:
        await self.start()
        await self.interpreter.handle(ALICE, f"SEND {DEST} 0.01")
        first, second = await asyncio.gather(
            self.interpreter.respond(ALICE, "CONFIRM"),
            self.interpreter.respond(ALICE, "CONFIRM"),
        )
        self.assertEqual(len(self.gateway.broadcasts), 1)
        outcomes = sorted([first.ok, second.ok])
        self.assertEqual(outcomes, [False, True])
        loser = first if not first.ok else second
        self.assertIsInstance(loser.error, PendingNotFound)

    async def test_insufficient_funds_for_fee(self) -> None:
        await self.start()
        # Covers the amount but not amount + gasPrice * 21000.
        self.gateway.balance = Web3.to_wei(Decimal("0.01"), "ether") + 21000 * GWEI - 1
        await self.interpreter.handle(ALICE, f"SEND {DEST} 0.01")
        reply = await self.interpreter.respond(ALICE, "CONFIRM")
        self.assertIsInstance(reply.error, InsufficientFunds)
        self.assertIn("Insufficient balance", reply.text)
        self.assertEqual(self.gateway.broadcasts, [])
        self.assertIsNone(self.interpreter.pending.peek(ALICE))

    async def test_exact_balance_is_enough(self) -> None:
        await self.start()
        self.gateway.balance = Web3.to_wei(Decimal("0.01"), "ether") + 21000 * GWEI
        await self.interpreter.handle(ALICE, f"SEND {DEST} 0.01")
        reply = await self.interpreter.respond(ALICE, "CONFIRM")
        self.assertTrue(reply.ok, reply.text)

    async def test_broadcast_failure_is_reported_not_retried(self) -> None:
        await self.start()
        self.gateway.fail_broadcast = True
        await self.interpreter.handle(ALICE, f"SEND {DEST} 0.01")
        reply = await self.interpreter.respond(ALICE, "CONFIRM")
        self.assertIsInstance(reply.error, GatewayError)
        self.assertIn("No funds were sent", reply.text)
        self.assertNotIn("nonce too low", reply.text)
        again = await self.interpreter.respond(ALICE, "CONFIRM")
        self.assertIsInstance(again.error, PendingNotFound)

    async def test_unconfirmed_transfer_surfaces_hash(self) -> None:
        await self.start()
        self.gateway.fail_inclusion = True
        await self.interpreter.handle(ALICE, f"SEND {DEST} 0.01")
        reply = await self.interpreter.respond(ALICE, "CONFIRM")

        self.assertIsInstance(reply.error, TransferUnconfirmed)
        self.assertEqual(len(self.gateway.broadcasts), 1)
        self.assertIn(reply.error.tx_hash, reply.text)
        self.assertIn("Do NOT send again", reply.text)

        records = await self.interpreter.history.recent(ALICE)
        self.assertEqual(records[0].status, TransferStatus.UNCONFIRMED)

    async def test_unexpected_inclusion_error_still_warns_not_to_resend(self) -> None:
        await self.start()
        self.gateway.inclusion_error = KeyError("blockNumber")
        await self.interpreter.handle(ALICE, f"SEND {DEST} 0.01")
        reply = await self.interpreter.respond(ALICE, "CONFIRM")

        self.assertIsInstance(reply.error, TransferUnconfirmed)
        self.assertIn(reply.error.tx_hash, reply.text)
        self.assertIn("Do NOT send again", reply.text)
        self.assertNotIn("No funds were sent", reply.text)
        records = await self.interpreter.history.recent(ALICE)
        self.assertEqual(records[0].status, TransferStatus.UNCONFIRMED)

    async def test_oversized_send_is_a_validation_error(self) -> None:
        await self.start()
        for amount in ("1e1000000", "1e999999"):
            with self.subTest(amount=amount):
                reply = await self.interpreter.respond(ALICE, f"SEND {DEST} {amount}")
                self.assertIsInstance(reply.error, ValidationError)
                self.assertIn("Invalid amount", reply.text)
                self.assertIsNone(self.interpreter.pending.peek(ALICE))

    async def test_reverted_transfer(self) -> None:
        await self.start()
        self.gateway.receipt_status = 0
        await self.interpreter.handle(ALICE, f"SEND {DEST} 0.01")
        reply = await self.interpreter.handle(ALICE, "CONFIRM")
        self.assertIn("failed on-chain", reply)

    async def test_decryption_failure_is_distinct(self) -> None:
        await self.start()
        await self.start("+15557654321")
        record = await self.interpreter.custody.get_record("+15557654321")
        await self.db.execute(
            "UPDATE wallets SET keystore_json = ? WHERE identity = ?",
            (record.keystore_json, ALICE),
        )
        await self.interpreter.handle(ALICE, f"SEND {DEST} 0.01")
        reply = await self.interpreter.respond(ALICE, "CONFIRM")
        self.assertIsInstance(reply.error, DecryptionFailed)
        self.assertIn("contact support", reply.text)
        self.assertEqual(self.gateway.broadcasts, [])


class HistoryTests(InterpreterTestCase):
    async def test_empty_history(self) -> None:
        await self.start()
        self.assertIn("No transaction history", await self.interpreter.handle(ALICE, "HISTORY"))

    async def test_history_lists_at_most_five(self) -> None:
        await self.start()
        self.gateway.balance = 10 * ONE_ETH
        for i in range(6):
            await self.interpreter.handle(ALICE, f"SEND {DEST} 0.0{i + 1}")
            await self.interpreter.handle(ALICE, "CONFIRM")
        reply = await self.interpreter.handle(ALICE, "TX")
        self.assertIn("Recent Transactions", reply)
        self.assertIn("5. SENT", reply)
        self.assertNotIn("6. SENT", reply)
        self.assertIn("(success)", reply)


if __name__ == "__main__":
    unittest.main()
