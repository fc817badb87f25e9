import unittest
from unittest import mock

from baintwallet.errors import ConfigError, GatewayError
from baintwallet.wallet.chains import get_chain, list_chain_names
from baintwallet.wallet.gateway import Web3Gateway
from tests.fakes import DEST


class ChainRegistryTests(unittest.TestCase):
    def test_lookup_is_case_insensitive(self) -> None:
        chain = get_chain(" Sepolia ")
        self.assertEqual(chain.chain_id, 11155111)
        self.assertTrue(chain.testnet)
        self.assertEqual(chain.tx_url("0xabc"), "https://sepolia.etherscan.io/tx/0xabc")

    def test_unknown_chain(self) -> None:
        with self.assertRaises(ConfigError):
            get_chain("dogechain")

    def test_names(self) -> None:
        self.assertEqual(
            list_chain_names(), ["ethereum", "sepolia", "base", "arbitrum", "polygon"]
        )


class Web3GatewayTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.gateway = Web3Gateway(get_chain("sepolia"), rpc_url="http://127.0.0.1:9")
        self.eth = mock.MagicMock()
        self.gateway._w3 = mock.MagicMock(eth=self.eth)

    def test_address_validation(self) -> None:
        self.assertTrue(self.gateway.is_valid_address(DEST))
        self.assertFalse(self.gateway.is_valid_address("0x1234"))
        self.assertFalse(self.gateway.is_valid_address("hello"))

    async def test_errors_become_gateway_errors(self) -> None:
        self.eth.get_balance = mock.AsyncMock(side_effect=ConnectionError("refused"))
        with self.assertRaises(GatewayError) as ctx:
            await self.gateway.get_balance(DEST)
        self.assertIn("refused", ctx.exception.cause)

    async def test_nonce_counts_pending(self) -> None:
        self.eth.get_transaction_count = mock.AsyncMock(return_value=3)
        self.assertEqual(await self.gateway.get_nonce(DEST), 3)
        _, block = self.eth.get_transaction_count.call_args.args
        self.assertEqual(block, "pending")

    async def test_broadcast_returns_hex_hash(self) -> None:
        self.eth.send_raw_transaction = mock.AsyncMock(return_value=b"\x12" * 32)
        self.assertEqual(await self.gateway.broadcast(b"raw"), "0x" + "12" * 32)

    async def test_await_inclusion(self) -> None:
        self.eth.wait_for_transaction_receipt = mock.AsyncMock(
            return_value={"blockNumber": 17, "status": 0}
        )
        receipt = await self.gateway.await_inclusion("0xabc")
        self.assertEqual(receipt.block_number, 17)
        self.assertFalse(receipt.succeeded)
        self.eth.wait_for_transaction_receipt.assert_awaited_once_with("0xabc", timeout=180.0)

    async def test_malformed_receipt(self) -> None:
        self.eth.wait_for_transaction_receipt = mock.AsyncMock(return_value={"status": 1})
        with self.assertRaises(GatewayError) as ctx:
            await self.gateway.await_inclusion("0xabc")
        self.assertIn("blockNumber", ctx.exception.cause)

    async def test_timeout_while_waiting(self) -> None:
        self.eth.wait_for_transaction_receipt = mock.AsyncMock(side_effect=TimeoutError("slow"))
        with self.assertRaises(GatewayError):
            await self.gateway.await_inclusion("0xabc")


if __name__ == "__main__":
    unittest.main()
