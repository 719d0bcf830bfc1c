import ed25519_blake2b
import pytest
from conftest import OTHER_ADDRESS, OTHER_PUBLIC_KEY, TEST_ADDRESS, TEST_PRIVATE_KEY, TEST_PUBLIC_KEY

from nano_mcp.config import NanoConfig
from nano_mcp.models import UnsignedBlockFields
from nano_mcp.signing import hash_state_block
from nano_mcp.tools import send_transaction

CONFIG = NanoConfig(rpc_url="http://node")
FRONTIER = "F0" * 32
ONE_XNO = 10**30


def _sent_blocks(ledger):
    return [call[2] for call in ledger.calls if call[0] == "process"]


@pytest.mark.asyncio
async def test_send_builds_signed_send_block(ledger):
    ledger.open_account(TEST_ADDRESS, balance=5 * ONE_XNO, frontier=FRONTIER, representative=OTHER_ADDRESS)

    result = await send_transaction(
        TEST_ADDRESS, TEST_PRIVATE_KEY, OTHER_ADDRESS, str(2 * ONE_XNO), client=ledger, config=CONFIG
    )

    assert result == {"success": True, "hash": f"{1:064X}"}
    [block] = _sent_blocks(ledger)
    assert block["previous"] == FRONTIER
    assert block["balance"] == str(3 * ONE_XNO)
    assert block["link"] == OTHER_PUBLIC_KEY
    assert block["representative"] == OTHER_ADDRESS
    assert ("work_generate", FRONTIER, CONFIG.send_difficulty) in ledger.calls
    assert [call[1] for call in ledger.calls if call[0] == "process"] == ["send"]

    fields = UnsignedBlockFields(
        account=TEST_ADDRESS,
        previous=FRONTIER,
        representative=OTHER_ADDRESS,
        balance=3 * ONE_XNO,
        link=OTHER_PUBLIC_KEY,
    )
    verifying_key = ed25519_blake2b.VerifyingKey(bytes.fromhex(TEST_PUBLIC_KEY))
    verifying_key.verify(bytes.fromhex(block["signature"]), bytes.fromhex(hash_state_block(fields)))


@pytest.mark.asyncio
async def test_send_accepts_display_amount(ledger):
    ledger.open_account(TEST_ADDRESS, balance=ONE_XNO, frontier=FRONTIER)
    result = await send_transaction(
        TEST_ADDRESS, TEST_PRIVATE_KEY, OTHER_ADDRESS, amount="0.25", client=ledger, config=CONFIG
    )
    assert result["success"] is True
    assert _sent_blocks(ledger)[0]["balance"] == str(75 * 10**28)


@pytest.mark.asyncio
async def test_send_entire_balance(ledger):
    ledger.open_account(TEST_ADDRESS, balance=123, frontier=FRONTIER)
    result = await send_transaction(TEST_ADDRESS, TEST_PRIVATE_KEY, OTHER_ADDRESS, "123", client=ledger, config=CONFIG)
    assert result["success"] is True
    assert _sent_blocks(ledger)[0]["balance"] == "0"


@pytest.mark.asyncio
async def test_insufficient_balance_publishes_nothing(ledger):
    ledger.open_account(TEST_ADDRESS, balance=ONE_XNO, frontier=FRONTIER)
    result = await send_transaction(
        TEST_ADDRESS, TEST_PRIVATE_KEY, OTHER_ADDRESS, str(ONE_XNO + 1), client=ledger, config=CONFIG
    )
    assert result["success"] is False
    assert result["error"].startswith("Insufficient balance")
    assert "1 XNO" in result["error"]
    assert "work_generate" not in ledger.actions()
    assert "process" not in ledger.actions()


@pytest.mark.asyncio
async def test_unopened_account_cannot_send(ledger):
    result = await send_transaction(TEST_ADDRESS, TEST_PRIVATE_KEY, OTHER_ADDRESS, "1", client=ledger, config=CONFIG)
    assert result == {
        "success": False,
        "error": "Account has no previous blocks. Receive funds into it before sending.",
    }


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "kwargs",
    [
        {"amount_raw": "1", "amount": "1"},
        {},
        {"amount_raw": "0"},
        {"amount_raw": "-5"},
        {"amount": "0.0000000000000000000000000000001"},
    ],
)
async def test_bad_amounts_fail_before_network(ledger, kwargs):
    result = await send_transaction(TEST_ADDRESS, TEST_PRIVATE_KEY, OTHER_ADDRESS, client=ledger, config=CONFIG, **kwargs)
    assert result["success"] is False
    assert ledger.calls == []


@pytest.mark.asyncio
async def test_invalid_recipient_fails_before_network(ledger):
    result = await send_transaction(TEST_ADDRESS, TEST_PRIVATE_KEY, "nano_123", "1", client=ledger, config=CONFIG)
    assert result["success"] is False
    assert "toAddress" in result["error"]
    assert ledger.calls == []


@pytest.mark.asyncio
async def test_key_for_another_account_fails_before_network(ledger):
    result = await send_transaction(OTHER_ADDRESS, TEST_PRIVATE_KEY, TEST_ADDRESS, "1", client=ledger, config=CONFIG)
    assert result["success"] is False
    assert "does not belong" in result["error"]
    assert ledger.calls == []


@pytest.mark.asyncio
async def test_node_rejection_is_returned_verbatim(ledger):
    ledger.open_account(TEST_ADDRESS, balance=10, frontier=FRONTIER)
    ledger.rejected_links[OTHER_PUBLIC_KEY] = "Gap previous block"
    result = await send_transaction(TEST_ADDRESS, TEST_PRIVATE_KEY, OTHER_ADDRESS, "1", client=ledger, config=CONFIG)
    assert result == {"success": False, "error": "Gap previous block"}
