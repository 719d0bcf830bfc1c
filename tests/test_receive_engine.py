import pytest
from conftest import OTHER_ADDRESS, STUB_WORK, TEST_ADDRESS, TEST_PRIVATE_KEY, TEST_PUBLIC_KEY

from nano_mcp.config import NanoConfig
from nano_mcp.models import ZERO_HASH
from nano_mcp.nano_api import NodeUnreachableError, WorkGenerationError
from nano_mcp.tools import initialize_account, receive_all_pending, receive_pending_block

CONFIG = NanoConfig(rpc_url="http://node", default_representative=None)
FRONTIER = "F0" * 32
HASH_A = "A1" * 32
HASH_B = "B2" * 32
HASH_C = "C3" * 32


def _processed_blocks(ledger):
    return [call[2] for call in ledger.calls if call[0] == "process"]


def _work_requests(ledger):
    return [call[1:] for call in ledger.calls if call[0] == "work_generate"]


@pytest.mark.asyncio
async def test_no_pending_blocks_is_a_successful_empty_batch(ledger):
    ledger.open_account(TEST_ADDRESS, balance=5, frontier=FRONTIER)
    result = await receive_all_pending(TEST_ADDRESS, TEST_PRIVATE_KEY, client=ledger, config=CONFIG)
    assert result == {
        "success": True,
        "receivedCount": 0,
        "failedCount": 0,
        "processed": [],
        "failed": [],
    }
    assert "work_generate" not in ledger.actions()
    assert "process" not in ledger.actions()


@pytest.mark.asyncio
async def test_open_block_for_unopened_account(ledger):
    ledger.add_pending(HASH_A, 10**30)
    result = await receive_all_pending(TEST_ADDRESS, TEST_PRIVATE_KEY, client=ledger, config=CONFIG)

    assert result["receivedCount"] == 1
    [block] = _processed_blocks(ledger)
    assert block["previous"] == ZERO_HASH
    assert block["representative"] == TEST_ADDRESS
    assert block["balance"] == str(10**30)
    assert block["link"] == HASH_A
    assert block["work"] == STUB_WORK
    # Open blocks compute work over the account public key.
    assert _work_requests(ledger) == [(TEST_PUBLIC_KEY, CONFIG.open_difficulty)]
    assert [call[1] for call in ledger.calls if call[0] == "process"] == ["open"]
    assert result["processed"][0]["result"]["subtype"] == "open"


@pytest.mark.asyncio
async def test_open_block_uses_configured_representative(ledger):
    ledger.add_pending(HASH_A, 1)
    config = NanoConfig(rpc_url="http://node", default_representative=OTHER_ADDRESS)
    await receive_all_pending(TEST_ADDRESS, TEST_PRIVATE_KEY, client=ledger, config=config)
    assert _processed_blocks(ledger)[0]["representative"] == OTHER_ADDRESS


@pytest.mark.asyncio
async def test_receive_block_for_opened_account(ledger):
    balance = 2 * 10**30
    amount = 3 * 10**29
    ledger.open_account(TEST_ADDRESS, balance=balance, frontier=FRONTIER, representative=OTHER_ADDRESS)
    ledger.add_pending(HASH_A, amount)

    result = await receive_all_pending(TEST_ADDRESS, TEST_PRIVATE_KEY, client=ledger, config=CONFIG)

    assert result["success"] is True
    [block] = _processed_blocks(ledger)
    assert block["previous"] == FRONTIER
    assert block["balance"] == str(balance + amount)
    assert block["representative"] == OTHER_ADDRESS
    assert _work_requests(ledger) == [(FRONTIER, CONFIG.receive_difficulty)]
    assert result["processed"] == [
        {
            "hash": HASH_A,
            "amount": str(amount),
            "result": {"hash": f"{1:064X}", "subtype": "receive", "balance": str(balance + amount)},
        }
    ]


@pytest.mark.asyncio
async def test_sequential_receives_chain_frontiers(ledger):
    ledger.add_pending(HASH_A, 10)
    ledger.add_pending(HASH_B, 20)

    result = await receive_all_pending(TEST_ADDRESS, TEST_PRIVATE_KEY, client=ledger, config=CONFIG)

    assert result["receivedCount"] == 2
    first, second = _processed_blocks(ledger)
    assert first["previous"] == ZERO_HASH
    # The second block builds on the hash the node returned for the first.
    assert second["previous"] == result["processed"][0]["result"]["hash"]
    assert second["balance"] == "30"
    assert [p["hash"] for p in result["processed"]] == [HASH_A, HASH_B]


@pytest.mark.asyncio
async def test_one_failure_does_not_stop_the_batch(ledger):
    ledger.open_account(TEST_ADDRESS, balance=0, frontier=FRONTIER)
    ledger.add_pending(HASH_A, 1)
    ledger.add_pending(HASH_B, 2)
    ledger.add_pending(HASH_C, 4)
    ledger.rejected_links[HASH_B] = "Fork"

    result = await receive_all_pending(TEST_ADDRESS, TEST_PRIVATE_KEY, client=ledger, config=CONFIG)

    assert result["success"] is True
    assert result["receivedCount"] == 2
    assert result["failedCount"] == 1
    assert [p["hash"] for p in result["processed"]] == [HASH_A, HASH_C]
    assert result["failed"] == [{"hash": HASH_B, "amount": "2", "error": "Fork"}]
    assert ledger.accounts[TEST_ADDRESS]["balance"] == 5


@pytest.mark.asyncio
async def test_unexpected_exception_is_recorded_per_block(ledger):
    ledger.add_pending(HASH_A, 1)
    ledger.add_pending(HASH_B, 2)
    calls = {"n": 0}
    original = ledger.generate_work

    async def flaky_work(work_hash, difficulty):
        calls["n"] += 1
        if calls["n"] == 1:
            raise RuntimeError("worker crashed")
        return await original(work_hash, difficulty)

    ledger.generate_work = flaky_work
    result = await receive_all_pending(TEST_ADDRESS, TEST_PRIVATE_KEY, client=ledger, config=CONFIG)
    assert result["failed"] == [{"hash": HASH_A, "amount": "1", "error": "worker crashed"}]
    assert [p["hash"] for p in result["processed"]] == [HASH_B]


@pytest.mark.asyncio
async def test_balances_beyond_64_bits_are_exact(ledger):
    balance = 340282366920938463463374607431768211455 - 10**30
    amount = 10**30 - 1
    ledger.open_account(TEST_ADDRESS, balance=balance, frontier=FRONTIER)
    ledger.add_pending(HASH_A, amount)

    await receive_all_pending(TEST_ADDRESS, TEST_PRIVATE_KEY, client=ledger, config=CONFIG)

    assert _processed_blocks(ledger)[0]["balance"] == "340282366920938463463374607431768211454"


@pytest.mark.asyncio
async def test_pending_lookup_failure_fails_whole_batch(ledger):
    ledger.pending_error = NodeUnreachableError("Node unreachable")
    result = await receive_all_pending(TEST_ADDRESS, TEST_PRIVATE_KEY, client=ledger, config=CONFIG)
    assert result == {"success": False, "error": "Failed to get pending blocks: Node unreachable"}
    assert "work_generate" not in ledger.actions()


@pytest.mark.asyncio
async def test_mismatched_key_fails_before_network(ledger):
    ledger.add_pending(HASH_A, 1)
    result = await receive_all_pending(OTHER_ADDRESS, TEST_PRIVATE_KEY, client=ledger, config=CONFIG)
    assert result["success"] is False
    assert "does not belong" in result["error"]
    assert ledger.calls == []


@pytest.mark.asyncio
async def test_receive_pending_block_single(ledger):
    ledger.open_account(TEST_ADDRESS, balance=1, frontier=FRONTIER)
    ledger.add_pending(HASH_A, 2)
    result = await receive_pending_block(
        TEST_ADDRESS, TEST_PRIVATE_KEY, HASH_A.lower(), client=ledger, config=CONFIG
    )
    assert result == {"success": True, "hash": f"{1:064X}"}
    assert _processed_blocks(ledger)[0]["link"] == HASH_A


@pytest.mark.asyncio
async def test_receive_pending_block_unknown_hash(ledger):
    result = await receive_pending_block(TEST_ADDRESS, TEST_PRIVATE_KEY, HASH_A, client=ledger, config=CONFIG)
    assert result == {"success": False, "error": "Block not found"}


@pytest.mark.asyncio
async def test_receive_pending_block_rejects_bad_hash(ledger):
    result = await receive_pending_block(TEST_ADDRESS, TEST_PRIVATE_KEY, "xyz", client=ledger, config=CONFIG)
    assert result["success"] is False
    assert ledger.calls == []


@pytest.mark.asyncio
async def test_initialize_account_opens_with_first_pending(ledger):
    ledger.add_pending(HASH_A, 10)
    ledger.add_pending(HASH_B, 20)
    result = await initialize_account(TEST_ADDRESS, TEST_PRIVATE_KEY, client=ledger, config=CONFIG)
    assert result == {"success": True, "hash": f"{1:064X}", "balance": "10"}
    assert HASH_B in ledger.pending


@pytest.mark.asyncio
async def test_initialize_account_already_opened(ledger):
    ledger.open_account(TEST_ADDRESS, balance=1, frontier=FRONTIER)
    result = await initialize_account(TEST_ADDRESS, TEST_PRIVATE_KEY, client=ledger, config=CONFIG)
    assert result == {"success": True, "alreadyOpened": True, "frontier": FRONTIER}
    assert "process" not in ledger.actions()


@pytest.mark.asyncio
async def test_initialize_account_without_pending(ledger):
    result = await initialize_account(TEST_ADDRESS, TEST_PRIVATE_KEY, client=ledger, config=CONFIG)
    assert result["success"] is False
    assert "no pending blocks" in result["error"]


@pytest.mark.asyncio
async def test_process_error_message_is_verbatim(ledger):
    ledger.add_pending(HASH_A, 1)
    ledger.rejected_links[HASH_A] = "Block work is insufficient"
    result = await receive_all_pending(TEST_ADDRESS, TEST_PRIVATE_KEY, client=ledger, config=CONFIG)
    assert result["failed"][0]["error"] == "Block work is insufficient"


@pytest.mark.asyncio
async def test_missing_work_fails_only_that_block(ledger):
    ledger.add_pending(HASH_A, 1)
    ledger.add_pending(HASH_B, 2)
    ledger.add_pending(HASH_C, 3)
    original = ledger.generate_work
    seen = []

    async def work_for(work_hash, difficulty):
        seen.append(work_hash)
        if len(seen) == 2:
            raise WorkGenerationError("Work generation failed: no work returned")
        return await original(work_hash, difficulty)

    ledger.generate_work = work_for
    result = await receive_all_pending(TEST_ADDRESS, TEST_PRIVATE_KEY, client=ledger, config=CONFIG)
    assert result["receivedCount"] == 2
    assert result["failed"] == [
        {"hash": HASH_B, "amount": "2", "error": "Work generation failed: no work returned"}
    ]


@pytest.mark.asyncio
async def test_amounts_above_float_precision(ledger):
    ledger.open_account(TEST_ADDRESS, balance=9007199254740993000000000000000, frontier=FRONTIER)
    ledger.add_pending(HASH_A, 9007199254740993000000000000000)
    await receive_all_pending(TEST_ADDRESS, TEST_PRIVATE_KEY, client=ledger, config=CONFIG)
    assert _processed_blocks(ledger)[0]["balance"] == "18014398509481986000000000000000"


@pytest.mark.asyncio
async def test_malformed_pending_amount_fails_whole_batch(ledger):
    async def garbled_pending(address, *, count=None, threshold=None):
        return {"blocks": {HASH_A: "not-a-number"}}

    ledger.fetch_pending = garbled_pending
    result = await receive_all_pending(TEST_ADDRESS, TEST_PRIVATE_KEY, client=ledger, config=CONFIG)
    assert result["success"] is False
    assert result["error"].startswith("Failed to get pending blocks: Unexpected amount from node")
    assert _processed_blocks(ledger) == []
