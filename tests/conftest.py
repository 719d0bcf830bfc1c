import os
import sys

import pytest

# Ensure repository root is on sys.path before importing project modules.
repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if repo_root not in sys.path:
    sys.path.insert(0, repo_root)

from nano_mcp.metrics import default_metrics  # noqa: E402
from nano_mcp.nano_api import AccountNotFoundError, NanoApiError  # noqa: E402

# Key pair derived from the all-zero seed at index 0.
TEST_PRIVATE_KEY = "9F0E444C69F77A49BD0BE89DB92C38FE713E0963165CCA12FAF5712D7657120F"
TEST_PUBLIC_KEY = "C008B814A7D269A1FA3C6528B19201A24D797912DB9996FF02A1FF356E45552B"
TEST_ADDRESS = "nano_3i1aq1cchnmbn9x5rsbap8b15akfh7wj7pwskuzi7ahz8oq6cobd99d4r3b7"
OTHER_ADDRESS = "nano_3t6k35gi95xu6tergt6p69ck76ogmitsa8mnijtpxm9fkcm736xtoncuohr3"
OTHER_PUBLIC_KEY = "E89208DD038FBB269987689621D52292AE9C35941A7484756ECCED92A65093BA"
STUB_WORK = "0123456789abcdef"


@pytest.fixture(autouse=True)
def reset_metrics():
    default_metrics.reset()
    yield
    default_metrics.reset()


class FakeLedger:
    """
    In-memory stand-in for ``NanoRpcClient``.

    Accepted blocks update the account frontier and balance and consume the
    pending entry they link to, so sequential receives see fresh state.
    """

    def __init__(self) -> None:
        self.accounts = {}
        self.pending = {}
        self.calls = []
        self.rejected_links = {}
        self.missing_blocks = set()
        self.pending_error = None
        self._next_hash = 0

    def open_account(self, address, *, balance, frontier, representative=None):
        self.accounts[address] = {
            "frontier": frontier,
            "representative": representative or address,
            "balance": balance,
        }

    def add_pending(self, block_hash, amount, source=OTHER_ADDRESS):
        self.pending[block_hash] = {"amount": amount, "source": source}

    def actions(self):
        return [call[0] for call in self.calls]

    async def fetch_account_info(self, address):
        self.calls.append(("account_info", address))
        account = self.accounts.get(address)
        if account is None:
            raise AccountNotFoundError("Account not found", code="ACCOUNT_NOT_FOUND")
        return {
            "frontier": account["frontier"],
            "representative": account["representative"],
            "balance": str(account["balance"]),
            "block_count": "1",
        }

    async def fetch_account_balance(self, address):
        self.calls.append(("account_balance", address))
        account = self.accounts.get(address, {"balance": 0})
        receivable = sum(entry["amount"] for entry in self.pending.values())
        return {
            "balance": str(account["balance"]),
            "pending": str(receivable),
            "receivable": str(receivable),
        }

    async def fetch_pending(self, address, *, count=None, threshold=None):
        self.calls.append(("pending", address, count))
        if self.pending_error is not None:
            raise self.pending_error
        items = list(self.pending.items())
        if count is not None:
            items = items[:count]
        if not items:
            return {"blocks": ""}
        return {
            "blocks": {
                block_hash: {"amount": str(entry["amount"]), "source": entry["source"]}
                for block_hash, entry in items
            }
        }

    async def fetch_block_info(self, block_hash):
        self.calls.append(("blocks_info", block_hash))
        entry = self.pending.get(block_hash)
        if entry is None or block_hash in self.missing_blocks:
            raise NanoApiError("Block not found")
        return {"amount": str(entry["amount"]), "block_account": entry["source"]}

    async def generate_work(self, work_hash, difficulty):
        self.calls.append(("work_generate", work_hash, difficulty))
        return STUB_WORK

    async def process_block(self, block, subtype):
        self.calls.append(("process", subtype, block))
        if block["link"] in self.rejected_links:
            raise NanoApiError(self.rejected_links[block["link"]])
        self._next_hash += 1
        new_hash = f"{self._next_hash:064X}"
        self.accounts[block["account"]] = {
            "frontier": new_hash,
            "representative": block["representative"],
            "balance": int(block["balance"]),
        }
        self.pending.pop(block["link"], None)
        return new_hash

    async def fetch_block_count(self):
        self.calls.append(("block_count",))
        return {"count": "1000", "unchecked": "5", "cemented": "990"}

    async def fetch_version(self):
        self.calls.append(("version",))
        return {"rpc_version": "1", "node_vendor": "Nano V27.0", "protocol_version": "20", "extra": "x"}


@pytest.fixture
def ledger():
    return FakeLedger()
