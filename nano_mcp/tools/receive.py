"""
Pending-block receive engine.

Pending blocks are received one at a time. Each receive moves the account
frontier, so account state is re-read from the node before every block and
the next block's ``previous`` is always the hash the node confirmed last. A
failure on one block is recorded and the loop moves on; only failing to list
pending blocks aborts the whole batch.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict

from nano_mcp.accounts import address_to_public_key
from nano_mcp.config import NanoConfig, default_config
from nano_mcp.models import (
    AccountState,
    PendingBlock,
    ReceiveBatchResult,
    SignedBlock,
    TransactionResult,
    UnsignedBlockFields,
)
from nano_mcp.nano_api import NanoApiError, default_client
from nano_mcp.signing import SigningError, derive_public_key, sign_state_block
from nano_mcp.tools.account import load_account_state, parse_pending_blocks
from nano_mcp.tools.validators import (
    ValidationError,
    require_address,
    require_block_hash,
    require_private_key,
)
from nano_mcp.units import AmountError, parse_raw

logger = logging.getLogger(__name__)

Signer = Callable[..., SignedBlock]


def _check_credentials(address: str, private_key: str) -> tuple[str, str]:
    """Validate the address/key pair locally before touching the node."""
    account = require_address(address)
    key = require_private_key(private_key)
    if derive_public_key(key) != address_to_public_key(account):
        raise ValidationError("Private key does not belong to the given address.")
    return account, key


def _select_work(state: AccountState, config: NanoConfig) -> tuple[str, str, str]:
    """Return (work hash, difficulty, subtype) for the next receive on ``state``."""
    if state.opened:
        return state.frontier, config.receive_difficulty, "receive"
    return address_to_public_key(state.address), config.open_difficulty, "open"


async def _receive_block(
    account: str,
    private_key: str,
    block: PendingBlock,
    *,
    client,
    config: NanoConfig,
    signer: Signer,
) -> Dict[str, Any]:
    detail = await client.fetch_block_info(block.hash)
    block.amount = parse_raw(str(detail.get("amount", block.amount)))
    block.source = detail.get("block_account") or block.source

    state = await load_account_state(
        account, client=client, default_representative=config.default_representative
    )
    new_balance = state.balance + block.amount
    work_hash, difficulty, subtype = _select_work(state, config)
    work = await client.generate_work(work_hash, difficulty)

    fields = UnsignedBlockFields(
        account=account,
        previous=state.frontier,
        representative=state.representative,
        balance=new_balance,
        link=block.hash,
    )
    signed = signer(fields, private_key, work=work, subtype=subtype)
    block_hash = await client.process_block(signed.as_json_block(), subtype)
    logger.info(
        "received block=%s amount=%s subtype=%s new_hash=%s",
        block.hash,
        block.amount,
        subtype,
        block_hash,
    )
    return {"hash": block_hash, "subtype": subtype, "balance": str(new_balance)}


async def receive_all_pending(
    address: str,
    private_key: str,
    *,
    client=default_client,
    config: NanoConfig = default_config,
    signer: Signer = sign_state_block,
) -> Dict[str, Any]:
    """
    Receive every pending block for ``address``.

    Returns:
        ``{"success": True, "receivedCount", "failedCount", "processed",
        "failed"}`` once the batch has run, or ``{"success": False, "error"}``
        when the credentials are invalid or pending blocks cannot be listed.
    """
    try:
        account, key = _check_credentials(address, private_key)
    except (ValidationError, SigningError) as exc:
        return ReceiveBatchResult.batch_failure(str(exc)).as_dict()

    try:
        payload = await client.fetch_pending(
            account, count=config.pending_count, threshold=config.pending_threshold
        )
        pending = parse_pending_blocks(payload)
    except NanoApiError as exc:
        logger.warning("pending lookup failed for %s: %s", account, exc)
        return ReceiveBatchResult.batch_failure(f"Failed to get pending blocks: {exc}").as_dict()

    batch = ReceiveBatchResult()
    for block in pending:
        try:
            result = await _receive_block(
                account, key, block, client=client, config=config, signer=signer
            )
        except (NanoApiError, SigningError, AmountError, ValidationError) as exc:
            logger.warning("receive failed block=%s error=%s", block.hash, exc)
            batch.record_failure(block, str(exc))
            continue
        except Exception as exc:
            logger.exception("Unexpected error receiving block %s", block.hash)
            batch.record_failure(block, str(exc) or exc.__class__.__name__)
            continue
        batch.record_success(block, result)

    logger.info(
        "receive batch account=%s received=%d failed=%d",
        account,
        batch.received_count,
        len(batch.failed),
    )
    return batch.as_dict()


async def receive_pending_block(
    address: str,
    private_key: str,
    block_hash: str,
    *,
    client=default_client,
    config: NanoConfig = default_config,
    signer: Signer = sign_state_block,
) -> Dict[str, Any]:
    """Receive a single named pending block. Returns a ``TransactionResult`` dict."""
    try:
        account, key = _check_credentials(address, private_key)
        pending_hash = require_block_hash(block_hash)
    except (ValidationError, SigningError) as exc:
        return TransactionResult.failure(str(exc)).as_dict()

    try:
        result = await _receive_block(
            account,
            key,
            PendingBlock(hash=pending_hash),
            client=client,
            config=config,
            signer=signer,
        )
    except (NanoApiError, SigningError, AmountError, ValidationError) as exc:
        logger.warning("receive failed block=%s error=%s", pending_hash, exc)
        return TransactionResult.failure(str(exc)).as_dict()
    except Exception as exc:
        logger.exception("Unexpected error receiving block %s", pending_hash)
        return TransactionResult.failure(str(exc) or exc.__class__.__name__).as_dict()
    return TransactionResult.ok(result["hash"]).as_dict()


async def initialize_account(
    address: str,
    private_key: str,
    *,
    client=default_client,
    config: NanoConfig = default_config,
    signer: Signer = sign_state_block,
) -> Dict[str, Any]:
    """
    Open an account by receiving its first pending block.

    An account that already has a frontier is reported as opened without
    publishing anything.
    """
    try:
        account, key = _check_credentials(address, private_key)
    except (ValidationError, SigningError) as exc:
        return TransactionResult.failure(str(exc)).as_dict()

    try:
        state = await load_account_state(account, client=client)
        if state.opened:
            return {"success": True, "alreadyOpened": True, "frontier": state.frontier}
        payload = await client.fetch_pending(account, count=1, threshold=config.pending_threshold)
        pending = parse_pending_blocks(payload)
        if not pending:
            return TransactionResult.failure(
                "Account has no pending blocks to open with. Send funds to it first."
            ).as_dict()
        result = await _receive_block(
            account, key, pending[0], client=client, config=config, signer=signer
        )
    except (NanoApiError, SigningError, AmountError, ValidationError) as exc:
        logger.warning("account initialization failed for %s: %s", account, exc)
        return TransactionResult.failure(str(exc)).as_dict()
    except Exception as exc:
        logger.exception("Unexpected error initializing %s", account)
        return TransactionResult.failure(str(exc) or exc.__class__.__name__).as_dict()

    response = TransactionResult.ok(result["hash"]).as_dict()
    response["balance"] = result["balance"]
    return response
