"""Send engine: build, sign and publish a send block."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional, Union

from nano_mcp.accounts import address_to_public_key
from nano_mcp.config import NanoConfig, default_config
from nano_mcp.models import SignedBlock, TransactionResult, UnsignedBlockFields
from nano_mcp.nano_api import AccountNotFoundError, NanoApiError, default_client
from nano_mcp.signing import SigningError, derive_public_key, sign_state_block
from nano_mcp.tools.account import account_state_from_info
from nano_mcp.tools.validators import ValidationError, require_address, require_private_key
from nano_mcp.units import AmountError, display_to_raw, parse_raw, raw_to_display

logger = logging.getLogger(__name__)

Amount = Union[str, int]


def _resolve_amount(amount_raw: Optional[Amount], amount: Optional[Amount]) -> int:
    if (amount_raw is None) == (amount is None):
        raise ValidationError("Provide exactly one of amountRaw (raw units) or amount (XNO).")
    value = parse_raw(amount_raw) if amount_raw is not None else display_to_raw(amount)
    if value <= 0:
        raise ValidationError("Send amount must be greater than zero.")
    return value


async def send_transaction(
    from_address: str,
    private_key: str,
    to_address: str,
    amount_raw: Optional[Amount] = None,
    amount: Optional[Amount] = None,
    *,
    client=default_client,
    config: NanoConfig = default_config,
    signer: Callable[..., SignedBlock] = sign_state_block,
) -> Dict[str, Any]:
    """
    Send ``amount_raw`` raw (or ``amount`` XNO) from ``from_address`` to ``to_address``.

    Atomic from the caller's point of view: the result is either
    ``{"success": True, "hash"}`` or ``{"success": False, "error"}``.
    Insufficient balance is detected locally and nothing is published.
    """
    try:
        sender = require_address(from_address, field="fromAddress")
        recipient = require_address(to_address, field="toAddress")
        key = require_private_key(private_key)
        send_amount = _resolve_amount(amount_raw, amount)
        if derive_public_key(key) != address_to_public_key(sender):
            raise ValidationError("Private key does not belong to fromAddress.")
    except (ValidationError, AmountError, SigningError) as exc:
        return TransactionResult.failure(str(exc)).as_dict()

    try:
        try:
            info = await client.fetch_account_info(sender)
        except AccountNotFoundError:
            return TransactionResult.failure(
                "Account has no previous blocks. Receive funds into it before sending."
            ).as_dict()
        state = account_state_from_info(sender, info, config.default_representative)
        if not state.opened:
            return TransactionResult.failure(
                "Account has no previous blocks. Receive funds into it before sending."
            ).as_dict()

        if send_amount > state.balance:
            return TransactionResult.failure(
                f"Insufficient balance: have {state.balance} raw ({raw_to_display(state.balance)} XNO), "
                f"tried to send {send_amount} raw ({raw_to_display(send_amount)} XNO)."
            ).as_dict()
        new_balance = state.balance - send_amount

        work = await client.generate_work(state.frontier, config.send_difficulty)
        fields = UnsignedBlockFields(
            account=sender,
            previous=state.frontier,
            representative=state.representative,
            balance=new_balance,
            link=address_to_public_key(recipient),
        )
        signed = signer(fields, key, work=work, subtype="send")
        block_hash = await client.process_block(signed.as_json_block(), "send")
    except (NanoApiError, SigningError, AmountError) as exc:
        logger.warning("send failed from=%s error=%s", sender, exc)
        return TransactionResult.failure(str(exc)).as_dict()
    except Exception as exc:
        logger.exception("Unexpected error sending from %s", sender)
        return TransactionResult.failure(str(exc) or exc.__class__.__name__).as_dict()

    logger.info("sent amount=%s from=%s to=%s hash=%s", send_amount, sender, recipient, block_hash)
    return TransactionResult.ok(block_hash).as_dict()

