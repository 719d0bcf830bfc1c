"""
Method registry and dispatcher for the ledger methods.

``MethodRegistry.handle`` is the single entry point: it resolves a method
name, binds keyword (object) or positional (array) params, awaits the
handler and wraps the outcome as ``{"result": ...}`` or
``{"error": {"code", "message", "details"?}}``. Nothing raises past it.
"""

from __future__ import annotations

import functools
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union

from nano_mcp.accounts import ADDRESS_REGEX
from nano_mcp.config import NanoConfig, default_config
from nano_mcp.nano_api import NanoApiError, default_client
from nano_mcp.tools import (
    convert_from_display_unit,
    convert_to_display_unit,
    get_account_info,
    get_balance,
    get_block_count,
    get_pending_blocks,
    get_version,
    initialize_account,
    receive_all_pending,
    receive_pending_block,
    send_transaction,
)
from nano_mcp.tools.validators import HASH_REGEX, ValidationError
from nano_mcp.units import AmountError

logger = logging.getLogger(__name__)

METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

ADDRESS_PATTERN = ADDRESS_REGEX.pattern
HASH_PATTERN = HASH_REGEX.pattern
RAW_PATTERN = r"^\d+$"
DISPLAY_PATTERN = r"^\d*\.?\d*$"


class NanoMethod(str, Enum):
    """Closed set of methods the dispatcher knows about."""

    GET_BALANCE = "getBalance"
    GET_ACCOUNT_INFO = "getAccountInfo"
    GET_PENDING_BLOCKS = "getPendingBlocks"
    CONVERT_TO_DISPLAY_UNIT = "convertToDisplayUnit"
    CONVERT_FROM_DISPLAY_UNIT = "convertFromDisplayUnit"
    SEND_TRANSACTION = "sendTransaction"
    RECEIVE_ALL_PENDING = "receiveAllPending"
    RECEIVE_PENDING_BLOCK = "receivePendingBlock"
    INITIALIZE_ACCOUNT = "initializeAccount"
    GET_BLOCK_COUNT = "getBlockCount"
    GET_VERSION = "getVersion"


HandlerCallable = Callable[..., Union[Awaitable[Any], Any]]


@dataclass(slots=True)
class MethodDefinition:
    method: NanoMethod
    description: str
    # Ordered wire parameter name -> handler keyword; order defines positional calls.
    params: Dict[str, str]
    input_schema: Dict[str, Any]
    handler: HandlerCallable

    @property
    def name(self) -> str:
        return self.method.value


class InvalidParamsError(Exception):
    """Raised when request params cannot be bound to a handler."""


def error_envelope(code: int, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    error: Dict[str, Any] = {"code": code, "message": message}
    if details:
        error["details"] = details
    return {"error": error}


def _object_schema(properties: Dict[str, Any], required: List[str]) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": properties,
        "required": required,
        "additionalProperties": False,
    }


def _address_schema(description: str = "Nano address (nano_ or xrb_ prefixed)") -> Dict[str, Any]:
    return {
        "type": "string",
        "description": description,
        "pattern": ADDRESS_PATTERN,
        "minLength": 64,
        "maxLength": 65,
    }


PRIVATE_KEY_SCHEMA = {
    "type": "string",
    "description": "Account private key (64 hex characters). Never logged.",
    "pattern": HASH_PATTERN,
}


class MethodRegistry:
    """Name -> handler mapping populated once at construction."""

    def __init__(self, definitions: Iterable[MethodDefinition]) -> None:
        self._methods: Dict[str, MethodDefinition] = {d.name: d for d in definitions}

    @property
    def method_names(self) -> List[str]:
        return list(self._methods)

    def list_methods(self) -> List[Dict[str, Any]]:
        """Return name, description and input schema of every method."""
        return [
            {
                "name": definition.name,
                "description": definition.description,
                "inputSchema": definition.input_schema,
            }
            for definition in self._methods.values()
        ]

    def _bind(self, definition: MethodDefinition, params: Any) -> Dict[str, Any]:
        if params is None:
            supplied: Dict[str, Any] = {}
        elif isinstance(params, dict):
            unknown = sorted(set(params) - set(definition.params))
            if unknown:
                raise InvalidParamsError(
                    f"Unknown parameter(s) for {definition.name}: {', '.join(unknown)}"
                )
            supplied = {definition.params[key]: value for key, value in params.items()}
        elif isinstance(params, (list, tuple)):
            if len(params) > len(definition.params):
                raise InvalidParamsError(
                    f"{definition.name} takes at most {len(definition.params)} parameter(s), "
                    f"got {len(params)}"
                )
            supplied = dict(zip(definition.params.values(), params))
        else:
            raise InvalidParamsError("Params must be an object or an array.")

        missing = [
            wire
            for wire in definition.input_schema.get("required", [])
            if definition.params[wire] not in supplied
        ]
        if missing:
            raise InvalidParamsError(
                f"Missing required parameter(s) for {definition.name}: {', '.join(missing)}"
            )
        try:
            inspect.signature(definition.handler).bind(**supplied)
        except TypeError as exc:
            raise InvalidParamsError(f"Invalid parameters for {definition.name}: {exc}") from exc
        return supplied

    async def handle(self, method: str, params: Any = None) -> Dict[str, Any]:
        """Dispatch ``method`` with ``params`` and wrap the outcome in an envelope."""
        if isinstance(method, NanoMethod):
            method = method.value
        definition = self._methods.get(method) if isinstance(method, str) else None
        if definition is None:
            return error_envelope(
                METHOD_NOT_FOUND,
                f"Method {method} not found",
                {"availableMethods": self.method_names},
            )

        try:
            kwargs = self._bind(definition, params)
        except InvalidParamsError as exc:
            return error_envelope(INVALID_PARAMS, str(exc))

        try:
            result = definition.handler(**kwargs)
            if inspect.isawaitable(result):
                result = await result
        except (ValidationError, AmountError) as exc:
            return error_envelope(INVALID_PARAMS, str(exc))
        except NanoApiError as exc:
            details = {"errorCode": exc.code} if exc.code else None
            return error_envelope(INTERNAL_ERROR, str(exc), details)
        except Exception as exc:
            logger.exception("Unexpected error in method %s", definition.name)
            return error_envelope(INTERNAL_ERROR, str(exc) or exc.__class__.__name__)
        return {"result": result}


def build_method_definitions(client, config: NanoConfig) -> List[MethodDefinition]:
    """Wire every ``NanoMethod`` to its handler, bound to ``client`` and ``config``."""
    address_only = _object_schema({"address": _address_schema()}, ["address"])
    credentials = {"address": _address_schema(), "privateKey": PRIVATE_KEY_SCHEMA}
    return [
        MethodDefinition(
            method=NanoMethod.GET_BALANCE,
            description="Return confirmed balance, pending and receivable amounts in raw.",
            params={"address": "address"},
            input_schema=address_only,
            handler=functools.partial(get_balance, client=client),
        ),
        MethodDefinition(
            method=NanoMethod.GET_ACCOUNT_INFO,
            description="Return the node's account_info (frontier, representative, balance, ...).",
            params={"address": "address"},
            input_schema=address_only,
            handler=functools.partial(get_account_info, client=client),
        ),
        MethodDefinition(
            method=NanoMethod.GET_PENDING_BLOCKS,
            description="List pending (receivable) blocks with hash, raw amount and source.",
            params={"address": "address", "count": "count"},
            input_schema=_object_schema(
                {
                    "address": _address_schema(),
                    "count": {
                        "type": "integer",
                        "minimum": 1,
                        "maximum": config.pending_count,
                        "description": f"Optional max blocks (1-{config.pending_count})",
                    },
                },
                ["address"],
            ),
            handler=functools.partial(get_pending_blocks, client=client, config=config),
        ),
        MethodDefinition(
            method=NanoMethod.CONVERT_TO_DISPLAY_UNIT,
            description="Convert a raw amount to XNO (1 XNO = 10^30 raw). Exact.",
            params={"rawAmount": "raw_amount"},
            input_schema=_object_schema(
                {"rawAmount": {"type": "string", "pattern": RAW_PATTERN, "description": "Amount in raw"}},
                ["rawAmount"],
            ),
            handler=convert_to_display_unit,
        ),
        MethodDefinition(
            method=NanoMethod.CONVERT_FROM_DISPLAY_UNIT,
            description="Convert an XNO amount to raw (1 XNO = 10^30 raw). Exact.",
            params={"displayAmount": "display_amount"},
            input_schema=_object_schema(
                {
                    "displayAmount": {
                        "type": "string",
                        "pattern": DISPLAY_PATTERN,
                        "description": "Amount in XNO, up to 30 decimal places",
                    }
                },
                ["displayAmount"],
            ),
            handler=convert_from_display_unit,
        ),
        MethodDefinition(
            method=NanoMethod.SEND_TRANSACTION,
            description=(
                "Sign and publish a send block. Give exactly one of amountRaw (raw) or amount (XNO). "
                "Returns {success, hash} or {success: false, error}."
            ),
            params={
                "fromAddress": "from_address",
                "privateKey": "private_key",
                "toAddress": "to_address",
                "amountRaw": "amount_raw",
                "amount": "amount",
            },
            input_schema=_object_schema(
                {
                    "fromAddress": _address_schema("Sending account"),
                    "privateKey": PRIVATE_KEY_SCHEMA,
                    "toAddress": _address_schema("Receiving account"),
                    "amountRaw": {"type": "string", "pattern": RAW_PATTERN, "description": "Amount in raw"},
                    "amount": {"type": "string", "pattern": DISPLAY_PATTERN, "description": "Amount in XNO"},
                },
                ["fromAddress", "privateKey", "toAddress"],
            ),
            handler=functools.partial(send_transaction, client=client, config=config),
        ),
        MethodDefinition(
            method=NanoMethod.RECEIVE_ALL_PENDING,
            description=(
                "Receive every pending block for an account, one at a time. Per-block failures "
                "are reported in 'failed' without stopping the batch."
            ),
            params={"address": "address", "privateKey": "private_key"},
            input_schema=_object_schema(dict(credentials), ["address", "privateKey"]),
            handler=functools.partial(receive_all_pending, client=client, config=config),
        ),
        MethodDefinition(
            method=NanoMethod.RECEIVE_PENDING_BLOCK,
            description="Receive one pending block by hash.",
            params={"address": "address", "privateKey": "private_key", "blockHash": "block_hash"},
            input_schema=_object_schema(
                {
                    **credentials,
                    "blockHash": {"type": "string", "pattern": HASH_PATTERN, "description": "Pending block hash"},
                },
                ["address", "privateKey", "blockHash"],
            ),
            handler=functools.partial(receive_pending_block, client=client, config=config),
        ),
        MethodDefinition(
            method=NanoMethod.INITIALIZE_ACCOUNT,
            description="Open a new account by receiving its first pending block.",
            params={"address": "address", "privateKey": "private_key"},
            input_schema=_object_schema(dict(credentials), ["address", "privateKey"]),
            handler=functools.partial(initialize_account, client=client, config=config),
        ),
        MethodDefinition(
            method=NanoMethod.GET_BLOCK_COUNT,
            description="Return the node's block counts.",
            params={},
            input_schema=_object_schema({}, []),
            handler=functools.partial(get_block_count, client=client),
        ),
        MethodDefinition(
            method=NanoMethod.GET_VERSION,
            description="Return node vendor and protocol versions.",
            params={},
            input_schema=_object_schema({}, []),
            handler=functools.partial(get_version, client=client),
        ),
    ]


def build_registry(client=default_client, config: NanoConfig = default_config) -> MethodRegistry:
    return MethodRegistry(build_method_definitions(client, config))


default_registry = build_registry()

