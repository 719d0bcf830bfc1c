"""FastAPI application exposing the ledger methods over JSON-RPC and REST."""

from __future__ import annotations

import json
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field
import uvicorn

from nano_mcp import mcp
from nano_mcp.config import NanoConfig, default_config
from nano_mcp.mcp import INTERNAL_ERROR, INVALID_PARAMS, METHOD_NOT_FOUND, NanoMethod
from nano_mcp.metrics import default_metrics
from nano_mcp.nano_api import default_client
from nano_mcp.rate_limiter import PerKeyRateLimiter

logger = logging.getLogger(__name__)

HEALTH_STATUS = {"status": "ok"}
APP_VERSION = "0.1.0"
MCP_SERVER_NAME = "nano-mcp-server"
MCP_SERVER_VERSION = APP_VERSION

# REST routes translate dispatcher error codes into HTTP statuses.
HTTP_STATUS_BY_CODE = {
    METHOD_NOT_FOUND: 404,
    INVALID_PARAMS: 400,
    INTERNAL_ERROR: 502,
}


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "level": record.levelname,
            "message": record.getMessage(),
            "name": record.name,
        }
        for key in ("method", "request_id", "error"):
            if hasattr(record, key):
                payload[key] = getattr(record, key)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(config: NanoConfig = default_config) -> None:
    level = getattr(logging, config.log_level.upper(), logging.INFO)
    if config.log_format.lower() == "json":
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
        logging.basicConfig(level=level, handlers=[handler])
    else:
        logging.basicConfig(level=level)


configure_logging()
registry = mcp.default_registry
rate_limiter = PerKeyRateLimiter(
    rate_per_sec=default_config.rate_limit_qps,
    per_key=default_config.per_method_rate_limits,
)


class ReceiveAllRequest(BaseModel):
    address: str
    private_key: str = Field(alias="privateKey")


@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    await default_client.aclose()


app = FastAPI(
    title="Nano MCP Server",
    description="Nano ledger methods (balances, conversions, send and receive) for LLM agents.",
    version=APP_VERSION,
    lifespan=lifespan,
)


@app.middleware("http")
async def add_request_context(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    start = time.time()
    default_metrics.incr_request()
    response = await call_next(request)
    default_metrics.record_duration(request_id, (time.time() - start) * 1000)
    response.headers["X-Request-ID"] = request_id
    return response


def _is_failure(envelope: Dict[str, Any]) -> bool:
    if "error" in envelope:
        return True
    result = envelope.get("result")
    return isinstance(result, dict) and result.get("success") is False


def _record_outcome(method: str, envelope: Dict[str, Any], request_id: Optional[str]) -> None:
    if _is_failure(envelope):
        error = envelope.get("error") or envelope["result"].get("error")
        logger.warning(
            "method=%s outcome=error request_id=%s",
            method,
            request_id,
            extra={"method": method, "request_id": request_id, "error": error},
        )
        default_metrics.record_method(method, success=False)
    else:
        logger.info(
            "method=%s outcome=success request_id=%s",
            method,
            request_id,
            extra={"method": method, "request_id": request_id},
        )
        default_metrics.record_method(method, success=True)

    result = envelope.get("result")
    if method == NanoMethod.RECEIVE_ALL_PENDING.value and isinstance(result, dict) and result.get("success"):
        default_metrics.record_receive_batch(
            received=result.get("receivedCount", 0),
            failed=result.get("failedCount", 0),
        )
    elif method == NanoMethod.SEND_TRANSACTION.value and isinstance(result, dict) and result.get("success"):
        default_metrics.record_send()


async def _enforce_rate_limit(method: str, rpc_id: Any = None) -> Optional[JSONResponse]:
    if await rate_limiter.allow(method):
        return None
    logger.warning("method=%s outcome=rate_limited", method, extra={"method": method})
    default_metrics.incr_rate_limited()
    return JSONResponse(
        status_code=429,
        content={"jsonrpc": "2.0", "id": rpc_id, "error": {"code": 429, "message": "Rate limit exceeded"}},
    )


async def _dispatch(method: str, params: Any, request: Request) -> Dict[str, Any]:
    envelope = await registry.handle(method, params)
    _record_outcome(method, envelope, getattr(request.state, "request_id", None))
    return envelope


async def _rest_call(method: NanoMethod, params: Dict[str, Any], request: Request) -> JSONResponse:
    limited = await _enforce_rate_limit(method.value)
    if limited:
        return limited
    envelope = await _dispatch(method.value, params, request)
    if "error" in envelope:
        status = HTTP_STATUS_BY_CODE.get(envelope["error"]["code"], 500)
        return JSONResponse(status_code=status, content=envelope)
    return JSONResponse(content=envelope["result"])


@app.get("/health")
async def health() -> JSONResponse:
    """Lightweight health endpoint for monitoring."""
    return JSONResponse(content=HEALTH_STATUS)


@app.get("/metrics")
async def metrics() -> JSONResponse:
    return JSONResponse(content=default_metrics.snapshot())


@app.get("/tools/balance/{address}")
async def balance(address: str, request: Request) -> JSONResponse:
    return await _rest_call(NanoMethod.GET_BALANCE, {"address": address}, request)


@app.get("/tools/account_info/{address}")
async def account_info(address: str, request: Request) -> JSONResponse:
    return await _rest_call(NanoMethod.GET_ACCOUNT_INFO, {"address": address}, request)


@app.get("/tools/pending/{address}")
async def pending(address: str, request: Request, count: int | None = Query(None, ge=1)) -> JSONResponse:
    params: Dict[str, Any] = {"address": address}
    if count is not None:
        params["count"] = count
    return await _rest_call(NanoMethod.GET_PENDING_BLOCKS, params, request)


@app.get("/tools/convert/to_display/{raw}")
async def convert_to_display(raw: str, request: Request) -> JSONResponse:
    return await _rest_call(NanoMethod.CONVERT_TO_DISPLAY_UNIT, {"rawAmount": raw}, request)


@app.get("/tools/convert/from_display/{amount}")
async def convert_from_display(amount: str, request: Request) -> JSONResponse:
    return await _rest_call(NanoMethod.CONVERT_FROM_DISPLAY_UNIT, {"displayAmount": amount}, request)


@app.post("/pending-receive/receive-all")
async def receive_all(body: ReceiveAllRequest, request: Request) -> JSONResponse:
    """Receive every pending block for the posted account."""
    return await _rest_call(
        NanoMethod.RECEIVE_ALL_PENDING,
        {"address": body.address, "privateKey": body.private_key},
        request,
    )


@app.post("/mcp")
async def mcp_gateway(request: Request) -> Response:
    """
    JSON-RPC gateway for MCP clients.

    Supported methods:
      - initialize
      - list_tools / tools/list
      - call_tool / tools/call
      - notifications/initialized
      - any registered ledger method, called directly by name
    """
    request_id = getattr(request.state, "request_id", None)
    start_time = time.time()

    def _respond(
        payload: Dict[str, Any],
        status_code: int = 200,
        *,
        outcome: str,
        method_label: Optional[str] = None,
        error_code: Optional[int] = None,
    ) -> JSONResponse:
        log = logger.info if outcome == "success" else logger.warning
        log(
            "mcp outcome=%s method=%s id=%s status=%s duration_ms=%.2f error_code=%s",
            outcome,
            method_label,
            payload.get("id"),
            status_code,
            (time.time() - start_time) * 1000,
            error_code,
            extra={"request_id": request_id, "method": method_label, "error": error_code},
        )
        return JSONResponse(status_code=status_code, content=payload)

    try:
        body = await request.json()
    except ValueError:
        payload = _jsonrpc_error_payload(None, -32700, "Parse error")
        return _respond(payload, status_code=400, outcome="error", error_code=-32700)

    if not isinstance(body, dict):
        payload = _jsonrpc_error_payload(None, -32600, "Invalid request")
        return _respond(payload, status_code=400, outcome="error", error_code=-32600)

    method = body.get("method")
    rpc_id = body.get("id")
    raw_params = body.get("params")
    if not isinstance(method, str) or not method:
        payload = _jsonrpc_error_payload(rpc_id, -32600, "Invalid request")
        return _respond(payload, outcome="error", error_code=-32600)

    if method in ("notifications/initialized", "initialized"):
        logger.debug("mcp initialized notification received", extra={"request_id": request_id})
        return Response(status_code=204)

    if method in registry.method_names:
        limited = await _enforce_rate_limit(method, rpc_id)
        if limited:
            return limited
        envelope = await _dispatch(method, raw_params, request)
        if "error" in envelope:
            payload = {"jsonrpc": "2.0", "id": rpc_id, "error": envelope["error"]}
            return _respond(payload, outcome="error", method_label=method, error_code=envelope["error"]["code"])
        return _respond(_jsonrpc_success_payload(rpc_id, envelope["result"]), outcome="success", method_label=method)

    if raw_params is None:
        params: Dict[str, Any] = {}
    elif isinstance(raw_params, dict):
        params = raw_params
    else:
        payload = _jsonrpc_error_payload(rpc_id, INVALID_PARAMS, "Invalid params")
        return _respond(payload, outcome="error", method_label=method, error_code=INVALID_PARAMS)

    if method == "initialize":
        protocol_version = params.get("protocolVersion")
        if not isinstance(protocol_version, str) or not protocol_version:
            payload = _jsonrpc_error_payload(rpc_id, INVALID_PARAMS, "Invalid params")
            return _respond(payload, outcome="error", method_label=method, error_code=INVALID_PARAMS)
        result = {
            "protocolVersion": protocol_version,
            "serverInfo": {"name": MCP_SERVER_NAME, "version": MCP_SERVER_VERSION},
            "capabilities": {"tools": {"listChanged": False}},
        }
        return _respond(_jsonrpc_success_payload(rpc_id, result), outcome="success", method_label=method)

    if method in ("list_tools", "tools/list"):
        limited = await _enforce_rate_limit("list_tools", rpc_id)
        if limited:
            return limited
        result = {"tools": registry.list_methods()}
        return _respond(_jsonrpc_success_payload(rpc_id, result), outcome="success", method_label=method)

    if method in ("call_tool", "tools/call"):
        tool_name = params.get("tool") or params.get("name")
        tool_params = params.get("params")
        if tool_params is None:
            tool_params = params.get("arguments") or {}
        if not isinstance(tool_name, str) or not tool_name.strip():
            payload = _jsonrpc_error_payload(rpc_id, INVALID_PARAMS, "Invalid params")
            return _respond(payload, outcome="error", method_label=method, error_code=INVALID_PARAMS)
        if not isinstance(tool_params, (dict, list)):
            payload = _jsonrpc_error_payload(rpc_id, INVALID_PARAMS, "Invalid params")
            return _respond(payload, outcome="error", method_label=tool_name, error_code=INVALID_PARAMS)
        limited = await _enforce_rate_limit(tool_name, rpc_id)
        if limited:
            return limited
        envelope = await _dispatch(tool_name, tool_params, request)
        return _respond(
            _jsonrpc_success_payload(rpc_id, _wrap_tool_result(envelope)),
            outcome="error" if _is_failure(envelope) else "success",
            method_label=tool_name,
        )

    payload = _jsonrpc_error_payload(rpc_id, METHOD_NOT_FOUND, f"Method {method} not found")
    payload["error"]["details"] = {"availableMethods": registry.method_names}
    return _respond(payload, outcome="error", method_label=method, error_code=METHOD_NOT_FOUND)


def _jsonrpc_success_payload(rpc_id: Any, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": rpc_id, "result": result}


def _jsonrpc_error_payload(rpc_id: Any, code: int, message: str) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": rpc_id, "error": {"code": code, "message": message}}


def _wrap_tool_result(envelope: Dict[str, Any]) -> Dict[str, Any]:
    """Shape a dispatcher envelope into an MCP content array."""
    if "error" in envelope:
        error = envelope["error"]
        return {
            "content": [{"type": "text", "text": str(error.get("message") or "Error")}],
            "structuredContent": envelope,
            "isError": True,
        }

    result = envelope.get("result")
    if isinstance(result, str):
        return {"content": [{"type": "text", "text": result}]}

    wrapped: Dict[str, Any] = {
        "content": [{"type": "text", "text": json.dumps(result, ensure_ascii=True)}],
        "structuredContent": result,
    }
    # Engine failures are in-band results, still flagged for the client.
    if isinstance(result, dict) and result.get("success") is False:
        wrapped["isError"] = True
    return wrapped


def run() -> None:
    """Serve the app with uvicorn on the configured host and port."""
    uvicorn.run(app, host=default_config.host, port=default_config.port, log_config=None)


if __name__ == "__main__":
    run()
