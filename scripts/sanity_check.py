"""Read-only sanity checks against a live Nano node. Never signs or publishes."""

from __future__ import annotations

import asyncio
import os
import sys

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

from nano_mcp.mcp import NanoMethod, default_registry  # noqa: E402
from nano_mcp.nano_api import default_client  # noqa: E402

# Nano Foundation developer fund account (public on chain); override via env.
SAMPLE_ADDRESS = os.getenv(
    "NANO_SAMPLE_ADDRESS",
    "nano_3t6k35gi95xu6tergt6p69ck76ogmitsa8mnijtpxm9fkcm736xtoncuohr3",
)


async def main() -> None:
    checks = [
        (NanoMethod.GET_VERSION, None),
        (NanoMethod.GET_BLOCK_COUNT, None),
        (NanoMethod.GET_BALANCE, {"address": SAMPLE_ADDRESS}),
        (NanoMethod.GET_ACCOUNT_INFO, {"address": SAMPLE_ADDRESS}),
        (NanoMethod.GET_PENDING_BLOCKS, {"address": SAMPLE_ADDRESS, "count": 3}),
        (NanoMethod.CONVERT_TO_DISPLAY_UNIT, ["1000000000000000000000000000000"]),
        (NanoMethod.CONVERT_FROM_DISPLAY_UNIT, ["0.000001"]),
    ]
    try:
        for method, params in checks:
            print(f"{method.value}:", await default_registry.handle(method.value, params))
    finally:
        await default_client.aclose()


if __name__ == "__main__":
    asyncio.run(main())
