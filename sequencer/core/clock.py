# sequencer/core/clock.py
import asyncio
import time
from typing import Callable

from sequencer.core.capabilities import Gateway
from sequencer.core.encoding import MAX_HEIGHT
from sequencer.core.errors import ClockError, GatewayError
from sequencer.core.types import Timestamp

Clock = Callable[[], int]


def now_ms() -> int:
    """Wall clock milliseconds since the Unix epoch."""
    return time.time_ns() // 1_000_000


async def query_height(gateway: Gateway, timeout: float) -> int:
    """Ask the gateway for the current height, bounded by `timeout` seconds."""
    try:
        height = await asyncio.wait_for(gateway.height(), timeout)
    except asyncio.TimeoutError as e:
        raise GatewayError(f"Ledger gateway did not answer within {timeout}s") from e
    if height > MAX_HEIGHT:
        raise ClockError(f"Ledger height {height} exceeds the 12 digit encoding")
    return height


async def timestamp(gateway: Gateway, *, timeout: float = 30.0, clock: Clock = now_ms) -> Timestamp:
    """Combine the local clock with the ledger height into a causal anchor."""
    local_ms = clock()
    if local_ms < 0:
        raise ClockError(f"System clock is before the Unix epoch ({local_ms} ms)")
    height = await query_height(gateway, timeout)
    return Timestamp(local_ms=local_ms, height=height)
