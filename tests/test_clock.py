# tests/test_clock.py
import asyncio
import json

import pytest

from sequencer import flows
from sequencer.core.capabilities import Gateway
from sequencer.core.clock import query_height, timestamp
from sequencer.core.encoding import MAX_HEIGHT
from sequencer.core.errors import ClockError, ErrorKind, GatewayError

from conftest import FakeGateway, StepClock


class HangingGateway(Gateway):
    async def height(self) -> int:
        await asyncio.sleep(5)
        return 0


@pytest.mark.asyncio
async def test_timestamp_combines_clock_and_height():
    ts = await timestamp(FakeGateway(height=42), clock=lambda: 1_760_000_000_123)
    assert ts.local_ms == 1_760_000_000_123
    assert ts.height == 42
    assert ts.to_dict() == {"timestamp": "1760000000123", "block_height": "000000000042"}


@pytest.mark.asyncio
async def test_height_is_always_twelve_characters():
    for height in (0, 7, 1_234_567, MAX_HEIGHT):
        ts = await timestamp(FakeGateway(height=height), clock=StepClock())
        assert len(ts.block_height) == 12
        assert int(ts.block_height) == height


@pytest.mark.asyncio
async def test_back_to_back_calls_are_monotonic():
    gateway = FakeGateway(height=500)
    clock = StepClock(step=3)
    first = await timestamp(gateway, clock=clock)
    second = await timestamp(gateway, clock=clock)
    assert first.block_height == second.block_height
    assert second.local_ms >= first.local_ms


@pytest.mark.asyncio
async def test_gateway_failure_is_dependency_error():
    with pytest.raises(GatewayError) as exc:
        await timestamp(FakeGateway(fail=True), clock=StepClock())
    assert exc.value.kind is ErrorKind.DEPENDENCY


@pytest.mark.asyncio
async def test_gateway_timeout():
    with pytest.raises(GatewayError, match="did not answer"):
        await query_height(HangingGateway(), timeout=0.05)


@pytest.mark.asyncio
async def test_height_beyond_encoding_is_clock_error():
    with pytest.raises(ClockError):
        await timestamp(FakeGateway(height=MAX_HEIGHT + 1), clock=StepClock())


@pytest.mark.asyncio
async def test_clock_before_epoch():
    gateway = FakeGateway()
    with pytest.raises(ClockError, match="before the Unix epoch"):
        await timestamp(gateway, clock=lambda: -1)
    assert gateway.calls == 0


@pytest.mark.asyncio
async def test_timestamp_flow_renders_json(deps):
    body = json.loads(await flows.timestamp(deps))
    assert set(body) == {"timestamp", "block_height"}
    assert body["block_height"] == "000001234567"
    assert body["timestamp"].isdigit()
