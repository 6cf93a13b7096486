# tests/conftest.py
import json
from pathlib import Path
from typing import List

import pytest
import structlog

from sequencer.clients.signer import Ed25519Signer
from sequencer.clients.wallet import StaticWallet
from sequencer.core.capabilities import Gateway, Uploader
from sequencer.core.errors import GatewayError, UploadError
from sequencer.core.types import Receipt
from sequencer.crypto.hashing import content_hash
from sequencer.crypto.keys import KeyPair
from sequencer.flows import Deps
from sequencer.storage import SQLiteStorage


class FakeGateway(Gateway):
    def __init__(self, height: int = 1_234_567, fail: bool = False):
        self._height = height
        self.fail = fail
        self.calls = 0

    async def height(self) -> int:
        self.calls += 1
        if self.fail:
            raise GatewayError("gateway down")
        return self._height


class FakeUploader(Uploader):
    """Records every binary; answers with a receipt whose id derives from the content."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.uploads: List[bytes] = []

    async def upload(self, binary: bytes) -> Receipt:
        if self.fail:
            raise UploadError("remote rejected")
        self.uploads.append(binary)
        ref = content_hash(binary)
        return Receipt(id=f"ledger-{ref[:16]}", timestamp=1_760_000_000_000, bundle_reference=ref)


class StepClock:
    """Deterministic clock: starts at `start` and advances `step` ms per read."""

    def __init__(self, start: int = 1_760_000_000_000, step: int = 1):
        self.now = start
        self.step = step

    def __call__(self) -> int:
        value = self.now
        self.now += self.step
        return value


def item_bytes(kind: str = "Message", target: str = "proc-1", data: str = "hello", **extra) -> bytes:
    obj = {"type": kind, "data": data, **extra}
    if kind == "Message":
        obj["target"] = target
    return json.dumps(obj).encode("utf-8")


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.reset_defaults()


@pytest.fixture
def keys() -> KeyPair:
    return KeyPair.generate()


@pytest.fixture
def temp_db_path(tmp_path: Path) -> Path:
    return tmp_path / "test.db"


@pytest.fixture
def storage(temp_db_path: Path) -> SQLiteStorage:
    store = SQLiteStorage(db_path=temp_db_path)
    yield store
    store.close()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def uploader() -> FakeUploader:
    return FakeUploader()


@pytest.fixture
def deps(storage, keys, gateway, uploader) -> Deps:
    return Deps(
        store=storage,
        logger=structlog.get_logger(),
        wallet=StaticWallet(keys),
        signer=Ed25519Signer(),
        gateway=gateway,
        uploader=uploader,
        timeout=2.0,
        upload_timeout=2.0,
        clock=StepClock(),
    )
