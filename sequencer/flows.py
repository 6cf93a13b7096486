# sequencer/flows.py
"""
Ties core modules and client modules together: build -> sign -> upload ->
persist for writes, fetch -> order -> render for reads.

Every operation takes the shared `Deps` value, returns JSON text and raises
a `SequencerError` whose kind survives up to the caller. Store calls run in
worker threads so a slow disk never stalls the event loop.
"""

import asyncio
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Optional

import structlog

from sequencer.clients.gateway import HttpLedgerGateway
from sequencer.clients.signer import Ed25519Signer
from sequencer.clients.uploader import HttpUploader
from sequencer.clients.wallet import FileWallet, StaticWallet
from sequencer.config import Settings
from sequencer.core.clock import Clock, now_ms
from sequencer.core.clock import timestamp as anchor_timestamp
from sequencer.core.builder import Builder
from sequencer.core.canon import render_json
from sequencer.core.encoding import b64url_decode
from sequencer.core.capabilities import Gateway, Signer, Uploader, Wallet
from sequencer.core.errors import (
    DuplicateError,
    InputError,
    PartialFailure,
    SequencerError,
    UploadError,
)
from sequencer.core.sorting import SortedMessages
from sequencer.core.types import Bundle, BuildResult, ItemKind, Message, Process, Receipt
from sequencer.storage import SQLiteStorage, StorageBackend


@dataclass(frozen=True)
class Deps:
    """
    Process-wide context, built once at startup and shared read-only by every
    concurrent invocation. Only `store` holds mutable state.
    """
    store: StorageBackend
    logger: Any
    wallet: Wallet
    signer: Signer
    gateway: Gateway
    uploader: Uploader
    timeout: float = 30.0               # per network-bound step
    upload_timeout: float = 150.0       # whole upload step, retries included
    clock: Clock = now_ms

    @classmethod
    def from_settings(cls, settings: Settings, logger=None) -> "Deps":
        logger = logger or structlog.get_logger()
        if settings.wallet_path is not None:
            wallet: Wallet = FileWallet(settings.wallet_path)
            logger.info("wallet loaded", owner=wallet.key_pair().public_key_b64url())
        else:
            wallet = StaticWallet(None)
            logger.warning("SU_WALLET_PATH not set, writes are disabled")

        gateway = HttpLedgerGateway(settings.gateway_url, timeout=settings.timeout, logger=logger)
        uploader = HttpUploader(
            settings.upload_url,
            timeout=settings.timeout,
            max_attempts=settings.upload_attempts,
            logger=logger,
        )
        # settings.timeout bounds one HTTP attempt; each step gets its full retry budget
        return cls(
            store=SQLiteStorage(settings.db_path),
            logger=logger,
            wallet=wallet,
            signer=Ed25519Signer(),
            gateway=gateway,
            uploader=uploader,
            timeout=gateway.budget(),
            upload_timeout=uploader.budget(),
        )

    def builder(self) -> Builder:
        return Builder(self.gateway, self.wallet, self.signer, self.logger, timeout=self.timeout, clock=self.clock)


@contextmanager
def timed(logger, stage: str, **labels):
    """Log start, end and duration of one pipeline stage."""
    logger.debug("stage started", stage=stage, **labels)
    start = time.perf_counter()
    ok = False
    try:
        yield
        ok = True
    finally:
        logger.info(
            "stage finished",
            stage=stage,
            ok=ok,
            duration_ms=round((time.perf_counter() - start) * 1000, 3),
            **labels,
        )


async def build(deps: Deps, raw_input: bytes, expect: ItemKind) -> BuildResult:
    with timed(deps.logger, "build", kind=expect):
        return await deps.builder().build(raw_input, expect=expect)


async def upload(deps: Deps, binary: bytes, bundle_reference: str) -> Receipt:
    with timed(deps.logger, "upload", bundle_reference=bundle_reference):
        try:
            return await asyncio.wait_for(deps.uploader.upload(binary), deps.upload_timeout)
        except asyncio.TimeoutError as e:
            # may have landed remotely; retrying the same binary is safe
            raise UploadError(
                f"Upload did not finish within {deps.upload_timeout}s",
                meta={"bundle_reference": bundle_reference},
            ) from e


def _persist(entity, save: Callable, get: Callable) -> bool:
    """
    Save `entity`. Returns False when an identical value was already stored.
    A different value under the same id keeps the DuplicateError.
    """
    try:
        save(entity)
        return True
    except DuplicateError:
        if get(entity.id) != entity:
            raise
        return False


async def _write(deps: Deps, raw_input: bytes, kind: ItemKind) -> str:
    entity_type = Message if kind == "Message" else Process
    save = deps.store.save_message if kind == "Message" else deps.store.save_process
    get = deps.store.get_message if kind == "Message" else deps.store.get_process

    build_result = await build(deps, raw_input, kind)
    receipt = await upload(deps, build_result.binary, build_result.bundle_reference)

    # the ledger write is final from here on; local failures become PartialFailure
    entity = None
    try:
        with timed(deps.logger, "persist", bundle_reference=receipt.bundle_reference):
            entity = entity_type.from_bundle(build_result.bundle)
            created = await asyncio.to_thread(_persist, entity, save, get)
        result = render_json(receipt.to_dict())
    except SequencerError as e:
        deps.logger.error(
            "ledger write not indexed locally",
            kind=kind,
            ledger_id=receipt.id,
            bundle_reference=receipt.bundle_reference,
            error=e.message,
        )
        raise PartialFailure(
            f"{kind} committed to the ledger as {receipt.id} but not indexed locally: {e.message}",
            receipt=receipt,
            entity_id=entity.id if entity is not None else build_result.bundle.id,
            binary=build_result.binary,
        ) from e

    if kind == "Message":
        deps.logger.info(
            "saved message",
            id=entity.id,
            process_id=entity.process_id,
            sequence_key=entity.sequence_key,
            bundle_reference=entity.bundle_reference,
            ledger_id=receipt.id,
            created=created,
        )
    else:
        deps.logger.info(
            "saved process",
            id=entity.id,
            owner=entity.owner_identity,
            bundle_reference=entity.creation_bundle_reference,
            ledger_id=receipt.id,
            created=created,
        )
    return result


async def write_message(deps: Deps, raw_input: bytes) -> str:
    return await _write(deps, raw_input, "Message")


async def write_process(deps: Deps, raw_input: bytes) -> str:
    return await _write(deps, raw_input, "Process")


async def read_messages(
    deps: Deps,
    process_id: str,
    from_: Optional[str] = None,
    to: Optional[str] = None,
) -> str:
    messages = await asyncio.to_thread(deps.store.get_messages, process_id)
    sorted_messages = SortedMessages.from_messages(messages, from_, to)
    return render_json(sorted_messages.to_list())


async def read_message(deps: Deps, message_id: str) -> str:
    message = await asyncio.to_thread(deps.store.get_message, message_id)
    return render_json(message.to_dict())


async def read_process(deps: Deps, process_id: str) -> str:
    process = await asyncio.to_thread(deps.store.get_process, process_id)
    return render_json(process.to_dict())


async def timestamp(deps: Deps) -> str:
    ts = await anchor_timestamp(deps.gateway, timeout=deps.timeout, clock=deps.clock)
    return render_json(ts.to_dict())


async def reindex(deps: Deps, binary: bytes) -> str:
    """
    Index a bundle binary that is already on the ledger (the recovery path
    for a PartialFailure). The signature is checked before anything is stored.
    """
    bundle = Bundle.from_binary(binary)
    if not deps.signer.verify(bundle.payload(), b64url_decode(bundle.signature), bundle.owner):
        raise InputError(f"Bundle {bundle.id} has an invalid signature", meta={"id": bundle.id})

    if bundle.item.kind == "Message":
        entity = Message.from_bundle(bundle)
        created = await asyncio.to_thread(_persist, entity, deps.store.save_message, deps.store.get_message)
    else:
        entity = Process.from_bundle(bundle)
        created = await asyncio.to_thread(_persist, entity, deps.store.save_process, deps.store.get_process)

    status = "indexed" if created else "present"
    deps.logger.info("reindexed bundle", id=entity.id, kind=bundle.item.kind, status=status)
    return render_json({"id": entity.id, "kind": bundle.item.kind, "status": status})


def render_error(error: SequencerError) -> str:
    """Boundary rendering of a typed error; kind and meta are kept."""
    return render_json({"error": error.to_dict()})


__all__ = [
    "Deps",
    "write_message",
    "write_process",
    "read_messages",
    "read_message",
    "read_process",
    "timestamp",
    "reindex",
    "render_error",
]
