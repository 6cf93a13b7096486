# sequencer/core/builder.py
from typing import Optional

import structlog

from sequencer.core.capabilities import Gateway, Signer, Wallet
from sequencer.core.clock import Clock, now_ms, timestamp
from sequencer.core.encoding import b64url_encode
from sequencer.core.errors import BuildError, ClockError, ErrorKind, GatewayError, WalletError
from sequencer.core.types import Bundle, BuildResult, DataItem, ItemKind, Timestamp
from sequencer.crypto.hashing import content_hash


class Builder:
    """
    Turns raw client input into a signed, ledger-anchored bundle.

    For identical input, key and anchor the result is byte-identical; the
    anchor (height + clock) is re-read on every call unless one is pinned.
    """

    def __init__(
        self,
        gateway: Gateway,
        wallet: Wallet,
        signer: Signer,
        logger=None,
        timeout: float = 30.0,
        clock: Clock = now_ms,
    ):
        self.gateway = gateway
        self.wallet = wallet
        self.signer = signer
        self.logger = logger or structlog.get_logger()
        self.timeout = timeout
        self.clock = clock

    async def anchor(self) -> Timestamp:
        try:
            return await timestamp(self.gateway, timeout=self.timeout, clock=self.clock)
        except (GatewayError, ClockError) as e:
            raise BuildError(f"Cannot anchor bundle: {e.message}", kind=ErrorKind.DEPENDENCY) from e

    async def build(
        self,
        raw_input: bytes,
        expect: Optional[ItemKind] = None,
        pinned: Optional[Timestamp] = None,
    ) -> BuildResult:
        item = DataItem.parse(raw_input)
        if expect is not None and item.kind != expect:
            raise BuildError(f"Expected a {expect}, got a {item.kind}")

        try:
            key = self.wallet.key_pair()
        except WalletError as e:
            raise BuildError(f"No usable key material: {e.message}", kind=ErrorKind.DEPENDENCY) from e
        if not key.can_sign:
            raise BuildError("Wallet key cannot sign", kind=ErrorKind.DEPENDENCY)

        anchor = pinned or await self.anchor()
        owner = key.public_key_b64url()
        payload = Bundle.signing_payload(owner, anchor.height, anchor.local_ms, item)
        signature = self.signer.sign(payload, key)

        bundle = Bundle(
            id=content_hash(signature),
            owner=owner,
            height=anchor.height,
            timestamp=anchor.local_ms,
            item=item,
            signature=b64url_encode(signature),
        )
        result = BuildResult(binary=bundle.to_binary(), bundle=bundle)
        self.logger.debug(
            "built bundle",
            bundle_id=bundle.id,
            kind=item.kind,
            height=bundle.height,
            bundle_reference=result.bundle_reference,
        )
        return result
