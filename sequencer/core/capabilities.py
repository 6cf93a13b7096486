# sequencer/core/capabilities.py
"""
Externally supplied capabilities the pipeline is built on.
Implementations must be safe for concurrent use by many in-flight invocations.
"""

from abc import ABC, abstractmethod

from sequencer.core.types import Receipt
from sequencer.crypto.keys import KeyPair


class Wallet(ABC):
    """Holds the key material used for signing."""

    @abstractmethod
    def key_pair(self) -> KeyPair:
        """Return a signing-capable key pair or raise WalletError."""


class Signer(ABC):
    """Signature scheme: produces and checks signatures over arbitrary bytes."""

    @abstractmethod
    def sign(self, data: bytes, key: KeyPair) -> bytes:
        pass

    @abstractmethod
    def verify(self, data: bytes, signature: bytes, public_identity: str) -> bool:
        pass


class Gateway(ABC):
    """Read-only ledger metadata."""

    @abstractmethod
    async def height(self) -> int:
        """Current confirmed ledger height. Raises GatewayError."""


class Uploader(ABC):
    """Durable-write endpoint for finished bundle binaries."""

    @abstractmethod
    async def upload(self, binary: bytes) -> Receipt:
        """Submit `binary`; safe to call again with the same bytes. Raises UploadError."""
