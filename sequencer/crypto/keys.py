# sequencer/crypto/keys.py
from typing import Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from sequencer.core.encoding import b64url_encode, b64url_decode


class KeyPair:
    """
    Ed25519 key material. A verify-only pair (public key, no private key) is
    produced by `from_public_b64url` and refuses to sign.
    """

    def __init__(self, public_key: Ed25519PublicKey, private_key: Optional[Ed25519PrivateKey] = None):
        self._public = public_key
        self._private = private_key

    @classmethod
    def generate(cls) -> "KeyPair":
        private = Ed25519PrivateKey.generate()
        return cls(private.public_key(), private)

    @classmethod
    def from_private_pem(cls, pem: bytes) -> "KeyPair":
        private = serialization.load_pem_private_key(pem, password=None)
        if not isinstance(private, Ed25519PrivateKey):
            raise ValueError("Wallet key is not an Ed25519 private key")
        return cls(private.public_key(), private)

    @classmethod
    def from_public_b64url(cls, public_b64: str) -> "KeyPair":
        return cls(Ed25519PublicKey.from_public_bytes(b64url_decode(public_b64)))

    @property
    def can_sign(self) -> bool:
        return self._private is not None

    def private_pem(self) -> bytes:
        if self._private is None:
            raise ValueError("Verify-only key pair has no private key")
        return self._private.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )

    def public_key_b64url(self) -> str:
        raw = self._public.public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        return b64url_encode(raw)

    def sign_bytes(self, data: bytes) -> bytes:
        if self._private is None:
            raise ValueError("Verify-only key pair cannot sign")
        return self._private.sign(data)

    def verify_bytes(self, signature: bytes, data: bytes) -> bool:
        try:
            self._public.verify(signature, data)
            return True
        except InvalidSignature:
            return False

    def __repr__(self) -> str:
        # never render private material
        return f"KeyPair(public={self.public_key_b64url()!r}, can_sign={self.can_sign})"
