# sequencer/crypto/hashing.py
import hashlib

from sequencer.core.encoding import b64url_encode


def content_hash(data: bytes) -> str:
    """base64url(sha256(data)), used for bundle ids and upload idempotency keys."""
    return b64url_encode(hashlib.sha256(data).digest())
