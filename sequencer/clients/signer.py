# sequencer/clients/signer.py
from sequencer.core.capabilities import Signer
from sequencer.crypto.keys import KeyPair


class Ed25519Signer(Signer):
    """Stateless Ed25519 signature scheme."""

    def sign(self, data: bytes, key: KeyPair) -> bytes:
        return key.sign_bytes(data)

    def verify(self, data: bytes, signature: bytes, public_identity: str) -> bool:
        try:
            verifier = KeyPair.from_public_b64url(public_identity)
        except ValueError:
            return False
        return verifier.verify_bytes(signature, data)
