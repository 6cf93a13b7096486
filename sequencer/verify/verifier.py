# sequencer/verify/verifier.py
from typing import Iterable, List, Optional
from dataclasses import dataclass, field

from sequencer.core.capabilities import Signer
from sequencer.core.encoding import b64url_decode
from sequencer.core.errors import SequencerError
from sequencer.core.sorting import SortedMessages, order_key
from sequencer.core.types import Message
from sequencer.crypto.hashing import content_hash
from sequencer.storage import StorageBackend


@dataclass
class VerificationFailure:
    index: int
    message: str
    category: str = "general"  # e.g. "process", "signature", "identity", "order", "storage"


@dataclass
class VerificationResult:
    is_valid: bool
    message: str = ""
    failures: List[VerificationFailure] = field(default_factory=list)

    @property
    def first_failure(self) -> Optional[VerificationFailure]:
        return self.failures[0] if self.failures else None

    def fail(self, index: int, message: str, category: str) -> None:
        self.failures.append(VerificationFailure(index, message, category))
        self.is_valid = False

    def __bool__(self):
        return self.is_valid

    def __str__(self):
        if self.is_valid:
            return "Process log is valid ✓"
        lines = [f"Verification FAILED ({len(self.failures)} issues):"]
        for f in self.failures:
            lines.append(f"  • [{f.index}] {f.category}: {f.message}")
        return "\n".join(lines)


class MessageVerifier:
    """
    Offline verifier for the locally indexed messages of one process.
    Re-derives every bundle from its stored fields and checks it against
    the signature, the id and the bundle reference it was stored with.
    """

    def __init__(self, signer: Signer, trusted_owners: Optional[Iterable[str]] = None):
        """
        trusted_owners: optional set of b64url public keys allowed to sign bundles.
        Empty/None means any owner whose signature checks out is accepted.
        """
        self.signer = signer
        self.trusted_owners = set(trusted_owners or ())

    def verify(self, process_id: str, messages: Iterable[Message]) -> VerificationResult:
        ordered = SortedMessages.from_messages(messages).messages
        if not ordered:
            return VerificationResult(True, "Empty process log is valid")

        result = VerificationResult(True)
        seen = set()

        for i, msg in enumerate(ordered):
            # 1. Process & identity consistency
            if msg.process_id != process_id:
                result.fail(i, f"Process mismatch: {msg.process_id}", "process")
            if msg.id in seen:
                result.fail(i, f"Duplicate message id {msg.id}", "order")
            seen.add(msg.id)
            if i > 0 and order_key(ordered[i - 1]) >= order_key(msg):
                result.fail(i, "Order is not strictly increasing", "order")
            if self.trusted_owners and msg.owner not in self.trusted_owners:
                result.fail(i, f"Owner {msg.owner} is not trusted", "signature")

            # 2. Signature over the re-derived bundle
            try:
                bundle = msg.to_bundle()
                signature = b64url_decode(msg.signature)
                if not self.signer.verify(bundle.payload(), signature, msg.owner):
                    result.fail(i, "Invalid signature", "signature")
                    continue
                if content_hash(signature) != msg.id:
                    result.fail(i, "Id does not match signature", "identity")
                if content_hash(bundle.to_binary()) != msg.bundle_reference:
                    result.fail(i, "Bundle reference does not match content", "identity")
                if bundle.sequence_key != msg.sequence_key:
                    result.fail(i, "Sequence key does not match anchor", "order")
            except (ValueError, SequencerError) as e:
                result.fail(i, f"Cannot rebuild bundle: {e}", "signature")

        result.message = "Valid process log" if result.is_valid else f"Failed with {len(result.failures)} issues"
        return result

    def verify_from_storage(self, process_id: str, storage: StorageBackend) -> VerificationResult:
        """
        Load messages from persistent storage and verify them.
        Returns a failed result (category "storage") if loading fails.
        """
        try:
            messages = storage.get_messages(process_id)
        except SequencerError as e:
            return VerificationResult(
                False,
                f"Failed to load process '{process_id}' from storage: {e.message}",
                [VerificationFailure(-1, e.message, "storage")]
            )

        return self.verify(process_id, messages)
