# sequencer/core/errors.py
"""
Typed errors for the sequencer pipeline.

Every failure keeps its kind from the point it is raised up to the system
boundary, where `to_dict()` renders it. Underlying causes are chained with
`raise ... from ...` rather than flattened into text.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    INPUT = "input"
    DEPENDENCY = "dependency"
    SERIALIZATION = "serialization"
    PARTIAL_FAILURE = "partial_failure"
    NOT_FOUND = "not_found"


class SequencerError(Exception):
    """Base error carrying a stable kind, a human readable message and optional meta."""

    kind: ErrorKind = ErrorKind.DEPENDENCY

    def __init__(self, message: str, *, kind: Optional[ErrorKind] = None, meta: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        if kind is not None:
            self.kind = kind
        self.message = message
        self.meta = dict(meta or {})

    def to_dict(self) -> dict:
        payload: Dict[str, Any] = {
            "kind": self.kind.value,
            "type": type(self).__name__,
            "message": self.message,
        }
        if self.meta:
            payload["meta"] = self.meta
        return payload


# ── input ────────────────────────────────────────────────────────────────────

class InputError(SequencerError):
    """Nothing was committed: the caller's payload or arguments are unusable."""
    kind = ErrorKind.INPUT


class BuildError(SequencerError):
    """
    Bundle could not be built. Kind is `input` when the raw payload cannot be
    parsed and `dependency` when key material or the gateway are unavailable.
    """
    kind = ErrorKind.INPUT


class RangeError(InputError):
    pass


class ConfigError(InputError):
    pass


# ── dependencies ─────────────────────────────────────────────────────────────

class DependencyError(SequencerError):
    kind = ErrorKind.DEPENDENCY


class GatewayError(DependencyError):
    pass


class UploadError(DependencyError):
    pass


class WalletError(DependencyError):
    pass


class ClockError(DependencyError):
    pass


class StoreError(DependencyError):
    pass


class DuplicateError(StoreError):
    pass


class WriteFailure(StoreError):
    pass


class NotFoundError(SequencerError):
    kind = ErrorKind.NOT_FOUND


# ── output ───────────────────────────────────────────────────────────────────

class SerializationError(SequencerError):
    kind = ErrorKind.SERIALIZATION


class PartialFailure(SequencerError):
    """
    The ledger accepted the bundle but the local index did not.
    The receipt is kept so the caller knows the data is durable; the gap is
    closed by replaying `binary` through `reindex`.
    """
    kind = ErrorKind.PARTIAL_FAILURE

    def __init__(self, message: str, *, receipt, entity_id: Optional[str] = None, binary: bytes = b""):
        super().__init__(message, meta={
            "receipt": receipt.to_dict(),
            "entity_id": entity_id,
            "bundle_reference": receipt.bundle_reference,
        })
        self.receipt = receipt
        self.entity_id = entity_id
        self.binary = binary
