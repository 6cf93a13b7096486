# sequencer/core/types.py
import json
from dataclasses import dataclass, field
from typing import Any, Literal, Tuple

from sequencer.core.canon import canonical_json
from sequencer.core.encoding import b64url_decode, encode_height, sequence_key
from sequencer.core.errors import BuildError, InputError
from sequencer.crypto.hashing import content_hash

BUNDLE_FORMAT = "sequencer-bundle/1"
MAX_ANCHOR_LENGTH = 32

ItemKind = Literal["Message", "Process"]
_ITEM_KEYS = {"type", "target", "data", "tags", "anchor"}
_BUNDLE_KEYS = {"format", "id", "owner", "height", "timestamp", "item", "signature"}


@dataclass(frozen=True)
class Tag:
    name: str
    value: str

    def to_dict(self) -> dict:
        return {"name": self.name, "value": self.value}


def _check_text(name: str, value: Any) -> None:
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a string")
    try:
        value.encode("utf-8")
    except UnicodeEncodeError as e:
        raise ValueError(f"{name} is not valid UTF-8 text (position {e.start})") from e


def _tags_from(raw: Any) -> Tuple[Tag, ...]:
    if not isinstance(raw, list):
        raise ValueError("tags must be a list")
    tags = []
    for i, t in enumerate(raw):
        if not isinstance(t, dict) or set(t) != {"name", "value"}:
            raise ValueError(f"tag #{i} must be an object with exactly 'name' and 'value'")
        _check_text(f"tag #{i} name", t["name"])
        _check_text(f"tag #{i} value", t["value"])
        tags.append(Tag(t["name"], t["value"]))
    return tuple(tags)


@dataclass(frozen=True)
class DataItem:
    """Client-submitted content: an action for a running process, or a new process definition."""
    kind: ItemKind
    target: str = ""                # process id for messages, empty for processes
    data: str = ""
    tags: Tuple[Tag, ...] = ()
    anchor: str = ""                # optional client nonce, at most 32 chars

    @classmethod
    def from_dict(cls, obj: Any) -> "DataItem":
        if not isinstance(obj, dict):
            raise ValueError("item must be a JSON object")
        unknown = set(obj) - _ITEM_KEYS
        if unknown:
            raise ValueError(f"unknown item fields: {sorted(unknown)}")

        kind = obj.get("type")
        if kind not in ("Message", "Process"):
            raise ValueError(f"type must be 'Message' or 'Process', got {kind!r}")
        target = obj.get("target", "")
        data = obj.get("data", "")
        anchor = obj.get("anchor", "")
        for name, value in (("target", target), ("data", data), ("anchor", anchor)):
            _check_text(name, value)
        if kind == "Message" and not target:
            raise ValueError("a Message needs a non-empty target process id")
        if kind == "Process" and target:
            raise ValueError("a Process cannot have a target")
        if len(anchor) > MAX_ANCHOR_LENGTH:
            raise ValueError(f"anchor longer than {MAX_ANCHOR_LENGTH} characters")

        return cls(kind=kind, target=target, data=data, tags=_tags_from(obj.get("tags", [])), anchor=anchor)

    @classmethod
    def parse(cls, raw: bytes) -> "DataItem":
        """Parse raw client bytes (UTF-8 JSON). Anything malformed is a BuildError of kind input."""
        try:
            obj = json.loads(raw.decode("utf-8"))
            return cls.from_dict(obj)
        except (UnicodeDecodeError, json.JSONDecodeError, ValueError) as e:
            raise BuildError(f"Cannot parse input: {e}") from e

    def to_dict(self) -> dict:
        return {
            "type": self.kind,
            "target": self.target,
            "data": self.data,
            "tags": [t.to_dict() for t in self.tags],
            "anchor": self.anchor,
        }


@dataclass(frozen=True)
class Bundle:
    """Signed package built around one DataItem, anchored to a ledger height."""
    id: str                         # b64url(sha256(signature))
    owner: str                      # b64url Ed25519 public key of the signer
    height: int                     # ledger height read at build time
    timestamp: int                  # wall clock ms at build time
    item: DataItem
    signature: str                  # b64url Ed25519 signature over signing_payload()
    format: str = BUNDLE_FORMAT

    @staticmethod
    def signing_payload(owner: str, height: int, timestamp: int, item: DataItem, format: str = BUNDLE_FORMAT) -> bytes:
        return canonical_json({
            "format": format,
            "owner": owner,
            "height": height,
            "timestamp": timestamp,
            "item": item.to_dict(),
        })

    def payload(self) -> bytes:
        return self.signing_payload(self.owner, self.height, self.timestamp, self.item, self.format)

    @property
    def sequence_key(self) -> str:
        return sequence_key(self.height, self.timestamp)

    def to_dict(self) -> dict:
        return {
            "format": self.format,
            "id": self.id,
            "owner": self.owner,
            "height": self.height,
            "timestamp": self.timestamp,
            "item": self.item.to_dict(),
            "signature": self.signature,
        }

    def to_binary(self) -> bytes:
        return canonical_json(self.to_dict())

    @classmethod
    def from_binary(cls, binary: bytes) -> "Bundle":
        """
        Decode a bundle binary. The binary must be the canonical encoding and
        its id must match its signature; otherwise InputError.
        """
        try:
            obj = json.loads(binary.decode("utf-8"))
            if not isinstance(obj, dict) or set(obj) != _BUNDLE_KEYS:
                raise ValueError("bundle must be an object with exactly the bundle fields")
            if obj["format"] != BUNDLE_FORMAT:
                raise ValueError(f"unsupported bundle format {obj['format']!r}")
            for name in ("height", "timestamp"):
                if not isinstance(obj[name], int) or isinstance(obj[name], bool) or obj[name] < 0:
                    raise ValueError(f"{name} must be a non-negative integer")
            for name in ("id", "owner", "signature"):
                if not isinstance(obj[name], str) or not obj[name]:
                    raise ValueError(f"{name} must be a non-empty string")
            bundle = cls(
                id=obj["id"],
                owner=obj["owner"],
                height=obj["height"],
                timestamp=obj["timestamp"],
                item=DataItem.from_dict(obj["item"]),
                signature=obj["signature"],
                format=obj["format"],
            )
            b64url_decode(bundle.signature)
            bundle.sequence_key  # height/timestamp must fit the fixed-width key
        except (UnicodeDecodeError, json.JSONDecodeError, ValueError) as e:
            raise InputError(f"Cannot decode bundle: {e}") from e

        if bundle.to_binary() != binary:
            raise InputError("Bundle binary is not in canonical form")
        if bundle.id != content_hash(b64url_decode(bundle.signature)):
            raise InputError("Bundle id does not match its signature")
        return bundle


@dataclass(frozen=True)
class BuildResult:
    binary: bytes                   # exact bytes handed to the uploader
    bundle: Bundle

    @property
    def bundle_reference(self) -> str:
        return content_hash(self.binary)


@dataclass(frozen=True)
class Message:
    """An action directed at a process, as indexed locally. Immutable once persisted."""
    id: str
    process_id: str
    sequence_key: str
    payload: str
    owner: str
    height: int
    timestamp: int
    signature: str
    bundle_reference: str
    tags: Tuple[Tag, ...] = ()
    anchor: str = ""

    @classmethod
    def from_bundle(cls, bundle: Bundle) -> "Message":
        if bundle.item.kind != "Message":
            raise InputError(f"Bundle {bundle.id} holds a {bundle.item.kind}, not a Message")
        return cls(
            id=bundle.id,
            process_id=bundle.item.target,
            sequence_key=bundle.sequence_key,
            payload=bundle.item.data,
            owner=bundle.owner,
            height=bundle.height,
            timestamp=bundle.timestamp,
            signature=bundle.signature,
            bundle_reference=content_hash(bundle.to_binary()),
            tags=bundle.item.tags,
            anchor=bundle.item.anchor,
        )

    def to_bundle(self) -> Bundle:
        """Rebuild the signed bundle this message was extracted from."""
        return Bundle(
            id=self.id,
            owner=self.owner,
            height=self.height,
            timestamp=self.timestamp,
            item=DataItem("Message", self.process_id, self.payload, self.tags, self.anchor),
            signature=self.signature,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "process_id": self.process_id,
            "sequence_key": self.sequence_key,
            "payload": self.payload,
            "tags": [t.to_dict() for t in self.tags],
            "anchor": self.anchor,
            "owner": self.owner,
            "height": self.height,
            "timestamp": self.timestamp,
            "signature": self.signature,
            "bundle_reference": self.bundle_reference,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Message":
        return cls(
            id=d["id"],
            process_id=d["process_id"],
            sequence_key=d["sequence_key"],
            payload=d["payload"],
            owner=d["owner"],
            height=d["height"],
            timestamp=d["timestamp"],
            signature=d["signature"],
            bundle_reference=d["bundle_reference"],
            tags=_tags_from(d.get("tags", [])),
            anchor=d.get("anchor", ""),
        )


@dataclass(frozen=True)
class Process:
    """A computation's definition. Exactly one per id, never mutated."""
    id: str
    owner_identity: str
    creation_bundle_reference: str
    initial_payload: str
    height: int
    timestamp: int
    signature: str
    tags: Tuple[Tag, ...] = ()
    anchor: str = ""

    @classmethod
    def from_bundle(cls, bundle: Bundle) -> "Process":
        if bundle.item.kind != "Process":
            raise InputError(f"Bundle {bundle.id} holds a {bundle.item.kind}, not a Process")
        return cls(
            id=bundle.id,
            owner_identity=bundle.owner,
            creation_bundle_reference=content_hash(bundle.to_binary()),
            initial_payload=bundle.item.data,
            height=bundle.height,
            timestamp=bundle.timestamp,
            signature=bundle.signature,
            tags=bundle.item.tags,
            anchor=bundle.item.anchor,
        )

    def to_bundle(self) -> Bundle:
        return Bundle(
            id=self.id,
            owner=self.owner_identity,
            height=self.height,
            timestamp=self.timestamp,
            item=DataItem("Process", "", self.initial_payload, self.tags, self.anchor),
            signature=self.signature,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_identity": self.owner_identity,
            "creation_bundle_reference": self.creation_bundle_reference,
            "initial_payload": self.initial_payload,
            "tags": [t.to_dict() for t in self.tags],
            "anchor": self.anchor,
            "height": self.height,
            "timestamp": self.timestamp,
            "signature": self.signature,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Process":
        return cls(
            id=d["id"],
            owner_identity=d["owner_identity"],
            creation_bundle_reference=d["creation_bundle_reference"],
            initial_payload=d["initial_payload"],
            height=d["height"],
            timestamp=d["timestamp"],
            signature=d["signature"],
            tags=_tags_from(d.get("tags", [])),
            anchor=d.get("anchor", ""),
        )


@dataclass(frozen=True)
class Receipt:
    """Proof of a durable write returned by the uploader."""
    id: str                         # ledger reference, never empty
    timestamp: int
    bundle_reference: str           # idempotency key the upload was sent with
    attempts: int = 1
    extra: dict = field(default_factory=dict, compare=False)

    def to_dict(self) -> dict:
        d = dict(self.extra)
        d.update({
            "id": self.id,
            "timestamp": self.timestamp,
            "bundle_reference": self.bundle_reference,
            "attempts": self.attempts,
        })
        return d


@dataclass(frozen=True)
class Timestamp:
    """Causal anchor: local wall clock plus ledger height."""
    local_ms: int
    height: int

    @property
    def block_height(self) -> str:
        return encode_height(self.height)

    def to_dict(self) -> dict:
        return {"timestamp": str(self.local_ms), "block_height": self.block_height}
