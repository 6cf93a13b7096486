# sequencer/core/canon.py
import json
from typing import Any

try:
    import jcs
except ImportError:
    raise ImportError("Please install jcs: pip install jcs")

from sequencer.core.errors import SerializationError


def canonical_json(obj: Any) -> bytes:
    """
    Produce deterministic UTF-8 bytes according to RFC 8785 (JSON Canonicalization Scheme).
    Used for signing payloads and for the bundle binary itself.
    """
    try:
        return jcs.canonicalize(obj)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Cannot canonicalize value: {e}") from e


def canonical_json_str(obj: Any) -> str:
    return canonical_json(obj).decode("utf-8")


def render_json(obj: Any) -> str:
    """Render a result for the outside world (compact, key order preserved)."""
    try:
        return json.dumps(obj, separators=(",", ":"), ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Cannot render result as JSON: {e}") from e
