# sequencer/core/encoding.py
import base64
import binascii

HEIGHT_WIDTH = 12
TIMESTAMP_WIDTH = 13
MAX_HEIGHT = 10 ** HEIGHT_WIDTH - 1


def b64url_encode(data: bytes) -> str:
    """Encode bytes to base64url (no padding, URL-safe)."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(s: str) -> bytes:
    """Decode base64url string back to bytes. Raises ValueError on garbage."""
    padding = len(s) % 4
    if padding:
        s += "=" * (4 - padding)
    try:
        return base64.b64decode(s.encode("ascii"), altchars=b"-_", validate=True)
    except (binascii.Error, UnicodeEncodeError) as e:
        raise ValueError(f"Invalid base64url value: {e}") from e


def encode_height(height: int) -> str:
    """
    Fixed-width, zero-padded decimal rendering of a ledger height.
    Lexicographic order of the result matches numeric order for every height below 10**12.
    """
    if height < 0 or height > MAX_HEIGHT:
        raise ValueError(f"Height {height} does not fit in {HEIGHT_WIDTH} digits")
    return f"{height:0{HEIGHT_WIDTH}d}"


def sequence_key(height: int, timestamp_ms: int) -> str:
    """Ordering key for a message: '<height:12>.<timestamp:13>'."""
    if timestamp_ms < 0 or timestamp_ms >= 10 ** TIMESTAMP_WIDTH:
        raise ValueError(f"Timestamp {timestamp_ms} does not fit in {TIMESTAMP_WIDTH} digits")
    return f"{encode_height(height)}.{timestamp_ms:0{TIMESTAMP_WIDTH}d}"
