import hashlib
import hmac
import time

SIGNATURE_HEADER = "X-Fanvue-Signature"


def compute_signature(secret: str, timestamp: int | str, raw_body: bytes) -> str:
    signed = f"{timestamp}.".encode() + raw_body
    return hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()


def sign_payload(secret: str, raw_body: bytes, timestamp: int | None = None) -> str:
    """Build a ``t=<unix>,v0=<hex>`` header value for a body."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    return f"t={timestamp},v0={compute_signature(secret, timestamp, raw_body)}"


def verify_signature(
    secret: str | None,
    raw_body: bytes,
    header: str | None,
    tolerance_seconds: int = 300,
    now: float | None = None,
) -> bool:
    """Check a ``X-Fanvue-Signature`` header against the raw request body.

    Fails closed: no configured secret, a missing or malformed header, or a
    timestamp more than ``tolerance_seconds`` away from now all reject.
    """
    if not secret or not header:
        return False

    parts: dict[str, str] = {}
    for part in header.split(","):
        key, sep, value = part.strip().partition("=")
        if sep:
            parts[key] = value

    timestamp, signature = parts.get("t"), parts.get("v0")
    if not timestamp or not signature:
        return False
    try:
        signed_at = int(timestamp)
    except ValueError:
        return False

    current = time.time() if now is None else now
    if abs(current - signed_at) > tolerance_seconds:
        return False

    return hmac.compare_digest(signature, compute_signature(secret, timestamp, raw_body))
