"""
HMAC-SHA256 request/notification signing shared with the payment provider.

The signed message is the payload's fields, sorted by name, rendered as
`key=value` pairs joined with `&` (the `signature` field itself excluded).
"""

import hashlib
import hmac
from typing import Any, Mapping


def canonical_message(payload: Mapping[str, Any]) -> str:
    parts = []
    for key in sorted(payload):
        if key == "signature":
            continue
        value = payload[key]
        parts.append(f"{key}={'' if value is None else value}")
    return "&".join(parts)


def sign(payload: Mapping[str, Any], secret_key: str) -> str:
    return hmac.new(
        secret_key.encode("utf-8"),
        canonical_message(payload).encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def verify(payload: Mapping[str, Any], secret_key: str) -> bool:
    signature = payload.get("signature")
    if not isinstance(signature, str):
        return False
    return hmac.compare_digest(sign(payload, secret_key), signature)
