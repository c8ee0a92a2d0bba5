"""Mercado Pago webhook signature verification.

Header `x-signature: ts=<timestamp>,v1=<hmac_hex>`.
Manifest: `id:<data.id>;request-id:<x-request-id>;ts:<ts>;` where alphanumeric
data ids are lowercased and absent parts are omitted. v1 must equal
HMAC-SHA256(secret, manifest) in hex.
"""

import hashlib
import hmac
import re
from typing import Optional

_ALNUM = re.compile(r"^[a-zA-Z0-9]+$")


def parse_signature_header(x_signature: Optional[str]) -> tuple[Optional[str], Optional[str]]:
    """Split `ts=...,v1=...` into (ts, v1)."""
    ts = v1 = None
    if not x_signature:
        return ts, v1
    for part in x_signature.split(","):
        key, _, value = part.partition("=")
        key = key.strip()
        if key == "ts":
            ts = value.strip() or None
        elif key == "v1":
            v1 = value.strip() or None
    return ts, v1


def build_manifest(data_id: Optional[str], request_id: Optional[str], ts: str) -> str:
    parts = []
    if data_id:
        parts.append(f"id:{data_id.lower() if _ALNUM.match(data_id) else data_id}")
    if request_id:
        parts.append(f"request-id:{request_id}")
    parts.append(f"ts:{ts}")
    return ";".join(parts) + ";"


def sign_manifest(secret: str, manifest: str) -> str:
    return hmac.new(secret.encode("utf-8"), manifest.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_webhook_signature(
    secret: Optional[str],
    x_signature: Optional[str],
    request_id: Optional[str],
    data_id: Optional[str],
) -> bool:
    """
    Verify a webhook signature in constant time.

    A missing secret, header, ts or v1 is a failure.
    """
    if not secret or not secret.strip():
        return False
    ts, v1 = parse_signature_header(x_signature)
    if not ts or not v1:
        return False
    expected = sign_manifest(secret, build_manifest(data_id, request_id, ts))
    return hmac.compare_digest(expected, v1.lower())
