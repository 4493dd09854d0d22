import hashlib
import hmac
from typing import Optional


def parse_signature_header(header: str) -> dict:
    parts = {}
    for chunk in header.split(","):
        key, sep, value = chunk.strip().partition("=")
        if sep:
            parts[key.strip()] = value.strip()
    return parts


def verify_signature(secret: str, data_id: Optional[str], request_id: Optional[str],
                     signature_header: Optional[str]) -> bool:
    """Verifica la cabecera ``x-signature`` de MercadoPago (``ts=...,v1=...``)"""
    if not signature_header:
        return False
    parts = parse_signature_header(signature_header)
    ts = parts.get("ts")
    received = parts.get("v1")
    if not ts or not received:
        return False

    manifest = f"id:{data_id or ''};request-id:{request_id or ''};ts:{ts};"
    expected = hmac.new(secret.encode(), manifest.encode(), hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, received)
