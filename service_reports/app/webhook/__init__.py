"""
Webhook package for Reports Service.

Verifies that push notifications come from the CMS before they are
allowed to force a snapshot refresh.
"""

from .signature import (
    SIGNATURE_HEADER,
    decode_transport_body,
    parse_webhook_secrets,
    verify_signature,
)

__all__ = [
    "SIGNATURE_HEADER",
    "decode_transport_body",
    "parse_webhook_secrets",
    "verify_signature",
]
