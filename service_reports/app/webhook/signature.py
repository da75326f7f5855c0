"""
Webhook signature verification for Reports Service.

The CMS signs each push notification with HMAC-SHA256 over the raw request
body and sends the hex digest in the X-Webflow-Signature header. Several
secrets may be configured at once so old and new keys overlap during a
rotation window.
"""

import base64
import binascii
import hashlib
import hmac
from typing import Iterable, List, Optional, Union

from shared.logging import get_logger


SIGNATURE_HEADER = "X-Webflow-Signature"

logger = get_logger("reports.webhook")


def parse_webhook_secrets(secrets_csv: Optional[str]) -> List[str]:
    """Split a comma-separated secret list, trimming and dropping empties."""
    if not secrets_csv:
        return []
    return [s.strip() for s in secrets_csv.split(",") if s.strip()]


def decode_transport_body(body: Union[bytes, str, None], base64_encoded: bool = False) -> bytes:
    """Restore the exact bytes the sender signed.

    Proxies that cannot forward binary payloads base64-encode them. Invalid
    base64 yields an empty body, which never verifies.
    """
    if body is None:
        return b""
    if isinstance(body, str):
        body = body.encode("utf-8")
    if not base64_encoded:
        return body
    try:
        return base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError):
        logger.warning("Discarding undecodable base64 request body")
        return b""


def _constant_time_equals(expected: str, provided: str) -> bool:
    expected_bytes = expected.encode("utf-8")
    provided_bytes = provided.encode("utf-8")
    if len(expected_bytes) != len(provided_bytes):
        return False
    return hmac.compare_digest(expected_bytes, provided_bytes)


def verify_signature(raw_body: bytes, signature_header: Optional[str], secrets: Iterable[str]) -> bool:
    """Check a hex HMAC-SHA256 signature against every accepted secret.

    Args:
        raw_body: Untransformed request body bytes
        signature_header: Value of the signature header
        secrets: Accepted shared secrets

    Returns:
        True if any secret produces the provided signature
    """
    secrets = list(secrets or [])
    if not raw_body or not signature_header or not secrets:
        return False

    for index, secret in enumerate(secrets):
        try:
            digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
            if _constant_time_equals(digest, signature_header):
                return True
        except Exception as e:
            # A broken secret must not stop the remaining candidates
            logger.warning("Webhook secret unusable, trying next", secret_index=index, error=str(e))

    return False
