"""HMAC signatures for outbound webhook payloads"""
import hashlib
import hmac

SIGNATURE_HEADER = "X-FormsEdge-Signature"


def generate_hmac_signature(secret: str, payload: str) -> str:
    """
    Sign a JSON payload with HMAC-SHA256

    Args:
        secret: Webhook secret from the integration configuration
        payload: Exact request body that will be sent

    Returns:
        Signature in the format "sha256=<hex>"
    """
    digest = hmac.new(secret.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify_hmac_signature(secret: str, payload: str, signature: str) -> bool:
    """Verify a signature produced by generate_hmac_signature"""
    if not secret or not signature:
        return False
    expected = generate_hmac_signature(secret, payload)
    return hmac.compare_digest(expected, signature)
