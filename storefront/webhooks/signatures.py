import hashlib
import hmac


def compute_zoho_signature(secret: str, raw_body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify_zoho_signature(secret: str, raw_body: bytes, signature: str) -> bool:
    """Constant-time check of the hex HMAC-SHA256 Zoho sends in X-Zoho-Signature."""
    if not secret or not signature:
        return False
    expected = compute_zoho_signature(secret, raw_body)
    return hmac.compare_digest(expected, signature.strip().lower())
