import hashlib


def fingerprint(data: bytes) -> str:
    """SHA-256 of the raw bytes as lowercase hex, the value stored on-chain."""
    return hashlib.sha256(data).hexdigest()
