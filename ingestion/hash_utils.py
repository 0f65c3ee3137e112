import hashlib


def sha256_text(s: str) -> str:
    """Content hash used as the dedup key of every Document."""
    return hashlib.sha256(s.encode("utf-8")).hexdigest()
