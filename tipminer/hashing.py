from hashlib import sha256


def double_sha256(data: bytes) -> bytes:
    """sha256(sha256(data)), the block header proof-of-work hash"""
    return sha256(sha256(data).digest()).digest()
