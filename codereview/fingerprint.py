"""
fingerprint.py — deterministic content digests used as cache key material.

SHA-256 over the raw bytes (strings are UTF-8 encoded first). hashlib is
stable across processes, unlike the built-in salted hash(). Not used for
authentication anywhere.
"""
import hashlib
from typing import Union

Payload = Union[bytes, str]


def _as_bytes(payload: Payload) -> bytes:
    if isinstance(payload, str):
        return payload.encode("utf-8")
    return payload


def fingerprint(payload: Payload) -> str:
    """Return the 64-char hex SHA-256 digest of payload."""
    return hashlib.sha256(_as_bytes(payload)).hexdigest()


def fingerprint_parts(*payloads: Payload) -> str:
    """
    Digest several payloads in order without joining them in memory.
    Equal to fingerprint() of their concatenation, so order matters.
    """
    digest = hashlib.sha256()
    for payload in payloads:
        digest.update(_as_bytes(payload))
    return digest.hexdigest()
