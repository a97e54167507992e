"""
Gateway Identity Keys

The gateway identifies itself to paired clients with an Ed25519 public key.
Only the raw 32 public key bytes ever leave the process: base64url-encoded in
pairing material, and as a short hex fingerprint for humans to compare.
Persisting keys to disk is the responsibility of the surrounding installer.
"""

import base64
import hashlib
from dataclasses import dataclass

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey


@dataclass(frozen=True)
class KeyPair:
    private_key: Ed25519PrivateKey
    public_key: bytes  # raw 32 bytes


def generate_key_pair() -> KeyPair:
    """Generate a new in-memory Ed25519 key pair."""
    private_key = Ed25519PrivateKey.generate()
    public_key = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return KeyPair(private_key=private_key, public_key=public_key)


def encode_public_key(public_key: bytes) -> str:
    """Base64url (unpadded) encoding of the raw public key bytes."""
    return base64.urlsafe_b64encode(public_key).rstrip(b"=").decode("ascii")


def fingerprint(public_key: bytes) -> str:
    """First 16 hex chars of SHA-256 over the raw public key."""
    return hashlib.sha256(public_key).hexdigest()[:16]
