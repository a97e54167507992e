"""
Security Layer - gateway identity, shared-secret tokens and TOTP pairing.
"""

from .auth import generate_token, secure_compare
from .keys import KeyPair, encode_public_key, fingerprint, generate_key_pair
from .pairing import (
    LanPairingContext,
    PairingAuthenticator,
    PairingContext,
    RateWindow,
    RelayPairingContext,
)


__all__ = [
    "KeyPair",
    "LanPairingContext",
    "PairingAuthenticator",
    "PairingContext",
    "RateWindow",
    "RelayPairingContext",
    "encode_public_key",
    "fingerprint",
    "generate_key_pair",
    "generate_token",
    "secure_compare",
]
