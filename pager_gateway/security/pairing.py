"""
Pairing Authenticator

Establishes trust between the gateway and an operator device:

    1. The gateway issues pairing material (identity, public key, TOTP
       secret and either host/port or a relay room), rendered as a QR code.
    2. The device scans it and, on every connection, presents the current
       6-digit TOTP code.
    3. verify_code() checks the code against the shared secret, allowing one
       30-second step of clock skew either way.

Brute force is throttled per source (network address): each source gets
``max_attempts`` verifications per ``window_seconds``. A source that hit the
limit is rejected before its code is looked at, so even a correct code
cannot end the lockout early.
"""

import hashlib
import time
from collections.abc import Callable
from dataclasses import dataclass

import pyotp
from loguru import logger

from ..constants import (
    TOTP_DIGITS,
    TOTP_MAX_ATTEMPTS,
    TOTP_PERIOD_SECONDS,
    TOTP_VALID_WINDOW,
    TOTP_WINDOW_SECONDS,
)
from ..protocol.message_types import PairingPayload, RelayPairingPayload
from .keys import encode_public_key


@dataclass(frozen=True)
class LanPairingContext:
    host: str
    port: int


@dataclass(frozen=True)
class RelayPairingContext:
    relay_url: str
    room_id: str
    room_secret: str


PairingContext = LanPairingContext | RelayPairingContext


@dataclass
class RateWindow:
    attempt_count: int
    window_start: float


class PairingAuthenticator:
    """Owns the live TOTP secret and the per-source attempt counters."""

    def __init__(
        self,
        gateway_id: str,
        public_key: bytes,
        *,
        max_attempts: int = TOTP_MAX_ATTEMPTS,
        window_seconds: float = TOTP_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Args:
            gateway_id: Gateway identity included in pairing material
            public_key: Raw Ed25519 public key bytes of the gateway
            max_attempts: Verifications allowed per source per window
            window_seconds: Length of the rate-limit window
            clock: Seconds-since-epoch source (injectable for tests)
        """
        self._gateway_id = gateway_id
        self._public_key = public_key
        self._max_attempts = max_attempts
        self._window_seconds = window_seconds
        self._clock = clock
        self._attempts: dict[str, RateWindow] = {}
        self._secret = ""
        self._totp: pyotp.TOTP
        self._install_secret(pyotp.random_base32())

    @property
    def secret(self) -> str:
        return self._secret

    @property
    def gateway_id(self) -> str:
        return self._gateway_id

    def issue_pairing_material(
        self, context: PairingContext
    ) -> PairingPayload | RelayPairingPayload:
        """Assemble the QR payload for the given pairing mode."""
        public_key = encode_public_key(self._public_key)

        if isinstance(context, RelayPairingContext):
            return RelayPairingPayload(
                gateway_id=self._gateway_id,
                gateway_public_key=public_key,
                totp_secret=self._secret,
                relay_url=context.relay_url,
                room_id=context.room_id,
                room_secret=context.room_secret,
            )

        return PairingPayload(
            gateway_id=self._gateway_id,
            public_key=public_key,
            totp_secret=self._secret,
            host=context.host,
            port=context.port,
        )

    def verify_code(self, code: str, source: str) -> bool:
        """
        Check a TOTP code presented by ``source``.

        Args:
            code: The 6-digit code typed or computed by the device
            source: Identity to rate-limit on (usually the peer address)

        Returns:
            True if the code is valid and the source is not rate limited
        """
        now = self._clock()
        window = self._attempts.get(source)
        if window is None:
            window = RateWindow(attempt_count=0, window_start=now)
            self._attempts[source] = window

        if now - window.window_start > self._window_seconds:
            window.attempt_count = 0
            window.window_start = now

        if window.attempt_count >= self._max_attempts:
            logger.warning(f"[Pairing] Rate limited: {source}")
            return False

        window.attempt_count += 1

        accepted = self._totp.verify(code, for_time=now, valid_window=TOTP_VALID_WINDOW)
        if accepted:
            logger.info(f"[Pairing] Code accepted from {source}")
        else:
            logger.warning(
                f"[Pairing] Invalid code from {source} "
                f"(attempt {window.attempt_count}/{self._max_attempts})"
            )
        return accepted

    def current_code(self, for_time: float | None = None) -> str:
        """Code for the step containing ``for_time`` (default: now)."""
        return self._totp.at(self._clock() if for_time is None else for_time)

    def regenerate_secret(self) -> None:
        """
        Rotate the TOTP secret and forget all rate-limit state.

        Every previously issued code and pairing QR stops working. Operator
        action only; never reachable from an unauthenticated client.
        """
        self._install_secret(pyotp.random_base32())
        self._attempts.clear()
        logger.info("[Pairing] TOTP secret regenerated, rate-limit state cleared")

    def _install_secret(self, secret: str) -> None:
        self._secret = secret
        self._totp = pyotp.TOTP(
            secret,
            digits=TOTP_DIGITS,
            digest=hashlib.sha1,
            interval=TOTP_PERIOD_SECONDS,
        )
