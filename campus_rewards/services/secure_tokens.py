from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any
from uuid import UUID

TOKEN_VERSION = 1
DEFAULT_TOKEN_TTL = timedelta(minutes=5)
MAX_CLOCK_SKEW = timedelta(seconds=30)
MIN_SECRET_BYTES = 32
MAC_LENGTH = hashlib.sha256().digest_size

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MILLISECOND = timedelta(milliseconds=1)
_SEGMENT_PATTERN = re.compile(r"[A-Za-z0-9_-]+")


class TokenStatus(str, Enum):
    VALID = "valid"
    MALFORMED = "malformed"
    SIGNATURE_INVALID = "signature_invalid"
    TAMPERED = "tampered"
    EXPIRED = "expired"


@dataclass(frozen=True, slots=True)
class RedemptionTokenPayload:
    redemption_id: UUID
    issued_at: datetime
    version: int = TOKEN_VERSION


@dataclass(frozen=True, slots=True)
class TokenVerification:
    status: TokenStatus
    payload: RedemptionTokenPayload | None = None
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.status == TokenStatus.VALID


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(segment: str) -> bytes:
    padding = "=" * (-len(segment) % 4)
    return base64.urlsafe_b64decode(segment + padding)


def _to_epoch_millis(value: datetime) -> int:
    if value.tzinfo is None:
        raise ValueError("issued_at must be timezone-aware")
    return (value - _EPOCH) // _ONE_MILLISECOND


def _from_epoch_millis(value: int) -> datetime:
    return _EPOCH + timedelta(milliseconds=value)


def truncate_to_token_precision(value: datetime) -> datetime:
    """Tokens carry issued_at in whole milliseconds."""
    return _from_epoch_millis(_to_epoch_millis(value))


def _canonicalize_v1(payload: RedemptionTokenPayload) -> bytes:
    # Key order and separators are part of the signed format.
    document = {
        "v": 1,
        "redemption_id": str(payload.redemption_id),
        "issued_at": _to_epoch_millis(payload.issued_at),
    }
    return json.dumps(document, separators=(",", ":"), ensure_ascii=True).encode("ascii")


def _parse_v1(document: Mapping[str, Any]) -> RedemptionTokenPayload:
    if set(document) != {"v", "redemption_id", "issued_at"}:
        raise ValueError("unexpected payload fields")
    issued_at = document["issued_at"]
    if isinstance(issued_at, bool) or not isinstance(issued_at, int) or issued_at < 0:
        raise ValueError("issued_at must be a non-negative integer")
    redemption_id = document["redemption_id"]
    if not isinstance(redemption_id, str):
        raise ValueError("redemption_id must be a string")
    return RedemptionTokenPayload(
        redemption_id=UUID(redemption_id),
        issued_at=_from_epoch_millis(issued_at),
        version=1,
    )


_PAYLOAD_RULES: dict[
    int,
    tuple[
        Callable[[RedemptionTokenPayload], bytes],
        Callable[[Mapping[str, Any]], RedemptionTokenPayload],
    ],
] = {
    1: (_canonicalize_v1, _parse_v1),
}


class SecureTokenService:
    """Signs and verifies short-lived proof-of-redemption tokens.

    Token layout: ``base64url(canonical_json) + "." + base64url(hmac_sha256)``
    without padding. The MAC covers the exact ASCII bytes of the payload
    segment, so it is checked before the payload is parsed at all.
    """

    def __init__(
        self,
        secret: str | bytes,
        *,
        ttl: timedelta = DEFAULT_TOKEN_TTL,
        max_clock_skew: timedelta = MAX_CLOCK_SKEW,
    ) -> None:
        key = secret.encode("utf-8") if isinstance(secret, str) else bytes(secret)
        if len(key) < MIN_SECRET_BYTES:
            raise ValueError("token secret must be at least 32 bytes")
        if ttl <= timedelta(0):
            raise ValueError("ttl must be positive")
        self._key = key
        self._ttl = ttl
        self._max_clock_skew = max_clock_skew

    @classmethod
    def from_settings(cls, settings: Any) -> SecureTokenService:
        return cls(
            settings.redemption_token_secret,
            ttl=timedelta(seconds=settings.redemption_token_ttl_seconds),
        )

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def expires_at(self, issued_at: datetime) -> datetime:
        return issued_at + self._ttl

    def sign(self, redemption_id: UUID, issued_at: datetime) -> str:
        """Signs the payload; issued_at is truncated to whole milliseconds first."""
        canonicalize, _ = _PAYLOAD_RULES[TOKEN_VERSION]
        payload = RedemptionTokenPayload(
            redemption_id=redemption_id,
            issued_at=truncate_to_token_precision(issued_at),
        )
        payload_segment = _b64encode(canonicalize(payload))
        return f"{payload_segment}.{_b64encode(self._mac(payload_segment))}"

    def verify(self, token: str, *, now_utc: datetime) -> TokenVerification:
        parts = token.strip().split(".")
        if len(parts) != 2 or not all(parts):
            return TokenVerification(TokenStatus.MALFORMED, reason="not a signed token")

        # Codes and ids never contain a dot, so from here on the input is an
        # altered token at worst and shape errors count as signature failures.
        payload_segment, mac_segment = parts
        if not all(_SEGMENT_PATTERN.fullmatch(part) for part in parts):
            return TokenVerification(TokenStatus.SIGNATURE_INVALID, reason="segment outside base64url")
        try:
            supplied_mac = _b64decode(mac_segment)
        except (binascii.Error, ValueError):
            return TokenVerification(TokenStatus.SIGNATURE_INVALID, reason="mac is not base64url")
        if len(supplied_mac) != MAC_LENGTH:
            return TokenVerification(TokenStatus.SIGNATURE_INVALID, reason="mac has wrong length")

        expected_mac = self._mac(payload_segment)
        if not hmac.compare_digest(expected_mac, supplied_mac):
            return TokenVerification(TokenStatus.SIGNATURE_INVALID, reason="mac mismatch")
        # Trailing base64 bits are ignored by the decoder; only the canonical
        # encoding of the MAC is accepted.
        if _b64encode(supplied_mac) != mac_segment:
            return TokenVerification(TokenStatus.SIGNATURE_INVALID, reason="mac encoding altered")

        try:
            raw_payload = _b64decode(payload_segment)
            document = json.loads(raw_payload)
        except (binascii.Error, ValueError):
            return TokenVerification(TokenStatus.TAMPERED, reason="payload is not json")
        if not isinstance(document, dict):
            return TokenVerification(TokenStatus.TAMPERED, reason="payload is not an object")

        version = document.get("v")
        rules = None
        if isinstance(version, int) and not isinstance(version, bool):
            rules = _PAYLOAD_RULES.get(version)
        if rules is None:
            return TokenVerification(TokenStatus.TAMPERED, reason="unsupported token version")
        canonicalize, parse = rules
        try:
            payload = parse(document)
        except (KeyError, TypeError, ValueError):
            return TokenVerification(TokenStatus.TAMPERED, reason="payload fields invalid")
        if canonicalize(payload) != raw_payload:
            return TokenVerification(TokenStatus.TAMPERED, reason="payload is not canonical")

        age = now_utc - payload.issued_at
        if age < -self._max_clock_skew:
            return TokenVerification(TokenStatus.TAMPERED, payload, reason="issued in the future")
        if age > self._ttl:
            return TokenVerification(TokenStatus.EXPIRED, payload, reason="token lifetime elapsed")
        return TokenVerification(TokenStatus.VALID, payload)

    def _mac(self, payload_segment: str) -> bytes:
        return hmac.new(self._key, payload_segment.encode("ascii"), hashlib.sha256).digest()
