from __future__ import annotations

import re
import secrets
from uuid import UUID

ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_PREFIX = "RDM"
CODE_TOKEN_LENGTH = 8

_CODE_NORMALIZE_PATTERN = re.compile(r"[\s-]+")


def generate_redemption_code(length: int = CODE_TOKEN_LENGTH) -> str:
    """Generates a front-desk friendly code like ``RDM-7KQ2M9XA``."""
    if length <= 0:
        raise ValueError("length must be positive")
    token = "".join(secrets.choice(ALPHABET) for _ in range(length))
    return f"{CODE_PREFIX}-{token}"


def normalize_redemption_code(raw_code: str) -> str:
    compact = _CODE_NORMALIZE_PATTERN.sub("", raw_code.strip().upper())
    if compact.startswith(CODE_PREFIX) and len(compact) == len(CODE_PREFIX) + CODE_TOKEN_LENGTH:
        compact = compact[len(CODE_PREFIX) :]
    if len(compact) == CODE_TOKEN_LENGTH:
        return f"{CODE_PREFIX}-{compact}"
    return compact


def parse_redemption_id(raw_value: str) -> UUID | None:
    candidate = raw_value.strip()
    if len(candidate) not in (32, 36):
        return None
    try:
        return UUID(candidate)
    except ValueError:
        return None
