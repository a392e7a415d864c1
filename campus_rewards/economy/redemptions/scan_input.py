from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from urllib.parse import parse_qs, urlsplit
from uuid import UUID

from campus_rewards.core.redemption_codes import normalize_redemption_code, parse_redemption_id

TOKEN_QUERY_PARAMS = ("qr", "token")
MAX_SCAN_INPUT_LENGTH = 4096


class ManualLookupKind(str, Enum):
    BY_ID = "by_id"
    BY_CODE = "by_code"


@dataclass(frozen=True, slots=True)
class ScanCandidate:
    value: str
    from_url: bool


@dataclass(frozen=True, slots=True)
class ManualLookup:
    kind: ManualLookupKind
    redemption_id: UUID | None = None
    redemption_code: str | None = None


def extract_candidate(raw_input: str) -> ScanCandidate:
    """Scanner output is either a scan URL carrying the token or the bare token/code."""
    stripped = raw_input.strip()[:MAX_SCAN_INPUT_LENGTH]
    parsed = urlsplit(stripped)
    if parsed.scheme in {"http", "https"} and parsed.netloc:
        params = parse_qs(parsed.query)
        for name in TOKEN_QUERY_PARAMS:
            for value in params.get(name, []):
                if value.strip():
                    return ScanCandidate(value=value.strip(), from_url=True)
    return ScanCandidate(value=stripped, from_url=False)


def classify_manual_entry(candidate: str) -> ManualLookup:
    redemption_id = parse_redemption_id(candidate)
    if redemption_id is not None:
        return ManualLookup(kind=ManualLookupKind.BY_ID, redemption_id=redemption_id)
    return ManualLookup(
        kind=ManualLookupKind.BY_CODE,
        redemption_code=normalize_redemption_code(candidate),
    )
