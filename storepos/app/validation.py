from __future__ import annotations

from typing import Annotated, Optional

from pydantic import BeforeValidator


def _to_trimmed_str(v):
    if v is None:
        return ""
    return str(v).strip()


def _blank_to_none(v):
    if v is None:
        return None
    if isinstance(v, str) and not v.strip():
        return None
    return v


# Missing and blank both normalize to "" so services decide what "required" means
# and report it as a domain error rather than a schema error.
TrimmedStr = Annotated[str, BeforeValidator(_to_trimmed_str)]
BlankAsNone = BeforeValidator(_blank_to_none)

# Legacy rows (imported from the previous register software) carry these in date columns.
INVALID_DATE_SENTINELS = {"0000-00-00", "0000-00-00 00:00:00", ""}


def clean_legacy_date(value) -> Optional[object]:
    if value is None:
        return None
    if isinstance(value, str) and value.strip() in INVALID_DATE_SENTINELS:
        return None
    return value


def mask_phone(phone: Optional[str], visible: int = 4) -> str:
    raw = (phone or "").strip()
    if len(raw) <= visible:
        return raw
    return "*" * (len(raw) - visible) + raw[-visible:]
