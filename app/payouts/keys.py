

# app/payouts/keys.py
from __future__ import annotations

import re
from enum import Enum
from typing import Optional


class KeyKind(str, Enum):
    EMAIL = "EMAIL"
    CPF = "CPF"  # national id
    CNPJ = "CNPJ"  # business id
    PHONE = "PHONE"
    RANDOM = "RANDOM"


_NON_DIGITS = re.compile(r"\D")


def classify(key: str) -> KeyKind:
    clean = (key or "").strip()
    if "@" in clean:
        return KeyKind.EMAIL

    digits = _NON_DIGITS.sub("", clean)
    if len(digits) == 11:
        return KeyKind.CPF
    if len(digits) == 14:
        return KeyKind.CNPJ
    if clean.startswith("+") or 11 < len(digits) <= 14:
        return KeyKind.PHONE
    return KeyKind.RANDOM


def parse_key_kind(value: Optional[str]) -> Optional[KeyKind]:
    v = (value or "").strip().upper()
    if not v:
        return None
    try:
        return KeyKind(v)
    except ValueError:
        raise ValueError(f"Unknown beneficiary key kind: {value!r}")


def resolve_key_kind(key: str, explicit: Optional[str] = None) -> KeyKind:
    """
    Explicit kind always wins; classification only fills the gap.
    """
    kind = parse_key_kind(explicit) if not isinstance(explicit, KeyKind) else explicit
    if kind is not None:
        return kind
    return classify(key)
