from __future__ import annotations

import re
from typing import Iterable, Optional

from .errors import TranslationError, ValueOutOfRange

_MAC_PATTERN = re.compile(r"^([0-9A-Fa-f]{2}[:-]){5}([0-9A-Fa-f]{2})$")

UINT16_MAX = 0xFFFF


def is_valid_mac(value: str) -> bool:
    return bool(_MAC_PATTERN.match(value))


def normalize_mac(value: str) -> str:
    if not is_valid_mac(value):
        raise ValueError(f"invalid MAC address '{value}'")
    return value.replace("-", ":").lower()


def optional_mac(value: Optional[str]) -> Optional[str]:
    if value is None or value == "":
        return None
    return normalize_mac(value)


def vsi_from_mac(mac: str) -> int:
    """Derive the vport id encoded in the first two bytes of ``mac``."""

    octets = normalize_mac(mac).split(":")
    return (int(octets[0], 16) << 8) + int(octets[1], 16)


def check_u16(value: int, what: str) -> int:
    if value < 0 or value > UINT16_MAX:
        raise ValueOutOfRange(what, value)
    return value


def require_fields(obj, names: Iterable[str]) -> None:
    """Raise :class:`TranslationError` naming every unset attribute of ``obj``."""

    missing = [name for name in names if getattr(obj, name) is None]
    if missing:
        kind = getattr(getattr(obj, "nh_type", None), "value", type(obj).__name__)
        raise TranslationError(
            f"{kind} {type(obj).__name__.lower()} {getattr(obj, 'id', '')} "
            f"lacks {', '.join(missing)}"
        )
