"""Address and integer normalization shared by every component."""

from __future__ import annotations

import re
from typing import Any, Optional


ZERO_ADDRESS = "0x" + "0" * 40
# The null account doubles as the "any licensee" sentinel.
WILDCARD_LICENSEE = ZERO_ADDRESS
MAX_UINT256 = 2**256 - 1

_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")


def normalize_address(address: str) -> str:
    """Normalize Ethereum addresses to lower-case hex."""
    candidate = str(address).strip()
    if candidate.startswith(("0X", "0x")):
        candidate = "0x" + candidate[2:]
    if not _ADDRESS_RE.match(candidate):
        raise ValueError(f"Invalid Ethereum address: {address}")
    return "0x" + candidate[2:].lower()


def normalize_optional_address(address: Optional[str]) -> str:
    """Like normalize_address, mapping None and empty input to the zero address."""
    if address is None or not str(address).strip():
        return ZERO_ADDRESS
    return normalize_address(address)


def parse_uint256(value: Any, field_name: str) -> int:
    """Accept ints and decimal strings in the uint256 range."""
    if isinstance(value, bool):
        raise ValueError(f"{field_name} must be an unsigned integer")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str) and value.strip().isdigit():
        parsed = int(value.strip())
    else:
        raise ValueError(f"{field_name} must be an unsigned integer")
    if parsed < 0 or parsed > MAX_UINT256:
        raise ValueError(f"{field_name} out of uint256 range")
    return parsed
