# src/epost_parcel/rules/surcharge.py
from __future__ import annotations

import re
from typing import Optional

# Jeju 63xxx-69xxx, Ulleung 402xx
_ISLAND_ZIP_PREFIXES = ("63", "64", "65", "66", "67", "68", "69", "402")
_ISLAND_KEYWORDS = ("제주", "울릉", "독도", "우도", "마라도", "비양도", "추자도", "가파도")


def _fee_value(raw: Optional[str]) -> float:
    if not raw:
        return 0.0
    try:
        return float(re.sub(r"[^0-9.\-]", "", str(raw)) or 0)
    except ValueError:
        return 0.0


def is_island_destination(
    island_add_fee: Optional[str],
    postal_code: Optional[str],
    address: Optional[str],
) -> bool:
    """
    Remote-island surcharge applies to this destination.

    Precedence: the carrier's islandAddFee, then the postal code range, then
    island names in the address line.
    """
    if _fee_value(island_add_fee) > 0:
        return True

    zipcode = (postal_code or "").replace("-", "").strip()
    if len(zipcode) >= 2 and zipcode.startswith(_ISLAND_ZIP_PREFIXES):
        return True

    return any(k in (address or "") for k in _ISLAND_KEYWORDS)
